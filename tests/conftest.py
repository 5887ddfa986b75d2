"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

import pytest
from tenacity import wait_none

from booking_admission.admission.capacity import CapacityLedgerReader
from booking_admission.admission.controller import AdmissionController
from booking_admission.admission.dedup import DeduplicationWindow
from booking_admission.admission.status_gate import StatusTransitionGate
from booking_admission.schemas.booking_schema import Booking, BookingRequest, BookingStatus
from booking_admission.tools.booking_store import InMemoryBookingStore
from booking_admission.tools.dispatcher import InMemoryDispatcher
from booking_admission.tools.notifications import NotificationOutbox

# Monday
TODAY = date(2024, 6, 3)
# Monday, three weeks out: inside the booking window
VALID_DATE = date(2024, 6, 24)
CAPACITY = 10


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def dispatcher(store):
    return InMemoryDispatcher(store)


@pytest.fixture
def dedup(clock):
    return DeduplicationWindow(suppression_seconds=30, retention_seconds=300, clock=clock)


@pytest.fixture
def controller(store, dispatcher, dedup):
    return AdmissionController(
        store,
        dispatcher,
        dedup=dedup,
        capacity=CapacityLedgerReader(store, capacity=CAPACITY),
        today=lambda: TODAY,
    )


@pytest.fixture
def outbox(dispatcher):
    box = NotificationOutbox(dispatcher, max_attempts=3, workers=1, wait=wait_none())
    yield box
    box.shutdown(wait=True)


@pytest.fixture
def gate(store, outbox):
    return StatusTransitionGate(store, outbox)


def make_request(
    appointment_date: Union[date, str, None] = VALID_DATE, **overrides: Optional[str]
) -> BookingRequest:
    """Helper to create a BookingRequest with sensible defaults."""
    if isinstance(appointment_date, date):
        appointment_date = appointment_date.isoformat()
    fields = {
        "name": "Aoife Byrne",
        "email": "a@b.com",
        "phone": "087 123 4567",
        "registration": "191-d-1",
        "vehicle_make": "Toyota",
        "vehicle_model": "Corolla",
        "appointment_date": appointment_date,
        "service_notes": "Annual service",
    }
    fields.update(overrides)
    return BookingRequest(**fields)


def make_booking(
    booking_id: str,
    appointment_date: date = VALID_DATE,
    status: Optional[BookingStatus] = BookingStatus.PENDING,
    email: str = "someone@example.com",
    reg: str = "201-D-99",
    created_offset_minutes: int = 0,
) -> Booking:
    """Helper to create a stored Booking row."""
    return Booking(
        id=booking_id,
        name="Existing Customer",
        email=email,
        phone="0871111111",
        reg=reg,
        appointment_date=appointment_date,
        status=status,
        created_at=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        + timedelta(minutes=created_offset_minutes),
    )


def fill_date(store: InMemoryBookingStore, appointment_date: date, count: int) -> None:
    """Put ``count`` unrelated bookings on a date."""
    for i in range(count):
        store.add(make_booking(
            f"{100 + i}", appointment_date, email=f"filler{i}@example.com", reg=f"FILL-{i}",
        ))
