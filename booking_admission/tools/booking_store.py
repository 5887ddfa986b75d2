"""
Booking store adapters: the external system of record.

The admission core only reads from the store (count by date, find by key,
get by id) and, on the staff path, asks it to change a status. Inserts
happen downstream of the workflow dispatcher.

Two implementations share one interface:
    RestBookingStore      PostgREST / Supabase ``Bookings`` table over httpx
    InMemoryBookingStore  lock-guarded dict for local runs and tests
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional, Protocol

import httpx
from pydantic import ValidationError

from booking_admission.schemas.booking_schema import (
    Booking,
    BookingStatus,
    NormalizedBooking,
)

logger = logging.getLogger(__name__)


class StoreUnavailable(Exception):
    """Raised when the booking store cannot be reached or answers with an error."""


class BookingNotFound(Exception):
    """Raised when no booking exists with the requested id."""


class BookingStore(Protocol):
    """Request/response interface to the system of record."""

    def count_by_date(self, appointment_date: date) -> int: ...

    def find_by_key(
        self, email: str, registration: str, appointment_date: date
    ) -> Optional[Booking]: ...

    def get_booking(self, booking_id: str) -> Booking: ...

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking: ...

    def list_bookings(self) -> list[Booking]: ...

    def count_by_all_dates(self) -> dict[date, int]: ...

    def delete_booking(self, booking_id: str) -> None: ...


@dataclass
class RestBookingStore:
    """PostgREST client for the ``Bookings`` table, authenticated with the service-role key."""

    base_url: str
    service_role_key: str
    table: str = "Bookings"
    timeout_seconds: float = 10.0
    transport: Optional[httpx.BaseTransport] = None

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_seconds, transport=self.transport)

    def _headers(self, *, representation: bool = False) -> dict[str, str]:
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    def _url(self) -> str:
        return f"{self.base_url.rstrip('/')}/rest/v1/{self.table}"

    def _request(
        self,
        method: str,
        params: dict[str, str],
        *,
        json: Optional[dict[str, Any]] = None,
        representation: bool = False,
    ) -> Any:
        url = self._url()
        try:
            with self._client() as client:
                resp = client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(representation=representation),
                )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = (e.response.text or "").strip()
            raise StoreUnavailable(
                f"Booking store {method} {url} failed: HTTP {e.response.status_code}. {body}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"Booking store {method} {url} failed: {e}") from e
        if not resp.content:
            return None
        return resp.json()

    def _rows(self, method: str, params: dict[str, str], **kwargs: Any) -> list[dict[str, Any]]:
        data = self._request(method, params, **kwargs)
        return data if isinstance(data, list) else []

    def _booking(self, row: dict[str, Any]) -> Booking:
        try:
            return Booking.model_validate(row)
        except ValidationError as e:
            raise StoreUnavailable(
                f"Booking store returned a malformed row {row.get('id')!r}: {e}"
            ) from e

    def count_by_date(self, appointment_date: date) -> int:
        rows = self._rows(
            "GET", {"appointment_date": f"eq.{appointment_date.isoformat()}", "select": "id"}
        )
        return len(rows)

    def find_by_key(
        self, email: str, registration: str, appointment_date: date
    ) -> Optional[Booking]:
        rows = self._rows(
            "GET",
            {
                "email": f"eq.{email}",
                "reg": f"eq.{registration}",
                "appointment_date": f"eq.{appointment_date.isoformat()}",
                "select": "*",
            },
        )
        return self._booking(rows[0]) if rows else None

    def get_booking(self, booking_id: str) -> Booking:
        rows = self._rows("GET", {"id": f"eq.{booking_id}", "select": "*"})
        if not rows:
            raise BookingNotFound(f"Booking {booking_id} not found.")
        return self._booking(rows[0])

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        rows = self._rows(
            "PATCH",
            {"id": f"eq.{booking_id}"},
            json={"status": status.value},
            representation=True,
        )
        if not rows:
            raise BookingNotFound(f"Booking {booking_id} not found.")
        logger.info("Booking %s status set to %s", booking_id, status.value)
        return self._booking(rows[0])

    def list_bookings(self) -> list[Booking]:
        rows = self._rows("GET", {"select": "*", "order": "created_at.asc"})
        return [self._booking(row) for row in rows]

    def count_by_all_dates(self) -> dict[date, int]:
        rows = self._rows("GET", {"select": "appointment_date"})
        counts: Counter[date] = Counter()
        for row in rows:
            raw = row.get("appointment_date")
            if raw:
                counts[date.fromisoformat(str(raw)[:10])] += 1
        return dict(counts)

    def delete_booking(self, booking_id: str) -> None:
        self._request("DELETE", {"id": f"eq.{booking_id}"})
        logger.info("Booking %s deleted", booking_id)


class InMemoryBookingStore:
    """Dict-backed store used in local mode and by the test suite."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def insert(self, booking: NormalizedBooking) -> Booking:
        """Append a booking row, as the downstream workflow would."""
        with self._lock:
            booking_id = str(self._next_id)
            self._next_id += 1
            row = Booking(
                id=booking_id,
                name=booking.name,
                email=booking.email,
                phone=booking.phone,
                reg=booking.registration,
                make=booking.vehicle_make,
                model=booking.vehicle_model,
                appointment_date=booking.appointment_date,
                needs=booking.service_notes,
                status=booking.status,
                created_at=booking.created_at,
            )
            self._bookings[booking_id] = row
        logger.info(
            "Booking stored: %s for %s on %s", booking_id, booking.email, booking.appointment_date
        )
        return row

    def add(self, booking: Booking) -> Booking:
        """Insert a fully formed row, keeping its id."""
        with self._lock:
            self._bookings[booking.id] = booking
            if booking.id.isdigit():
                self._next_id = max(self._next_id, int(booking.id) + 1)
        return booking

    def count_by_date(self, appointment_date: date) -> int:
        # Counts every status, declined included.
        with self._lock:
            return sum(
                1 for b in self._bookings.values() if b.appointment_date == appointment_date
            )

    def find_by_key(
        self, email: str, registration: str, appointment_date: date
    ) -> Optional[Booking]:
        with self._lock:
            for booking in self._bookings.values():
                if (
                    booking.email == email
                    and booking.reg == registration
                    and booking.appointment_date == appointment_date
                ):
                    return booking
        return None

    def get_booking(self, booking_id: str) -> Booking:
        with self._lock:
            booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found.")
        return booking

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        with self._lock:
            if booking_id not in self._bookings:
                raise BookingNotFound(f"Booking {booking_id} not found.")
            updated = self._bookings[booking_id].model_copy(update={"status": status})
            self._bookings[booking_id] = updated
        logger.info("Booking %s status set to %s", booking_id, status.value)
        return updated

    def list_bookings(self) -> list[Booking]:
        with self._lock:
            bookings = list(self._bookings.values())
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(bookings, key=lambda b: b.created_at or epoch)

    def count_by_all_dates(self) -> dict[date, int]:
        with self._lock:
            counts = Counter(
                b.appointment_date for b in self._bookings.values() if b.appointment_date
            )
        return dict(counts)

    def delete_booking(self, booking_id: str) -> None:
        with self._lock:
            self._bookings.pop(booking_id, None)
        logger.info("Booking %s deleted", booking_id)

    def reset(self) -> None:
        """Clear all bookings. Used by test fixtures for isolation."""
        with self._lock:
            self._bookings.clear()
            self._next_id = 1
