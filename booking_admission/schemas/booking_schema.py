"""Booking request, booking record, and admission result models."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BookingStatus(str, Enum):
    """Lifecycle status of a booking in the system of record."""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    COMPLETED = "completed"
    # Set by the cancel workflow, never by the transition gate.
    CANCELLED = "cancelled"
    # Any value written by other tooling that this service does not model.
    UNKNOWN = "unknown"


_STATUS_VALUES = frozenset(s.value for s in BookingStatus)


class DateRangeVerdict(str, Enum):
    """Outcome of the booking-window policy for a requested date."""
    OK = "ok"
    PAST = "past"
    TOO_SOON = "too_soon"
    TOO_FAR = "too_far"
    WEEKEND = "weekend"


class AdmissionOutcome(str, Enum):
    """Every way an admission attempt can end."""
    ADMITTED = "admitted"
    INVALID_REQUEST = "invalid_request"
    DUPLICATE_SUBMISSION = "duplicate_submission"
    PAST = "past"
    TOO_SOON = "too_soon"
    TOO_FAR = "too_far"
    WEEKEND = "weekend"
    DATE_FULLY_BOOKED = "date_fully_booked"
    ALREADY_EXISTS = "already_exists"
    DISPATCH_FAILED = "dispatch_failed"


class TransitionOutcome(str, Enum):
    """Every way a status transition attempt can end."""
    TRANSITIONED = "transitioned"
    ILLEGAL_TRANSITION = "illegal_transition"
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    STORE_UNAVAILABLE = "store_unavailable"


class BookingRequest(BaseModel):
    """Caller-supplied booking intent.

    Every field is optional at parse time; presence and format are checked
    by the admission controller so missing data becomes a typed rejection.
    The public form's original field names are accepted as aliases.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, alias="phoneNumber")
    registration: Optional[str] = Field(default=None, alias="carReg")
    vehicle_make: Optional[str] = Field(default=None, alias="carMake")
    vehicle_model: Optional[str] = Field(default=None, alias="carModel")
    appointment_date: Optional[str] = Field(default=None, alias="appointmentDate")
    service_notes: Optional[str] = Field(default=None, alias="carNeeds")


class NormalizedBooking(BaseModel):
    """A request that passed field validation, ready for comparison and forwarding."""
    name: str
    email: str
    phone: str
    registration: str
    vehicle_make: str = ""
    vehicle_model: str = ""
    appointment_date: date
    service_notes: str = ""
    status: BookingStatus = BookingStatus.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def fingerprint(self) -> str:
        """Deduplication key: normalized email, registration, and date."""
        return f"{self.email}-{self.registration}-{self.appointment_date.isoformat()}"


class Booking(BaseModel):
    """Booking row as held by the external system of record."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    reg: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    appointment_date: Optional[date] = None
    needs: Optional[str] = None
    status: Optional[BookingStatus] = None
    # Original value when the stored status is not one of ours.
    raw_status: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @model_validator(mode="before")
    @classmethod
    def _read_status(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("status"), str):
            return data
        # Staff tooling has written capitalized statuses ("Completed").
        value = data["status"].strip().lower()
        data = {**data, "status": value or None}
        if value and value not in _STATUS_VALUES:
            data["status"] = BookingStatus.UNKNOWN
            data["raw_status"] = value
        return data


class AdmissionResult(BaseModel):
    """Decision returned by the admission controller."""
    outcome: AdmissionOutcome
    message: str
    booking_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    current_count: Optional[int] = None
    existing_booking: Optional[Booking] = None
    missing_fields: list[str] = Field(default_factory=list)

    @property
    def admitted(self) -> bool:
        return self.outcome == AdmissionOutcome.ADMITTED


class TransitionResult(BaseModel):
    """Decision returned by the status transition gate."""
    outcome: TransitionOutcome
    message: str
    booking: Optional[Booking] = None
    current_status: Optional[BookingStatus] = None
    requested_status: Optional[BookingStatus] = None
    notification_queued: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome == TransitionOutcome.TRANSITIONED
