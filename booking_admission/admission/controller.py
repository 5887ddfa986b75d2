"""
Admission controller: decides whether a booking request may proceed.

Pipeline, stopping at the first rejection:
    1. required fields present, date parseable   -> invalid_request
    2. fingerprint suppressed by the dedup window -> duplicate_submission
    3. fingerprint recorded (same lock as step 2)
    4. policy window                              -> past / too_soon / too_far / weekend
    5. date capacity                              -> date_fully_booked
    6. existing booking for (email, reg, date)    -> already_exists
    7. date capacity again, just before forwarding
    8. forward to the workflow dispatcher         -> dispatch_failed / admitted

Every rejection after step 3 evicts the fingerprint again, so a genuine
retry is never left suppressed.

Local checks (1-4) fail closed. Remote checks (5-7) fail open: if the
store is unavailable the check is skipped with a warning. The forward
in step 8 is the only remote call whose failure rejects the request.

Capacity is read, not reserved. The insert happens later, downstream of
the dispatcher, so N concurrent admissions for a date holding CAP-1
bookings can all pass and leave the date at most N-1 over capacity.
Closing that gap needs a lock inside the store itself.
"""

from datetime import date
from typing import Callable, Optional

from booking_admission.admission.capacity import CapacityLedgerReader
from booking_admission.admission.dedup import DeduplicationWindow
from booking_admission.admission.policy import VERDICT_MESSAGES, evaluate
from booking_admission.logging_context import get_request_logger
from booking_admission.schemas.booking_schema import (
    AdmissionOutcome,
    AdmissionResult,
    BookingRequest,
    BookingStatus,
    DateRangeVerdict,
    NormalizedBooking,
)
from booking_admission.tools.booking_store import BookingStore, StoreUnavailable
from booking_admission.tools.dispatcher import DispatchError, WorkflowDispatcher
from booking_admission.utils import (
    normalize_email,
    normalize_phone,
    normalize_registration,
    parse_iso_date,
)

logger = get_request_logger(__name__)

REQUIRED_FIELDS = ("name", "email", "phone", "registration", "appointment_date")

_VERDICT_OUTCOMES: dict[DateRangeVerdict, AdmissionOutcome] = {
    DateRangeVerdict.PAST: AdmissionOutcome.PAST,
    DateRangeVerdict.TOO_SOON: AdmissionOutcome.TOO_SOON,
    DateRangeVerdict.TOO_FAR: AdmissionOutcome.TOO_FAR,
    DateRangeVerdict.WEEKEND: AdmissionOutcome.WEEKEND,
}


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def normalize_request(request: BookingRequest) -> tuple[Optional[NormalizedBooking], list[str]]:
    """Validate presence and format, then normalize.

    Returns ``(booking, [])`` on success or ``(None, problem_fields)``.
    """
    missing = [name for name in REQUIRED_FIELDS if not _clean(getattr(request, name))]
    if missing:
        return None, missing

    appointment_date = parse_iso_date(request.appointment_date or "")
    if appointment_date is None:
        return None, ["appointment_date"]

    phone = normalize_phone(request.phone or "")
    if not phone:
        return None, ["phone"]

    return NormalizedBooking(
        name=_clean(request.name),
        email=normalize_email(request.email or ""),
        phone=phone,
        registration=normalize_registration(request.registration or ""),
        vehicle_make=_clean(request.vehicle_make),
        vehicle_model=_clean(request.vehicle_model),
        appointment_date=appointment_date,
        service_notes=_clean(request.service_notes),
    ), []


class AdmissionController:
    """Runs the admission pipeline for one request at a time per call.

    Safe to share between concurrently handled requests: the only mutable
    state it touches in-process is the dedup window, which has its own lock.
    """

    def __init__(
        self,
        store: BookingStore,
        dispatcher: WorkflowDispatcher,
        dedup: Optional[DeduplicationWindow] = None,
        capacity: Optional[CapacityLedgerReader] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._dedup = dedup if dedup is not None else DeduplicationWindow()
        self._capacity = capacity if capacity is not None else CapacityLedgerReader(store)
        self._today = today

    @property
    def dedup(self) -> DeduplicationWindow:
        return self._dedup

    def today(self) -> date:
        """Current date on the policy clock."""
        return self._today()

    def admit(self, request: BookingRequest, now: Optional[float] = None) -> AdmissionResult:
        """Decide on ``request``; on admission, forward it exactly once."""
        booking, problems = normalize_request(request)
        if booking is None:
            logger.info("Rejected booking request: invalid fields %s", problems)
            return AdmissionResult(
                outcome=AdmissionOutcome.INVALID_REQUEST,
                message=f"Missing or invalid required fields: {', '.join(problems)}.",
                missing_fields=problems,
            )

        now = self._dedup.now() if now is None else now
        fingerprint = booking.fingerprint
        self._dedup.sweep(now)
        if not self._dedup.check_and_record(fingerprint, now):
            logger.info("Duplicate submission suppressed: %s", fingerprint)
            return AdmissionResult(
                outcome=AdmissionOutcome.DUPLICATE_SUBMISSION,
                message="Duplicate submission detected. Please wait before submitting again.",
            )

        try:
            result = self._evaluate_and_forward(booking)
        except Exception:
            self._dedup.evict(fingerprint)
            raise

        if not result.admitted:
            self._dedup.evict(fingerprint)
        return result

    def _evaluate_and_forward(self, booking: NormalizedBooking) -> AdmissionResult:
        verdict = evaluate(booking.appointment_date, self._today())
        if verdict != DateRangeVerdict.OK:
            logger.info("Date %s rejected by policy: %s", booking.appointment_date, verdict.value)
            return AdmissionResult(
                outcome=_VERDICT_OUTCOMES[verdict],
                message=VERDICT_MESSAGES[verdict],
            )

        full = self._check_capacity(booking.appointment_date, "pre-check")
        if full is not None:
            return full

        existing = self._find_existing(booking)
        if existing is not None:
            return existing

        full = self._check_capacity(booking.appointment_date, "pre-forward re-check")
        if full is not None:
            return full

        return self._forward(booking)

    def _check_capacity(self, appointment_date: date, stage: str) -> Optional[AdmissionResult]:
        try:
            count = self._capacity.count_active(appointment_date)
        except StoreUnavailable as e:
            logger.warning(
                "Capacity %s skipped for %s, store unavailable: %s", stage, appointment_date, e
            )
            return None

        if count >= self._capacity.capacity:
            logger.info(
                "Date %s is fully booked with %d bookings (%s)", appointment_date, count, stage
            )
            return AdmissionResult(
                outcome=AdmissionOutcome.DATE_FULLY_BOOKED,
                message=(
                    f"The selected date {appointment_date.isoformat()} is fully booked. "
                    "Please choose another date."
                ),
                current_count=count,
            )
        return None

    def _find_existing(self, booking: NormalizedBooking) -> Optional[AdmissionResult]:
        try:
            existing = self._store.find_by_key(
                booking.email, booking.registration, booking.appointment_date
            )
        except StoreUnavailable as e:
            logger.warning("Existing-booking check skipped, store unavailable: %s", e)
            return None

        if existing is None:
            return None
        logger.info("Existing booking found: %s", existing.id)
        return AdmissionResult(
            outcome=AdmissionOutcome.ALREADY_EXISTS,
            message="A booking with these details already exists.",
            booking_id=existing.id,
            status=existing.status,
            existing_booking=existing,
        )

    def _forward(self, booking: NormalizedBooking) -> AdmissionResult:
        try:
            response = self._dispatcher.submit(booking)
        except DispatchError as e:
            logger.error("Booking dispatch failed for %s: %s", booking.fingerprint, e)
            return AdmissionResult(
                outcome=AdmissionOutcome.DISPATCH_FAILED,
                message="Failed to process booking. Please try again or contact support.",
            )

        booking_id = response.get("id") or BookingStatus.PENDING.value
        logger.info("Booking admitted: %s (%s)", booking_id, booking.fingerprint)
        return AdmissionResult(
            outcome=AdmissionOutcome.ADMITTED,
            message="Booking submitted successfully",
            booking_id=str(booking_id),
            status=BookingStatus.PENDING,
        )
