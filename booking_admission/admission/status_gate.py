"""
Status transition gate for bookings that have already been admitted.

Lifecycle edges are declared explicitly; anything not listed is illegal:

    pending  -> approved | declined | completed
    approved -> completed
    declined, completed, cancelled, unknown: terminal

Cancelled rows come from the cancel workflow and unknown ones from other
tooling writing the store; the gate never moves a booking out of either.

Only a verified staff identity may drive a transition. The gate decides
whether the edge is legal; the store performs the write, and the
workflow is told afterwards through the notification outbox.
"""

import logging
from typing import Optional, Union

from booking_admission.schemas.booking_schema import (
    BookingStatus,
    TransitionOutcome,
    TransitionResult,
)
from booking_admission.schemas.staff_schema import VerifiedIdentity
from booking_admission.tools.booking_store import BookingNotFound, BookingStore, StoreUnavailable
from booking_admission.tools.notifications import NotificationOutbox

logger = logging.getLogger(__name__)

LEGAL_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.APPROVED, BookingStatus.DECLINED, BookingStatus.COMPLETED}
    ),
    BookingStatus.APPROVED: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.UNKNOWN: frozenset(),
}


def valid_targets(current: BookingStatus) -> list[BookingStatus]:
    """Statuses reachable in one step from ``current``."""
    return sorted(LEGAL_TRANSITIONS[current], key=lambda s: s.value)


def is_terminal(status: BookingStatus) -> bool:
    return not LEGAL_TRANSITIONS[status]


class IllegalTransitionError(Exception):
    """Raised when a booking cannot move from its current status to the requested one."""

    def __init__(self, current: BookingStatus, requested: Union[BookingStatus, str]) -> None:
        self.current = current
        self.requested = requested
        requested_value = requested.value if isinstance(requested, BookingStatus) else requested
        if is_terminal(current):
            detail = f"'{current.value}' is a final status"
        else:
            detail = f"Valid targets: {[s.value for s in valid_targets(current)]}"
        super().__init__(
            f"Cannot move booking from '{current.value}' to '{requested_value}'. {detail}"
        )


def check_transition(
    current: BookingStatus, requested: Union[BookingStatus, str]
) -> BookingStatus:
    """Return the requested status if the edge is legal.

    Raises:
        IllegalTransitionError: If the edge is not declared or the status is unknown.
    """
    try:
        target = BookingStatus(requested)
    except ValueError:
        raise IllegalTransitionError(current, requested) from None
    if target not in LEGAL_TRANSITIONS[current]:
        raise IllegalTransitionError(current, target)
    return target


class StatusTransitionGate:
    """Guards lifecycle transitions and hands notifications to the outbox."""

    def __init__(self, store: BookingStore, outbox: NotificationOutbox) -> None:
        self._store = store
        self._outbox = outbox

    def transition(
        self,
        booking_id: str,
        target_status: Union[BookingStatus, str],
        caller: Optional[VerifiedIdentity],
    ) -> TransitionResult:
        if caller is None:
            return TransitionResult(
                outcome=TransitionOutcome.UNAUTHENTICATED,
                message="A verified staff identity is required.",
            )

        try:
            booking = self._store.get_booking(booking_id)
        except BookingNotFound as e:
            return TransitionResult(outcome=TransitionOutcome.NOT_FOUND, message=str(e))
        except StoreUnavailable as e:
            logger.error("Cannot read booking %s: %s", booking_id, e)
            return TransitionResult(
                outcome=TransitionOutcome.STORE_UNAVAILABLE,
                message="Booking store is unavailable. Please try again.",
            )

        # Rows written before statuses existed count as pending.
        current = booking.status or BookingStatus.PENDING
        try:
            target = check_transition(current, target_status)
        except IllegalTransitionError as e:
            logger.info("Rejected transition for booking %s: %s", booking_id, e)
            return TransitionResult(
                outcome=TransitionOutcome.ILLEGAL_TRANSITION,
                message=str(e),
                booking=booking,
                current_status=current,
                requested_status=(
                    e.requested if isinstance(e.requested, BookingStatus) else None
                ),
            )

        try:
            updated = self._store.update_status(booking_id, target)
        except BookingNotFound as e:
            return TransitionResult(outcome=TransitionOutcome.NOT_FOUND, message=str(e))
        except StoreUnavailable as e:
            logger.error("Status update failed for booking %s: %s", booking_id, e)
            return TransitionResult(
                outcome=TransitionOutcome.STORE_UNAVAILABLE,
                message="Booking store is unavailable. Please try again.",
                current_status=current,
                requested_status=target,
            )

        logger.info(
            "Booking %s moved %s -> %s by %s",
            booking_id, current.value, target.value, caller.email or caller.subject_id,
        )
        return TransitionResult(
            outcome=TransitionOutcome.TRANSITIONED,
            message=f"Booking {booking_id} is now {target.value}.",
            booking=updated,
            current_status=current,
            requested_status=target,
            notification_queued=self._queue_notification(booking_id, target),
        )

    def _queue_notification(self, booking_id: str, status: BookingStatus) -> bool:
        try:
            self._outbox.enqueue(booking_id, status)
        except RuntimeError as e:
            # Executor already shut down; the status change stands.
            logger.error("Could not queue notification for booking %s: %s", booking_id, e)
            return False
        return True
