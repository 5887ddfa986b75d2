"""
Duplicate booking cleanup for the system of record.

Racing submissions from other instances, or from before the dedup window
existed, can leave several rows for one (email, registration, date). This
keeps the best row of each group and deletes the rest: rows that carry a
status win over rows that don't, then the earliest ``created_at`` wins.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from booking_admission.schemas.booking_schema import Booking
from booking_admission.tools.booking_store import BookingStore, StoreUnavailable

logger = logging.getLogger(__name__)

_NO_TIMESTAMP = datetime.max.replace(tzinfo=timezone.utc)


@dataclass
class CleanupReport:
    duplicate_groups: int = 0
    deleted_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_ids)


def _group_key(booking: Booking) -> tuple[Optional[str], Optional[str], Optional[date]]:
    return booking.email, booking.reg, booking.appointment_date


def _keep_order(booking: Booking) -> tuple[int, datetime]:
    created = booking.created_at or _NO_TIMESTAMP
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (0 if booking.status else 1, created)


def find_duplicates(bookings: list[Booking]) -> list[tuple[Booking, list[Booking]]]:
    """Return ``(kept, to_delete)`` for every group with more than one row."""
    groups: dict[tuple, list[Booking]] = {}
    for booking in bookings:
        groups.setdefault(_group_key(booking), []).append(booking)

    result = []
    for rows in groups.values():
        if len(rows) < 2:
            continue
        ordered = sorted(rows, key=_keep_order)
        result.append((ordered[0], ordered[1:]))
    return result


def cleanup_duplicates(store: BookingStore) -> CleanupReport:
    """Delete duplicate rows from the store.

    Raises:
        StoreUnavailable: If the bookings cannot be listed. Individual delete
            failures are recorded in the report instead.
    """
    report = CleanupReport()
    for kept, duplicates in find_duplicates(store.list_bookings()):
        report.duplicate_groups += 1
        logger.info(
            "Keeping booking %s (status: %s), %d duplicate(s)",
            kept.id, kept.status.value if kept.status else None, len(duplicates),
        )
        for dup in duplicates:
            try:
                store.delete_booking(dup.id)
            except StoreUnavailable as e:
                logger.error("Failed to delete booking %s: %s", dup.id, e)
                report.failed_ids.append(dup.id)
            else:
                report.deleted_ids.append(dup.id)
    return report
