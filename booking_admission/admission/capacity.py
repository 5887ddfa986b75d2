"""
Per-date capacity reads against the booking store.

The count includes every row on the date whatever its status, declined
bookings included. That is how the system of record has always been
queried; whether declined rows should free their slot is an open policy
question, so the count is kept as-is.
"""

import logging
from datetime import date

from booking_admission.config import settings
from booking_admission.tools.booking_store import BookingStore

logger = logging.getLogger(__name__)


class CapacityLedgerReader:
    """Stateless reader; raises ``StoreUnavailable`` when the store is down."""

    def __init__(
        self, store: BookingStore, capacity: int = settings.admission.date_capacity
    ) -> None:
        self._store = store
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    def count_active(self, appointment_date: date) -> int:
        count = self._store.count_by_date(appointment_date)
        logger.debug("Date %s has %d/%d bookings", appointment_date, count, self._capacity)
        return count

    def unavailable_dates(self) -> list[date]:
        """Dates that have reached capacity, in calendar order."""
        counts = self._store.count_by_all_dates()
        return sorted(d for d, count in counts.items() if count >= self._capacity)
