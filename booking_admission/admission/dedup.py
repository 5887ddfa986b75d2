"""
Process-local window of recently accepted submission fingerprints.

Rejects near-simultaneous resubmissions of the same booking before they
reach the store. Entries are written optimistically when an admission
attempt starts and evicted again if that attempt is rejected, so a
legitimate retry is never left suppressed.

Memory stays bounded without a background task: ``sweep`` runs inline on
every admission attempt and drops entries older than the retention
interval.

The window only sees submissions handled by this process. With several
instances behind a load balancer, suppression is best effort per
instance unless the map is moved to a shared store.

Usage:
    window = DeduplicationWindow(clock=time.monotonic)
    if window.check_and_record(fingerprint):
        ...  # first submission in the window, proceed
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from booking_admission.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DedupEntry:
    """A fingerprint and the clock reading at which it was accepted."""
    fingerprint: str
    accepted_at: float


class DeduplicationWindow:
    """Lock-guarded fingerprint map with an injected clock.

    Every method holds the lock for a single dict operation, except
    ``sweep`` which walks the in-memory map once. No method does I/O.
    """

    def __init__(
        self,
        suppression_seconds: float = settings.admission.suppression_seconds,
        retention_seconds: float = settings.admission.retention_seconds,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if retention_seconds < suppression_seconds:
            raise ValueError("retention_seconds must be >= suppression_seconds")
        self._suppression = suppression_seconds
        self._retention = retention_seconds
        self._clock = clock
        self._entries: dict[str, DedupEntry] = {}
        self._lock = threading.Lock()

    @property
    def suppression_seconds(self) -> float:
        return self._suppression

    def now(self) -> float:
        """Current reading of the injected clock."""
        return self._clock()

    def _is_suppressed(self, fingerprint: str, now: float) -> bool:
        entry = self._entries.get(fingerprint)
        return entry is not None and now - entry.accepted_at < self._suppression

    def should_suppress(self, fingerprint: str, now: Optional[float] = None) -> bool:
        """True if the fingerprint was accepted less than the suppression interval ago."""
        now = self._clock() if now is None else now
        with self._lock:
            return self._is_suppressed(fingerprint, now)

    def record(self, fingerprint: str, now: Optional[float] = None) -> None:
        """Insert or overwrite the entry for ``fingerprint``."""
        now = self._clock() if now is None else now
        with self._lock:
            self._entries[fingerprint] = DedupEntry(fingerprint, now)

    def check_and_record(self, fingerprint: str, now: Optional[float] = None) -> bool:
        """Record ``fingerprint`` unless it is suppressed.

        Returns False when the fingerprint is suppressed. The check and the
        write share one lock acquisition, so of two racing identical
        submissions exactly one gets True.
        """
        now = self._clock() if now is None else now
        with self._lock:
            if self._is_suppressed(fingerprint, now):
                return False
            self._entries[fingerprint] = DedupEntry(fingerprint, now)
            return True

    def evict(self, fingerprint: str) -> None:
        """Remove the entry immediately so the fingerprint can be resubmitted."""
        with self._lock:
            self._entries.pop(fingerprint, None)

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop entries older than the retention interval. Returns how many were removed."""
        now = self._clock() if now is None else now
        with self._lock:
            expired = [
                key for key, entry in self._entries.items()
                if now - entry.accepted_at > self._retention
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Dedup sweep removed %d expired entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._entries
