"""
Best-effort outbound queue for status-transition notifications.

A status change is committed in the store before anything is queued
here; delivery runs on worker threads with exponential backoff and its
outcome never feeds back into the transition result. Deliveries that
exhaust their retries are logged and kept in ``failed`` for inspection.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from booking_admission.config import settings
from booking_admission.schemas.booking_schema import BookingStatus
from booking_admission.tools.dispatcher import DispatchError, WorkflowDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedNotification:
    """A notification that could not be delivered after all retries."""
    booking_id: str
    status: BookingStatus
    error: str


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transition notification attempt %s failed (%s), retrying in %s sec",
        retry_state.attempt_number,
        exc,
        sleep_seconds,
    )


class NotificationOutbox:
    """Thread-pool backed queue that retries ``notify_transition`` calls."""

    def __init__(
        self,
        dispatcher: WorkflowDispatcher,
        max_attempts: int = settings.dispatcher.notify_retry_attempts,
        workers: int = settings.dispatcher.notify_workers,
        wait: Optional[wait_base] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._max_attempts = max_attempts
        self._wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=8)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
        self._failed: list[FailedNotification] = []
        self._lock = threading.Lock()

    def enqueue(self, booking_id: str, status: BookingStatus) -> "Future[bool]":
        """Schedule delivery and return immediately."""
        future = self._executor.submit(self._deliver, booking_id, status)
        future.add_done_callback(_log_unexpected_error)
        logger.debug("Queued transition notification: %s -> %s", booking_id, status.value)
        return future

    def _send(self, booking_id: str, status: BookingStatus) -> bool:
        return self._dispatcher.notify_transition(booking_id, status)

    def _deliver(self, booking_id: str, status: BookingStatus) -> bool:
        send = retry(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(DispatchError),
            before_sleep=_log_before_sleep,
            reraise=True,
        )(self._send)
        try:
            return send(booking_id, status)
        except DispatchError as e:
            logger.error(
                "Giving up on transition notification %s -> %s after %d attempts: %s",
                booking_id, status.value, self._max_attempts, e,
            )
            with self._lock:
                self._failed.append(FailedNotification(booking_id, status, str(e)))
            return False

    @property
    def failed(self) -> list[FailedNotification]:
        with self._lock:
            return list(self._failed)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _log_unexpected_error(future: "Future[bool]") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Transition notification crashed", exc_info=exc)
