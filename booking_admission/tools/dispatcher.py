"""
Workflow dispatcher adapters.

Admitted bookings are handed to an external workflow (n8n webhooks in
production) which owns the insert into the system of record. Status
transitions and cancellations are forwarded the same way.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from booking_admission.schemas.booking_schema import BookingStatus, NormalizedBooking
from booking_admission.tools.booking_store import InMemoryBookingStore

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Raised when the workflow dispatcher rejects or cannot receive a call."""


class WorkflowDispatcher(Protocol):
    """Outbound interface to the booking workflow."""

    def submit(self, booking: NormalizedBooking) -> dict[str, Any]: ...

    def notify_transition(self, booking_id: str, status: BookingStatus) -> bool: ...

    def submit_cancellation(self, booking_id: str) -> dict[str, Any]: ...


def to_webhook_payload(booking: NormalizedBooking) -> dict[str, Any]:
    """Serialize a booking with the field names the booking workflow expects."""
    return {
        "name": booking.name,
        "email": booking.email,
        "phoneNumber": booking.phone,
        "carReg": booking.registration,
        "carMake": booking.vehicle_make,
        "carModel": booking.vehicle_model,
        "appointmentDate": booking.appointment_date.isoformat(),
        "carNeeds": booking.service_notes,
        "status": booking.status.value,
        "created_at": booking.created_at.isoformat(),
    }


@dataclass
class WebhookDispatcher:
    """Posts booking events to per-purpose webhook URLs."""

    booking_url: str
    cancel_url: str = ""
    transition_urls: dict[BookingStatus, str] = field(default_factory=dict)
    secret_header: str = "x-internal-secret"
    secret_value: str = ""
    timeout_seconds: float = 15.0
    transport: Optional[httpx.BaseTransport] = None

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_seconds, transport=self.transport)

    def _post(
        self, url: str, payload: dict[str, Any], headers: Optional[dict[str, str]] = None
    ) -> dict[str, Any]:
        try:
            with self._client() as client:
                resp = client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = (e.response.text or "").strip()
            raise DispatchError(
                f"Webhook POST {url} failed: HTTP {e.response.status_code}. {body}"
            ) from e
        except httpx.HTTPError as e:
            raise DispatchError(f"Webhook POST {url} failed: {e}") from e

        # Workflows may answer with an empty body or plain text.
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def submit(self, booking: NormalizedBooking) -> dict[str, Any]:
        if not self.booking_url:
            raise DispatchError("No booking webhook URL configured.")
        data = self._post(self.booking_url, to_webhook_payload(booking))
        booking_id = data.get("id")
        logger.info("Booking forwarded for %s on %s", booking.email, booking.appointment_date)
        return {
            "id": str(booking_id) if booking_id is not None else None,
            "status": data.get("status", BookingStatus.PENDING.value),
        }

    def notify_transition(self, booking_id: str, status: BookingStatus) -> bool:
        """Post a transition event. Returns False when no webhook is configured for it."""
        url = self.transition_urls.get(status)
        if not url or not self.secret_value:
            logger.debug("No %s webhook configured, skipping notification", status.value)
            return False
        self._post(url, {"id": str(booking_id)}, headers={self.secret_header: self.secret_value})
        logger.info("Transition notified: booking %s -> %s", booking_id, status.value)
        return True

    def submit_cancellation(self, booking_id: str) -> dict[str, Any]:
        if not self.cancel_url:
            raise DispatchError("No cancel webhook URL configured.")
        data = self._post(self.cancel_url, {"bookingId": booking_id})
        logger.info("Cancellation forwarded for booking %s", booking_id)
        return data


class InMemoryDispatcher:
    """Local stand-in for the workflow: inserts straight into an in-memory store."""

    def __init__(self, store: InMemoryBookingStore) -> None:
        self._store = store
        self.submitted: list[NormalizedBooking] = []
        self.notifications: list[tuple[str, BookingStatus]] = []
        self.cancellations: list[str] = []

    def submit(self, booking: NormalizedBooking) -> dict[str, Any]:
        self.submitted.append(booking)
        row = self._store.insert(booking)
        return {"id": row.id, "status": BookingStatus.PENDING.value}

    def notify_transition(self, booking_id: str, status: BookingStatus) -> bool:
        self.notifications.append((booking_id, status))
        return True

    def submit_cancellation(self, booking_id: str) -> dict[str, Any]:
        self.cancellations.append(booking_id)
        return {"success": True, "bookingId": booking_id}
