"""
Service wiring: builds the admission components and their collaborators.

Routes never construct collaborators themselves; they receive a
``Services`` bundle. Production wiring talks to PostgREST, the n8n
webhooks, and Firebase. Without ``SUPABASE_URL`` the bundle falls back to
in-memory collaborators so the API can be run locally.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from booking_admission.admission.capacity import CapacityLedgerReader
from booking_admission.admission.controller import AdmissionController
from booking_admission.admission.dedup import DeduplicationWindow
from booking_admission.admission.status_gate import StatusTransitionGate
from booking_admission.config import AppConfig, settings
from booking_admission.schemas.booking_schema import BookingStatus
from booking_admission.tools.booking_store import (
    BookingStore,
    InMemoryBookingStore,
    RestBookingStore,
)
from booking_admission.tools.dispatcher import (
    InMemoryDispatcher,
    WebhookDispatcher,
    WorkflowDispatcher,
)
from booking_admission.tools.identity import (
    FirebaseIdentityProvider,
    IdentityProvider,
    StaticIdentityProvider,
)
from booking_admission.tools.notifications import NotificationOutbox

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP layer needs, built once per process."""

    store: BookingStore
    dispatcher: WorkflowDispatcher
    identity: IdentityProvider
    capacity: CapacityLedgerReader
    controller: AdmissionController
    outbox: NotificationOutbox
    gate: StatusTransitionGate


def assemble(
    store: BookingStore,
    dispatcher: WorkflowDispatcher,
    identity: IdentityProvider,
    config: AppConfig = settings,
    dedup: Optional[DeduplicationWindow] = None,
    outbox: Optional[NotificationOutbox] = None,
    today: Callable[[], date] = date.today,
) -> Services:
    """Build the admission components around the given collaborators."""
    capacity = CapacityLedgerReader(store, capacity=config.admission.date_capacity)
    if dedup is None:
        dedup = DeduplicationWindow(
            suppression_seconds=config.admission.suppression_seconds,
            retention_seconds=config.admission.retention_seconds,
        )
    if outbox is None:
        outbox = NotificationOutbox(
            dispatcher,
            max_attempts=config.dispatcher.notify_retry_attempts,
            workers=config.dispatcher.notify_workers,
        )
    controller = AdmissionController(
        store, dispatcher, dedup=dedup, capacity=capacity, today=today
    )
    return Services(
        store=store,
        dispatcher=dispatcher,
        identity=identity,
        capacity=capacity,
        controller=controller,
        outbox=outbox,
        gate=StatusTransitionGate(store, outbox),
    )


def build_services(config: AppConfig = settings) -> Services:
    """Wire collaborators from configuration."""
    if not config.store.url:
        logger.warning("SUPABASE_URL not set, using in-memory booking store and dispatcher")
        memory_store = InMemoryBookingStore()
        return assemble(
            memory_store,
            InMemoryDispatcher(memory_store),
            StaticIdentityProvider.from_entries(config.auth.staff_tokens),
            config,
        )

    store = RestBookingStore(
        base_url=config.store.url,
        service_role_key=config.store.service_role_key,
        table=config.store.table,
        timeout_seconds=config.store.timeout_seconds,
    )
    dispatcher = WebhookDispatcher(
        booking_url=config.dispatcher.booking_webhook_url,
        cancel_url=config.dispatcher.cancel_webhook_url,
        transition_urls={
            BookingStatus.APPROVED: config.dispatcher.approve_webhook_url,
            BookingStatus.DECLINED: config.dispatcher.decline_webhook_url,
            BookingStatus.COMPLETED: config.dispatcher.complete_webhook_url,
        },
        secret_header=config.dispatcher.secret_header,
        secret_value=config.dispatcher.secret_value,
        timeout_seconds=config.dispatcher.timeout_seconds,
    )
    identity: IdentityProvider
    if config.auth.firebase_api_key:
        identity = FirebaseIdentityProvider(api_key=config.auth.firebase_api_key)
    else:
        logger.warning("FIREBASE_API_KEY not set, staff tokens come from STAFF_TOKENS")
        identity = StaticIdentityProvider.from_entries(config.auth.staff_tokens)
    return assemble(store, dispatcher, identity, config)
