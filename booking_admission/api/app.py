"""
HTTP surface of the admission service.

Public routes (no auth): booking intent, availability, policy preview,
cancellation. Staff routes (bearer token): status transitions, booking
list, duplicate cleanup.

Handlers are plain ``def`` functions so FastAPI runs each request on its
worker thread pool; the dedup window is the only shared in-process state.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from booking_admission.admission.cleanup import cleanup_duplicates
from booking_admission.admission.policy import evaluate, policy_window
from booking_admission.api.services import Services, build_services
from booking_admission.config import AppConfig, settings
from booking_admission.logging_context import get_request_id, new_request_id, set_request_id
from booking_admission.schemas.booking_schema import (
    AdmissionOutcome,
    AdmissionResult,
    BookingRequest,
    BookingStatus,
    TransitionOutcome,
    TransitionResult,
)
from booking_admission.schemas.staff_schema import VerifiedIdentity
from booking_admission.tools.booking_store import StoreUnavailable
from booking_admission.tools.dispatcher import DispatchError
from booking_admission.tools.identity import AuthenticationError, extract_bearer_token
from booking_admission.utils import parse_iso_date

logger = logging.getLogger(__name__)

ADMISSION_STATUS_CODES: dict[AdmissionOutcome, int] = {
    AdmissionOutcome.ADMITTED: 201,
    AdmissionOutcome.INVALID_REQUEST: 400,
    AdmissionOutcome.PAST: 400,
    AdmissionOutcome.TOO_SOON: 400,
    AdmissionOutcome.TOO_FAR: 400,
    AdmissionOutcome.WEEKEND: 400,
    AdmissionOutcome.DUPLICATE_SUBMISSION: 409,
    AdmissionOutcome.DATE_FULLY_BOOKED: 409,
    AdmissionOutcome.ALREADY_EXISTS: 409,
    AdmissionOutcome.DISPATCH_FAILED: 502,
}

TRANSITION_STATUS_CODES: dict[TransitionOutcome, int] = {
    TransitionOutcome.TRANSITIONED: 200,
    TransitionOutcome.ILLEGAL_TRANSITION: 409,
    TransitionOutcome.UNAUTHENTICATED: 401,
    TransitionOutcome.NOT_FOUND: 404,
    TransitionOutcome.STORE_UNAVAILABLE: 503,
}

SHORTHAND_ACTIONS: dict[str, BookingStatus] = {
    "approve": BookingStatus.APPROVED,
    "decline": BookingStatus.DECLINED,
    "complete": BookingStatus.COMPLETED,
}


def _error(status_code: int, message: str, reason: str, **details: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "reason": reason, **details},
    )


def admission_response(result: AdmissionResult) -> JSONResponse:
    """Render an admission decision as an HTTP response."""
    status_code = ADMISSION_STATUS_CODES[result.outcome]
    if result.admitted:
        return JSONResponse(
            status_code=status_code,
            content={
                "message": result.message,
                "bookingId": result.booking_id,
                "status": result.status.value if result.status else None,
            },
        )

    details: dict[str, Any] = {}
    if result.current_count is not None:
        details["currentBookings"] = result.current_count
    if result.existing_booking is not None:
        details["existingBooking"] = result.existing_booking.model_dump(mode="json")
    if result.missing_fields:
        details["missingFields"] = result.missing_fields
    return _error(status_code, result.message, result.outcome.value, **details)


def transition_response(result: TransitionResult) -> JSONResponse:
    """Render a transition decision as an HTTP response."""
    status_code = TRANSITION_STATUS_CODES[result.outcome]
    if result.succeeded and result.booking is not None:
        return JSONResponse(status_code=status_code, content=result.booking.model_dump(mode="json"))

    details: dict[str, Any] = {}
    if result.current_status is not None:
        details["currentStatus"] = result.current_status.value
    if result.requested_status is not None:
        details["requestedStatus"] = result.requested_status.value
    return _error(status_code, result.message, result.outcome.value, **details)


def create_app(
    services: Optional[Services] = None, config: AppConfig = settings
) -> FastAPI:
    """Build the FastAPI application around a ``Services`` bundle."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.services.outbox.shutdown(wait=False)

    app = FastAPI(lifespan=lifespan, title="Booking Admission API", version="1.0.0")
    app.state.services = services if services is not None else build_services(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.server.allowed_origins) or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        set_request_id(request.headers.get("x-request-id") or new_request_id())
        response = await call_next(request)
        response.headers["X-Request-ID"] = get_request_id()
        return response

    @app.exception_handler(AuthenticationError)
    async def _unauthenticated(_request: Request, exc: AuthenticationError) -> JSONResponse:
        return _error(401, str(exc), TransitionOutcome.UNAUTHENTICATED.value)

    def get_services(request: Request) -> Services:
        return request.app.state.services

    def require_staff(
        authorization: Optional[str] = Header(default=None),
        svc: Services = Depends(get_services),
    ) -> VerifiedIdentity:
        token = extract_bearer_token(authorization)
        if token is None:
            logger.info("No auth token provided")
            raise AuthenticationError("No authorization token provided")
        return svc.identity.verify(token)

    # ------------------------------------------------------------------ #
    # Public routes
    # ------------------------------------------------------------------ #

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @app.post("/api/bookings")
    def create_booking(
        payload: dict[str, Any] = Body(...),
        svc: Services = Depends(get_services),
    ) -> JSONResponse:
        try:
            request = BookingRequest.model_validate(payload)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            return _error(
                400,
                f"Malformed booking fields: {', '.join(fields)}.",
                AdmissionOutcome.INVALID_REQUEST.value,
                missingFields=fields,
            )
        return admission_response(svc.controller.admit(request))

    @app.get("/api/availability")
    def availability(svc: Services = Depends(get_services)) -> JSONResponse:
        try:
            dates = svc.capacity.unavailable_dates()
        except StoreUnavailable as e:
            logger.error("GET /api/availability error: %s", e)
            return JSONResponse(status_code=500, content={"error": "Failed to fetch availability"})
        return JSONResponse(content={"unavailableDates": [d.isoformat() for d in dates]})

    @app.get("/api/policy/verdict")
    def policy_verdict(
        requested: str = Query(..., alias="date"),
        svc: Services = Depends(get_services),
    ) -> JSONResponse:
        parsed = parse_iso_date(requested)
        if parsed is None:
            return _error(
                400, f"Invalid date {requested!r}, expected YYYY-MM-DD.",
                AdmissionOutcome.INVALID_REQUEST.value,
            )
        today = svc.controller.today()
        window = policy_window(today)
        return JSONResponse(content={
            "date": parsed.isoformat(),
            "verdict": evaluate(parsed, today).value,
            "earliest": window.earliest.isoformat(),
            "latest": window.latest.isoformat(),
        })

    @app.post("/api/bookings/cancel")
    def cancel_booking(
        payload: dict[str, Any] = Body(...),
        svc: Services = Depends(get_services),
    ) -> JSONResponse:
        booking_id = payload.get("bookingId")
        if not booking_id:
            return JSONResponse(status_code=400, content={"error": "Missing bookingId"})
        try:
            data = svc.dispatcher.submit_cancellation(str(booking_id))
        except DispatchError as e:
            logger.error("POST /api/bookings/cancel error: %s", e)
            return _error(502, "Failed to cancel booking", AdmissionOutcome.DISPATCH_FAILED.value)
        return JSONResponse(content=data)

    # ------------------------------------------------------------------ #
    # Staff routes
    # ------------------------------------------------------------------ #

    @app.get("/api/bookings")
    def list_bookings(
        _staff: VerifiedIdentity = Depends(require_staff),
        svc: Services = Depends(get_services),
    ) -> JSONResponse:
        try:
            bookings = svc.store.list_bookings()
        except StoreUnavailable as e:
            logger.error("GET /api/bookings error: %s", e)
            return JSONResponse(status_code=500, content={"error": "Failed to fetch"})
        return JSONResponse(content=[b.model_dump(mode="json") for b in bookings])

    @app.post("/api/bookings/{booking_id}/transition")
    def transition_booking(
        booking_id: str,
        payload: dict[str, Any] = Body(...),
        staff: VerifiedIdentity = Depends(require_staff),
        svc: Services = Depends(get_services),
    ) -> JSONResponse:
        target = str(payload.get("status") or "").strip().lower()
        return transition_response(svc.gate.transition(booking_id, target, staff))

    @app.post("/api/bookings/{booking_id}/{action}")
    def transition_shorthand(
        booking_id: str,
        action: str,
        staff: VerifiedIdentity = Depends(require_staff),
        svc: Services = Depends(get_services),
    ) -> JSONResponse:
        target = SHORTHAND_ACTIONS.get(action)
        if target is None:
            return JSONResponse(status_code=404, content={"error": f"Unknown action '{action}'"})
        return transition_response(svc.gate.transition(booking_id, target, staff))

    @app.post("/api/admin/cleanup-duplicates")
    def cleanup(
        _staff: VerifiedIdentity = Depends(require_staff),
        svc: Services = Depends(get_services),
    ) -> JSONResponse:
        try:
            report = cleanup_duplicates(svc.store)
        except StoreUnavailable as e:
            logger.error("Cleanup error: %s", e)
            return JSONResponse(status_code=500, content={"error": "Failed to cleanup duplicates"})
        return JSONResponse(content={
            "message": (
                f"Cleanup completed. Found {report.duplicate_groups} groups with duplicates."
            ),
            "deletedCount": report.deleted_count,
            "duplicateGroups": report.duplicate_groups,
            "failedIds": report.failed_ids,
        })

    return app
