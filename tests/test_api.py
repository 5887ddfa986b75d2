"""Tests for the HTTP surface, driven through FastAPI's TestClient."""

from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from booking_admission.api import assemble, create_app
from booking_admission.schemas.booking_schema import Booking, BookingStatus
from booking_admission.tools.booking_store import (
    InMemoryBookingStore,
    RestBookingStore,
    StoreUnavailable,
)
from booking_admission.tools.dispatcher import DispatchError, InMemoryDispatcher
from booking_admission.tools.identity import StaticIdentityProvider
from tests.conftest import CAPACITY, TODAY, VALID_DATE, fill_date, make_booking

STAFF_HEADERS = {"Authorization": "Bearer staff-token"}

PAYLOAD = {
    "name": "Aoife Byrne",
    "email": "A@B.com",
    "phoneNumber": "087 123 4567",
    "carReg": "191-d-1",
    "carMake": "Toyota",
    "carModel": "Corolla",
    "appointmentDate": VALID_DATE.isoformat(),
    "carNeeds": "Annual service",
}


@pytest.fixture
def services(store, dispatcher, dedup, outbox):
    identity = StaticIdentityProvider.from_entries(("staff-token:uid-1:staff@garage.ie",))
    return assemble(store, dispatcher, identity, dedup=dedup, outbox=outbox, today=lambda: TODAY)


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


class TestPublicRoutes:
    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True}

    def test_booking_admitted(self, client, dispatcher):
        resp = client.post("/api/bookings", json=PAYLOAD)
        assert resp.status_code == 201
        body = resp.json()
        assert body["bookingId"] == "1"
        assert body["status"] == "pending"
        assert dispatcher.submitted[0].email == "a@b.com"
        assert dispatcher.submitted[0].registration == "191-D-1"
        assert dispatcher.submitted[0].phone == "0871234567"

    def test_snake_case_fields_accepted(self, client):
        payload = {
            "name": "Aoife Byrne",
            "email": "a@b.com",
            "phone": "0871234567",
            "registration": "191-D-1",
            "appointment_date": VALID_DATE.isoformat(),
        }
        assert client.post("/api/bookings", json=payload).status_code == 201

    def test_duplicate_submission(self, client, dispatcher):
        client.post("/api/bookings", json=PAYLOAD)
        resp = client.post("/api/bookings", json=PAYLOAD)
        assert resp.status_code == 409
        assert resp.json()["reason"] == "duplicate_submission"
        assert len(dispatcher.submitted) == 1

    def test_missing_fields(self, client):
        payload = {k: v for k, v in PAYLOAD.items() if k not in ("email", "carReg")}
        resp = client.post("/api/bookings", json=payload)
        assert resp.status_code == 400
        body = resp.json()
        assert body["reason"] == "invalid_request"
        assert body["missingFields"] == ["email", "registration"]

    def test_wrongly_typed_field(self, client):
        resp = client.post("/api/bookings", json={**PAYLOAD, "email": 42})
        assert resp.status_code == 400
        assert resp.json()["reason"] == "invalid_request"

    def test_weekend_rejected(self, client):
        resp = client.post("/api/bookings", json={**PAYLOAD, "appointmentDate": "2024-06-22"})
        assert resp.status_code == 400
        assert resp.json()["reason"] == "weekend"

    def test_fully_booked(self, client, store):
        fill_date(store, VALID_DATE, CAPACITY)
        resp = client.post("/api/bookings", json=PAYLOAD)
        assert resp.status_code == 409
        body = resp.json()
        assert body["reason"] == "date_fully_booked"
        assert body["currentBookings"] == CAPACITY

    def test_already_exists(self, client, store):
        store.add(make_booking("7", email="a@b.com", reg="191-D-1"))
        resp = client.post("/api/bookings", json=PAYLOAD)
        assert resp.status_code == 409
        body = resp.json()
        assert body["reason"] == "already_exists"
        assert body["existingBooking"]["id"] == "7"

    def test_dispatch_failed(self, client, dispatcher):
        with patch.object(dispatcher, "submit", side_effect=DispatchError("503")):
            resp = client.post("/api/bookings", json=PAYLOAD)
        assert resp.status_code == 502
        assert resp.json()["reason"] == "dispatch_failed"

    def test_availability(self, client, store):
        fill_date(store, VALID_DATE, CAPACITY)
        store.add(make_booking("1", appointment_date=TODAY))
        resp = client.get("/api/availability")
        assert resp.status_code == 200
        assert resp.json() == {"unavailableDates": [VALID_DATE.isoformat()]}

    def test_availability_store_down(self, client, store):
        with patch.object(store, "count_by_all_dates", side_effect=StoreUnavailable("down")):
            resp = client.get("/api/availability")
        assert resp.status_code == 500

    def test_policy_verdict(self, client):
        resp = client.get("/api/policy/verdict", params={"date": VALID_DATE.isoformat()})
        assert resp.status_code == 200
        assert resp.json() == {
            "date": "2024-06-24",
            "verdict": "ok",
            "earliest": "2024-06-18",
            "latest": "2024-09-03",
        }

    def test_policy_verdict_too_soon(self, client):
        resp = client.get("/api/policy/verdict", params={"date": "2024-06-17"})
        assert resp.json()["verdict"] == "too_soon"

    def test_policy_verdict_bad_date(self, client):
        resp = client.get("/api/policy/verdict", params={"date": "next week"})
        assert resp.status_code == 400

    def test_cancel(self, client, dispatcher):
        resp = client.post("/api/bookings/cancel", json={"bookingId": "7"})
        assert resp.status_code == 200
        assert dispatcher.cancellations == ["7"]

    def test_cancel_requires_id(self, client):
        assert client.post("/api/bookings/cancel", json={}).status_code == 400

    def test_cancel_dispatch_failure(self, client, dispatcher):
        with patch.object(dispatcher, "submit_cancellation", side_effect=DispatchError("down")):
            resp = client.post("/api/bookings/cancel", json={"bookingId": "7"})
        assert resp.status_code == 502


class TestStaffRoutes:
    def test_list_requires_token(self, client):
        resp = client.get("/api/bookings")
        assert resp.status_code == 401
        assert resp.json()["reason"] == "unauthenticated"

    def test_list_rejects_unknown_token(self, client):
        resp = client.get("/api/bookings", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_list_bookings(self, client, store):
        store.add(make_booking("1"))
        resp = client.get("/api/bookings", headers=STAFF_HEADERS)
        assert resp.status_code == 200
        assert [b["id"] for b in resp.json()] == ["1"]

    def test_approve(self, client, store):
        store.add(make_booking("1"))
        resp = client.post("/api/bookings/1/approve", headers=STAFF_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"
        assert store.get_booking("1").status == BookingStatus.APPROVED

    def test_transition_body_status_is_case_insensitive(self, client, store):
        store.add(make_booking("1", status=BookingStatus.APPROVED))
        resp = client.post(
            "/api/bookings/1/transition", json={"status": "Completed"}, headers=STAFF_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

    def test_illegal_transition(self, client, store):
        store.add(make_booking("1", status=BookingStatus.APPROVED))
        resp = client.post("/api/bookings/1/decline", headers=STAFF_HEADERS)
        assert resp.status_code == 409
        body = resp.json()
        assert body["reason"] == "illegal_transition"
        assert body["currentStatus"] == "approved"
        assert body["requestedStatus"] == "declined"

    def test_transition_requires_token(self, client, store):
        store.add(make_booking("1"))
        assert client.post("/api/bookings/1/approve").status_code == 401
        assert store.get_booking("1").status == BookingStatus.PENDING

    def test_transition_unknown_booking(self, client):
        assert client.post("/api/bookings/99/approve", headers=STAFF_HEADERS).status_code == 404

    def test_unknown_action(self, client, store):
        store.add(make_booking("1"))
        assert client.post("/api/bookings/1/archive", headers=STAFF_HEADERS).status_code == 404

    def test_cleanup_duplicates(self, client, store):
        store.add(make_booking("1", email="a@b.com", reg="191-D-1"))
        store.add(make_booking("2", email="a@b.com", reg="191-D-1", created_offset_minutes=5))
        resp = client.post("/api/admin/cleanup-duplicates", headers=STAFF_HEADERS)
        assert resp.status_code == 200
        body = resp.json()
        assert body["deletedCount"] == 1
        assert body["duplicateGroups"] == 1
        assert [b.id for b in store.list_bookings()] == ["1"]


class TestRequestId:
    def test_generated(self, client):
        assert client.get("/health").headers["X-Request-ID"].startswith("REQ-")

    def test_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "REQ-fixed"})
        assert resp.headers["X-Request-ID"] == "REQ-fixed"


class TestStoredStatusesFromOtherTooling:
    """Rows whose status this service does not set must not break any route."""

    def _rest_client(self, rows, dedup, outbox):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("select") == "id":
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=rows)

        store = RestBookingStore(
            base_url="https://db.example.co",
            service_role_key="service-key",
            transport=httpx.MockTransport(handler),
        )
        dispatcher = InMemoryDispatcher(InMemoryBookingStore())
        identity = StaticIdentityProvider.from_entries(("staff-token:uid-1",))
        services = assemble(
            store, dispatcher, identity, dedup=dedup, outbox=outbox, today=lambda: TODAY
        )
        return TestClient(create_app(services)), dispatcher

    def test_cancelled_row_on_booking_path(self, dedup, outbox):
        row = {
            "id": 5, "email": "a@b.com", "reg": "191-D-1",
            "appointment_date": VALID_DATE.isoformat(), "status": "cancelled",
        }
        client, dispatcher = self._rest_client([row], dedup, outbox)
        resp = client.post("/api/bookings", json=PAYLOAD)
        assert resp.status_code == 409
        body = resp.json()
        assert body["reason"] == "already_exists"
        assert body["existingBooking"]["status"] == "cancelled"
        assert dispatcher.submitted == []

    def test_unparseable_row_fails_open(self, dedup, outbox):
        row = {"id": 5, "appointment_date": "not-a-date", "status": "pending"}
        client, dispatcher = self._rest_client([row], dedup, outbox)
        resp = client.post("/api/bookings", json=PAYLOAD)
        assert resp.status_code == 201
        assert len(dispatcher.submitted) == 1

    def test_list_and_cleanup_with_foreign_statuses(self, client, store):
        store.add(make_booking("1", status=BookingStatus.CANCELLED, email="a@b.com", reg="R"))
        store.add(Booking.model_validate({
            "id": "2", "email": "a@b.com", "reg": "R",
            "appointment_date": VALID_DATE.isoformat(), "status": "On Hold",
            "created_at": "2024-05-01T10:00:00+00:00",
        }))

        listed = client.get("/api/bookings", headers=STAFF_HEADERS)
        assert listed.status_code == 200
        assert [b["status"] for b in listed.json()] == ["cancelled", "unknown"]
        assert listed.json()[1]["raw_status"] == "on hold"

        cleaned = client.post("/api/admin/cleanup-duplicates", headers=STAFF_HEADERS)
        assert cleaned.status_code == 200
        assert cleaned.json()["deletedCount"] == 1
