"""
HTTP API tests.

The app runs over the in-memory store (get_store is overridden) with a
recording notification gateway, a memory audit recorder and a pinned clock.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from apoint.models import BookingStatus
from apoint.rate_limiter import RateLimiter

from conftest import MONDAY_DOW, at


@pytest.fixture
async def client(store, notifications, audit, clock):
    from apoint.dependencies import get_store
    from apoint.main import app

    async def override_get_store():
        return store

    overrides = {
        "notifications": notifications,
        "audit": audit,
        "clock": clock,
        "rate_limiter": RateLimiter(max_requests=1000, window_seconds=60),
    }
    saved = {name: getattr(app.state, name, None) for name in overrides}
    for name, value in overrides.items():
        setattr(app.state, name, value)
    app.dependency_overrides[get_store] = override_get_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    for name, value in saved.items():
        setattr(app.state, name, value)


def booking_body(service, staff, start_at, email="alex@example.com", **extra):
    body = {
        "service_id": service.id,
        "staff_id": staff.id,
        "start_at": start_at.isoformat(),
        "customer_name": "Alex Customer",
        "customer_email": email,
    }
    body.update(extra)
    return body


# ────────────────────────────────────────────────────────────────
# Slots
# ────────────────────────────────────────────────────────────────

class TestSlotsEndpoint:
    async def test_lists_slots(self, client, memory, tenant, staff, service):
        memory.add_rule(tenant.id, MONDAY_DOW, "09:00", "10:00", staff_id=staff.id)

        response = await client.get(
            f"/tenants/{tenant.id}/slots",
            params={"service_id": service.id, "staff_id": staff.id, "date": "2030-01-07"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == "2030-01-07"
        assert [slot["start_at"][11:16] for slot in data["slots"]] == ["09:00", "09:15", "09:30"]

    async def test_bad_date_uses_error_envelope(self, client, tenant, staff, service, monday_rule):
        response = await client.get(
            f"/tenants/{tenant.id}/slots",
            params={"service_id": service.id, "staff_id": staff.id, "date": "07-01-2030"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "error"
        assert body["error"]["code"] == "VALIDATION_ERROR"

    async def test_unknown_tenant(self, client):
        response = await client.get("/tenants/999/slots", params={"service_id": 1, "staff_id": 1, "date": "2030-01-07"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_non_positive_tenant_id(self, client):
        response = await client.get("/tenants/0/slots", params={"service_id": 1, "staff_id": 1, "date": "2030-01-07"})
        assert response.status_code == 404


# ────────────────────────────────────────────────────────────────
# Bookings
# ────────────────────────────────────────────────────────────────

class TestBookingEndpoints:
    async def test_create_booking(self, client, memory, tenant, staff, service, monday_rule):
        response = await client.post(
            f"/tenants/{tenant.id}/bookings",
            json=booking_body(service, staff, at(9)),
            headers={"X-Actor-Id": "user_42"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "confirmed"
        assert data["tenant_id"] == tenant.id
        assert data["end_at"].startswith("2030-01-07T09:30")
        assert memory.audit_logs[-1].actor_id == "user_42"

    async def test_create_booking_without_actor_header(self, client, memory, tenant, staff, service, monday_rule):
        response = await client.post(f"/tenants/{tenant.id}/bookings", json=booking_body(service, staff, at(9)))

        assert response.status_code == 201
        assert memory.audit_logs[-1].actor_id is None

    async def test_occupied_slot_conflict(self, client, memory, tenant, staff, service, monday_rule):
        existing = memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))

        response = await client.post(f"/tenants/{tenant.id}/bookings", json=booking_body(service, staff, at(9)))

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "SLOT_OCCUPIED"
        assert error["details"]["conflicting_booking_ids"] == [str(existing.id)]
        assert error["details"]["retryable"] is True

    async def test_occupied_slot_with_auto_waitlist(self, client, memory, tenant, staff, service, monday_rule):
        memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))

        response = await client.post(
            f"/tenants/{tenant.id}/bookings",
            json=booking_body(service, staff, at(9), auto_waitlist=True),
        )

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "waiting"
        assert data["queue_position"] == 1
        assert data["created"] is True

    async def test_outside_availability(self, client, tenant, staff, service, monday_rule):
        response = await client.post(f"/tenants/{tenant.id}/bookings", json=booking_body(service, staff, at(20)))
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "AVAILABILITY_VIOLATION"

    async def test_invalid_email_is_rejected(self, client, tenant, staff, service, monday_rule):
        response = await client.post(
            f"/tenants/{tenant.id}/bookings", json=booking_body(service, staff, at(9), email="not-an-email")
        )
        assert response.status_code == 422

    async def test_get_cancel_and_reschedule(self, client, memory, tenant, staff, service, monday_rule):
        created = (await client.post(f"/tenants/{tenant.id}/bookings", json=booking_body(service, staff, at(9)))).json()
        booking_id = created["id"]

        fetched = await client.get(f"/tenants/{tenant.id}/bookings/{booking_id}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == booking_id

        moved = await client.post(
            f"/tenants/{tenant.id}/bookings/{booking_id}/reschedule",
            json={"start_at": at(13).isoformat()},
        )
        assert moved.status_code == 200
        assert moved.json()["status"] == "rescheduled"

        cancelled = await client.post(f"/tenants/{tenant.id}/bookings/{booking_id}/cancel", json={"reason": "Travel"})
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancellation_reason"] == "Travel"

        again = await client.post(f"/tenants/{tenant.id}/bookings/{booking_id}/cancel")
        assert again.status_code == 200
        assert again.json()["cancellation_reason"] == "Travel"

    async def test_finished_booking_cannot_be_cancelled(self, client, memory, tenant, staff, service):
        booking = memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30), status=BookingStatus.NO_SHOW)
        response = await client.post(f"/tenants/{tenant.id}/bookings/{booking.id}/cancel")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    async def test_booking_of_another_tenant_is_not_found(self, client, memory, tenant, staff, service):
        booking = memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))
        other = memory.add_tenant("Other")

        response = await client.get(f"/tenants/{other.id}/bookings/{booking.id}")
        assert response.status_code == 404

        response = await client.post(f"/tenants/{other.id}/bookings/{booking.id}/cancel")
        assert response.status_code == 404
        assert memory.bookings[booking.id].status == BookingStatus.CONFIRMED


# ────────────────────────────────────────────────────────────────
# Waitlist and reminders
# ────────────────────────────────────────────────────────────────

class TestWaitlistEndpoints:
    async def test_join_and_poll(self, client, tenant, staff, service):
        body = {
            "service_id": service.id,
            "staff_id": staff.id,
            "preferred_start_at": at(9).isoformat(),
            "customer_name": "Wait Er",
            "customer_email": "wait@example.com",
        }

        joined = await client.post(f"/tenants/{tenant.id}/waitlist", json=body)
        assert joined.status_code == 202
        entry_id = joined.json()["waitlist_entry_id"]

        repeat = await client.post(f"/tenants/{tenant.id}/waitlist", json=body)
        assert repeat.json()["waitlist_entry_id"] == entry_id
        assert repeat.json()["created"] is False

        polled = await client.get(f"/tenants/{tenant.id}/waitlist/{entry_id}")
        assert polled.status_code == 200
        assert polled.json()["queue_position"] == 1

    async def test_unknown_entry(self, client, tenant):
        response = await client.get(f"/tenants/{tenant.id}/waitlist/not-a-uuid")
        assert response.status_code == 404


class TestReminderEndpoint:
    async def test_run_reminders(self, client, memory, clock, notifications, tenant, staff, service):
        tenant.reminder_hours_before = 2
        clock.set(at(7))
        memory.add_booking(tenant.id, service.id, staff.id, at(9), at(9, 30))

        response = await client.post(f"/tenants/{tenant.id}/reminders/run")

        assert response.status_code == 200
        assert response.json()["sent"] == 1
        assert notifications.events() == ["booking_reminder"]


# ────────────────────────────────────────────────────────────────
# Rate limiting and health
# ────────────────────────────────────────────────────────────────

class TestRateLimiting:
    async def test_public_routes_are_throttled(self, client, tenant, staff, service, monday_rule):
        from apoint.main import app

        app.state.rate_limiter = RateLimiter(max_requests=2, window_seconds=60)
        params = {"service_id": service.id, "staff_id": staff.id, "date": "2030-01-07"}

        for _ in range(2):
            assert (await client.get(f"/tenants/{tenant.id}/slots", params=params)).status_code == 200
        response = await client.get(f"/tenants/{tenant.id}/slots", params=params)

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
