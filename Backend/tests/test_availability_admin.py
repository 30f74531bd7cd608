"""
Availability administration: rule and exception CRUD, tenant-scoped.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from apoint.availability_admin import (
    AvailabilityAdmin,
    ExceptionCreate,
    ExceptionUpdate,
    RuleCreate,
    RuleUpdate,
)
from apoint.errors import NotFoundError, ValidationError

from conftest import MONDAY, MONDAY_DOW


@pytest.fixture
def admin(store):
    return AvailabilityAdmin(store)


class TestRules:
    async def test_create_and_list(self, admin, memory, tenant, staff):
        rule = await admin.create_rule(
            tenant.id, RuleCreate(day_of_week=MONDAY_DOW, start_time="09:00", end_time="12:00", staff_id=staff.id)
        )

        assert rule.id in memory.rules
        assert rule.is_active
        assert [r.id for r in await admin.list_rules(tenant.id)] == [rule.id]
        assert [r.id for r in await admin.list_rules(tenant.id, staff_id=staff.id)] == [rule.id]

    @pytest.mark.parametrize(
        "payload",
        [
            {"day_of_week": 7, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": -1, "start_time": "09:00", "end_time": "12:00"},
            {"day_of_week": 1, "start_time": "9:00", "end_time": "12:00"},
            {"day_of_week": 1, "start_time": "12:00", "end_time": "12:00"},
            {"day_of_week": 1, "start_time": "13:00", "end_time": "12:00"},
        ],
    )
    async def test_invalid_rules_are_rejected(self, admin, memory, tenant, payload):
        with pytest.raises(ValidationError):
            await admin.create_rule(tenant.id, RuleCreate(**payload))
        assert memory.rules == {}

    async def test_staff_must_belong_to_tenant(self, admin, memory, tenant):
        other = memory.add_tenant("Other")
        foreign_staff = memory.add_staff(other.id)

        with pytest.raises(ValidationError, match="does not belong"):
            await admin.create_rule(
                tenant.id,
                RuleCreate(day_of_week=1, start_time="09:00", end_time="12:00", staff_id=foreign_staff.id),
            )

    async def test_update_revalidates_merged_window(self, admin, tenant):
        rule = await admin.create_rule(tenant.id, RuleCreate(day_of_week=1, start_time="09:00", end_time="12:00"))

        updated = await admin.update_rule(tenant.id, rule.id, RuleUpdate(end_time="17:00", is_active=False))
        assert (updated.start_time, updated.end_time, updated.is_active) == ("09:00", "17:00", False)

        with pytest.raises(ValidationError):
            await admin.update_rule(tenant.id, rule.id, RuleUpdate(start_time="18:00"))
        assert rule.start_time == "09:00"

    async def test_delete(self, admin, memory, tenant):
        rule = await admin.create_rule(tenant.id, RuleCreate(day_of_week=1, start_time="09:00", end_time="12:00"))
        await admin.delete_rule(tenant.id, rule.id)
        assert memory.rules == {}

    async def test_rules_of_another_tenant_are_not_found(self, admin, memory, tenant):
        other = memory.add_tenant("Other")
        foreign = memory.add_rule(other.id, 1, "09:00", "12:00")

        with pytest.raises(NotFoundError):
            await admin.update_rule(tenant.id, foreign.id, RuleUpdate(end_time="13:00"))
        with pytest.raises(NotFoundError):
            await admin.delete_rule(tenant.id, foreign.id)
        assert foreign.id in memory.rules
        assert await admin.list_rules(tenant.id) == []


class TestExceptions:
    async def test_full_day_exception(self, admin, tenant, staff):
        exception = await admin.create_exception(tenant.id, ExceptionCreate(date=MONDAY, staff_id=staff.id, note="Holiday"))
        assert exception.is_full_day
        assert exception.is_unavailable

    async def test_start_and_end_go_together(self, admin, tenant):
        with pytest.raises(ValidationError, match="together"):
            await admin.create_exception(tenant.id, ExceptionCreate(date=MONDAY, start_time="12:00"))

    async def test_update_and_delete(self, admin, memory, tenant):
        exception = await admin.create_exception(
            tenant.id, ExceptionCreate(date=MONDAY, start_time="12:00", end_time="13:00")
        )

        updated = await admin.update_exception(
            tenant.id, exception.id, ExceptionUpdate(start_time=None, end_time=None, note="Closed")
        )
        assert updated.is_full_day
        assert updated.note == "Closed"

        with pytest.raises(ValidationError):
            await admin.update_exception(tenant.id, exception.id, ExceptionUpdate(end_time="13:00"))

        await admin.delete_exception(tenant.id, exception.id)
        assert memory.exceptions == {}

    async def test_exceptions_of_another_tenant_are_not_found(self, admin, memory, tenant):
        other = memory.add_tenant("Other")
        foreign = memory.add_exception(other.id, MONDAY)
        with pytest.raises(NotFoundError):
            await admin.delete_exception(tenant.id, foreign.id)
        assert await admin.list_exceptions(tenant.id) == []


class TestAvailabilityRoutes:
    @pytest.fixture
    async def client(self, store):
        from apoint.dependencies import get_store
        from apoint.main import app

        async def override_get_store():
            return store

        app.dependency_overrides[get_store] = override_get_store
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
        app.dependency_overrides.clear()

    async def test_rule_crud(self, client, tenant, staff):
        created = await client.post(
            f"/tenants/{tenant.id}/availability/rules",
            json={"day_of_week": 1, "start_time": "09:00", "end_time": "12:00", "staff_id": staff.id},
        )
        assert created.status_code == 201
        rule_id = created.json()["id"]

        listed = await client.get(f"/tenants/{tenant.id}/availability/rules")
        assert [r["id"] for r in listed.json()] == [rule_id]

        patched = await client.patch(f"/tenants/{tenant.id}/availability/rules/{rule_id}", json={"end_time": "13:00"})
        assert patched.status_code == 200
        assert patched.json()["end_time"] == "13:00"

        deleted = await client.delete(f"/tenants/{tenant.id}/availability/rules/{rule_id}")
        assert deleted.status_code == 204

        missing = await client.delete(f"/tenants/{tenant.id}/availability/rules/{rule_id}")
        assert missing.status_code == 404

    async def test_invalid_rule_uses_error_envelope(self, client, tenant):
        response = await client.post(
            f"/tenants/{tenant.id}/availability/rules",
            json={"day_of_week": 9, "start_time": "09:00", "end_time": "12:00"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_exception_crud(self, client, tenant):
        created = await client.post(
            f"/tenants/{tenant.id}/availability/exceptions",
            json={"date": "2030-01-07", "start_time": "12:00", "end_time": "13:00", "note": "Lunch"},
        )
        assert created.status_code == 201
        assert created.json()["is_unavailable"] is True

        listed = await client.get(f"/tenants/{tenant.id}/availability/exceptions")
        assert listed.json()[0]["note"] == "Lunch"
