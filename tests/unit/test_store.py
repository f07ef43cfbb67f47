"""Tests for the metadata store — uniqueness, cascade, unit of work."""

import pytest
from sqlalchemy.exc import DBAPIError, OperationalError

from pgtenant_engine.common.exceptions import (
    ConflictError,
    StoreUnavailableError,
    TenantNotFoundError,
    WhitelistEntryNotFoundError,
)
from pgtenant_engine.tenants.models import TenantModel


async def insert(store, session, token="abc", **overrides):
    fields = dict(
        database_name=f"tenant_{token}",
        role_name=f"user_{token}",
        password_hash="hash",
        owner_email="owner@example.com",
        friendly_name="Acme",
        max_connections=20,
    )
    fields.update(overrides)
    return await store.insert_tenant(session, **fields)


class TestTenants:
    async def test_insert_and_get(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            tenant = await insert(store, session)
        async with store.unit_of_work() as session:
            found = await store.get_tenant(session, tenant.id)
            assert found.database_name == "tenant_abc"
            assert found.status == "active"

    async def test_get_missing(self, container):
        async with container.store.unit_of_work() as session:
            with pytest.raises(TenantNotFoundError):
                await container.store.get_tenant(session, "nope")

    async def test_duplicate_database_name(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            await insert(store, session)
        with pytest.raises(ConflictError):
            async with store.unit_of_work() as session:
                await insert(store, session, role_name="user_other")

    async def test_failed_unit_of_work_rolls_back(self, container):
        store = container.store
        with pytest.raises(RuntimeError):
            async with store.unit_of_work() as session:
                await insert(store, session)
                raise RuntimeError("boom")
        async with store.unit_of_work() as session:
            assert await store.list_tenants(session) == []

    @pytest.mark.parametrize("error", [
        OperationalError("SELECT 1", {}, Exception("connection refused")),
        DBAPIError("SELECT 1", {}, Exception("server closed the connection")),
    ])
    async def test_driver_errors_map_to_store_unavailable(self, container, error):
        with pytest.raises(StoreUnavailableError):
            async with container.store.unit_of_work():
                raise error

    async def test_list_newest_first(self, container):
        store = container.store
        for token in ("one", "two", "three"):
            async with store.unit_of_work() as session:
                await insert(store, session, token=token)
        async with store.unit_of_work() as session:
            names = [t.database_name for t in await store.list_tenants(session)]
        assert names == ["tenant_three", "tenant_two", "tenant_one"]

    async def test_delete_cascades_whitelist(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            tenant = await insert(store, session)
            await store.insert_whitelist_entry(session, tenant.id, "1.2.3.4/32")
            await store.insert_whitelist_entry(session, tenant.id, "5.6.7.8/32")
        async with store.unit_of_work() as session:
            removed = await store.delete_tenant(session, tenant.id)
        assert removed == 2
        async with store.unit_of_work() as session:
            assert await store.count_whitelist(session, tenant.id) == 0
            assert await store.find_tenant(session, tenant.id) is None

    async def test_delete_by_name(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            await insert(store, session)
        async with store.unit_of_work() as session:
            assert await store.delete_tenant_by_name(session, "tenant_abc") is True
        async with store.unit_of_work() as session:
            assert await store.delete_tenant_by_name(session, "tenant_abc") is False


class TestWhitelist:
    async def test_duplicate_address_conflicts(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            tenant = await insert(store, session)
            await store.insert_whitelist_entry(session, tenant.id, "1.2.3.4/32")
        with pytest.raises(ConflictError):
            async with store.unit_of_work() as session:
                await store.insert_whitelist_entry(session, tenant.id, "1.2.3.4/32")

    async def test_same_address_for_two_tenants(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            a = await insert(store, session, token="a")
            b = await insert(store, session, token="b")
            await store.insert_whitelist_entry(session, a.id, "1.2.3.4/32")
            await store.insert_whitelist_entry(session, b.id, "1.2.3.4/32")
        async with store.unit_of_work() as session:
            assert await store.count_whitelist(session, a.id) == 1
            assert await store.count_whitelist(session, b.id) == 1

    async def test_delete_entry_scoped_to_tenant(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            a = await insert(store, session, token="a")
            b = await insert(store, session, token="b")
            entry = await store.insert_whitelist_entry(session, a.id, "1.2.3.4/32")
        with pytest.raises(WhitelistEntryNotFoundError):
            async with store.unit_of_work() as session:
                await store.delete_whitelist_entry(session, b.id, entry.id)
        async with store.unit_of_work() as session:
            removed = await store.delete_whitelist_entry(session, a.id, entry.id)
        assert removed.address == "1.2.3.4/32"

    async def test_access_rules_exclude_inactive_tenants(self, container):
        store = container.store
        async with store.unit_of_work() as session:
            active = await insert(store, session, token="a")
            gone = await insert(store, session, token="b")
            await store.insert_whitelist_entry(session, active.id, "1.1.1.1/32")
            await store.insert_whitelist_entry(session, gone.id, "2.2.2.2/32")
            gone_row = await session.get(TenantModel, gone.id)
            gone_row.status = "suspended"
        async with store.unit_of_work() as session:
            rows = await store.list_access_rules(session)
        assert [(r.database_name, r.address) for r in rows] == [("tenant_a", "1.1.1.1/32")]
