"""Whitelist service — per-tenant IP allow-lists."""

import logging
from typing import Optional

from pgtenant_engine.access.compiler import AccessControlCompiler
from pgtenant_engine.access.rules import normalize_address
from pgtenant_engine.audit.service import (
    ACCESS_CONTROL_STALE,
    WHITELIST_ADDED,
    WHITELIST_REMOVED,
)
from pgtenant_engine.common.config import PgTenantSettings
from pgtenant_engine.common.exceptions import AccessControlStaleError, PgTenantError
from pgtenant_engine.common.timeouts import with_timeout
from pgtenant_engine.tenants.models import WhitelistEntryModel
from pgtenant_engine.tenants.store import MetadataStore

logger = logging.getLogger(__name__)


class WhitelistService:
    """Add and remove whitelist entries, then recompile the access-control file.

    The metadata commit is the source of truth. If recompiling fails after
    it, the change is kept and AccessControlStaleError is raised instead.
    """

    def __init__(
        self,
        settings: PgTenantSettings,
        store: MetadataStore,
        compiler: AccessControlCompiler,
    ):
        self.settings = settings
        self.store = store
        self.compiler = compiler

    async def add_ip(
        self, tenant_id: str, address: str, description: Optional[str] = None
    ) -> WhitelistEntryModel:
        normalized = normalize_address(address)

        async def _commit():
            async with self.store.unit_of_work() as session:
                await self.store.get_tenant(session, tenant_id)
                entry = await self.store.insert_whitelist_entry(
                    session, tenant_id, normalized, description or None,
                )
                await self.store.append_audit(
                    session, WHITELIST_ADDED, tenant_id,
                    {"ip_address": normalized, "entry_id": entry.id},
                )
                return entry

        entry = await with_timeout(_commit(), self.settings.store_timeout, "add whitelist entry")
        logger.info(
            "IP added to whitelist",
            extra={"tenant_id": tenant_id, "ip_address": normalized},
        )
        await self._sync(tenant_id, entry)
        return entry

    async def remove_ip(self, tenant_id: str, entry_id: int) -> WhitelistEntryModel:
        async def _commit():
            async with self.store.unit_of_work() as session:
                entry = await self.store.delete_whitelist_entry(session, tenant_id, entry_id)
                await self.store.append_audit(
                    session, WHITELIST_REMOVED, tenant_id,
                    {"ip_address": entry.address, "entry_id": entry_id},
                )
                return entry

        entry = await with_timeout(
            _commit(), self.settings.store_timeout, "remove whitelist entry",
        )
        logger.info(
            "IP removed from whitelist",
            extra={"tenant_id": tenant_id, "ip_address": entry.address},
        )
        await self._sync(tenant_id, entry)
        return entry

    async def list_ips(self, tenant_id: str) -> list[WhitelistEntryModel]:
        """Entries for one tenant, newest first."""

        async def _list():
            async with self.store.unit_of_work() as session:
                await self.store.get_tenant(session, tenant_id)
                return await self.store.list_whitelist(session, tenant_id)

        return await with_timeout(_list(), self.settings.store_timeout, "list whitelist")

    async def _sync(self, tenant_id: str, entry: WhitelistEntryModel) -> None:
        try:
            await self.compiler.recompile()
        except PgTenantError as exc:
            logger.warning(
                "Whitelist committed but access-control file is stale",
                extra={"tenant_id": tenant_id, "code": exc.code},
            )
            await self._audit_stale(tenant_id, exc)
            raise AccessControlStaleError(
                f"Whitelist saved, but the access-control file was not updated: {exc.message}",
                cause=exc,
                record=entry,
            ) from exc

    async def _audit_stale(self, tenant_id: str, exc: PgTenantError) -> None:
        try:
            async with self.store.unit_of_work() as session:
                await self.store.append_audit(
                    session, ACCESS_CONTROL_STALE, tenant_id,
                    {"code": exc.code, "error": exc.message},
                )
        except PgTenantError:
            logger.exception("Could not audit stale access-control file")
