"""Metadata store — transactional access to tenant, whitelist and audit rows."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pgtenant_engine.audit.service import AuditService
from pgtenant_engine.common.database import DatabaseManager
from pgtenant_engine.common.exceptions import (
    ConflictError,
    StoreUnavailableError,
    TenantNotFoundError,
    WhitelistEntryNotFoundError,
)
from pgtenant_engine.tenants.models import (
    TENANT_ACTIVE,
    TenantModel,
    WhitelistEntryModel,
)


@dataclass(frozen=True)
class AccessRuleRow:
    """One row of the active-tenant / whitelist join used by the compiler."""

    database_name: str
    role_name: str
    address: Optional[str]


class MetadataStore:
    """CRUD over the control database.

    Every mutating method takes the session of an open unit of work so that
    the record change and its audit entry commit (or roll back) together.
    """

    def __init__(self, db: DatabaseManager, audit_service: AuditService):
        self.db = db
        self.audit = audit_service

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncGenerator[AsyncSession, None]:
        """Begin a transaction; commit on clean exit, roll back otherwise."""
        try:
            async with self.db.get_session() as session:
                yield session
        except IntegrityError as exc:
            raise ConflictError(f"Uniqueness violation: {exc.orig}") from exc
        except (DBAPIError, ConnectionError) as exc:
            raise StoreUnavailableError(f"Metadata store unreachable: {exc}") from exc

    # ── Tenants ──

    async def insert_tenant(
        self,
        session: AsyncSession,
        database_name: str,
        role_name: str,
        password_hash: str,
        owner_email: str,
        friendly_name: str,
        max_connections: int,
    ) -> TenantModel:
        tenant = TenantModel(
            database_name=database_name,
            role_name=role_name,
            password_hash=password_hash,
            owner_email=owner_email,
            friendly_name=friendly_name,
            max_connections=max_connections,
            status=TENANT_ACTIVE,
        )
        session.add(tenant)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Generated name already in use: {database_name}/{role_name}"
            ) from exc
        return tenant

    async def find_tenant(
        self, session: AsyncSession, tenant_id: str
    ) -> TenantModel | None:
        return await session.get(TenantModel, tenant_id)

    async def get_tenant(self, session: AsyncSession, tenant_id: str) -> TenantModel:
        tenant = await self.find_tenant(session, tenant_id)
        if tenant is None:
            raise TenantNotFoundError()
        return tenant

    async def list_tenants(self, session: AsyncSession) -> list[TenantModel]:
        result = await session.execute(
            select(TenantModel).order_by(TenantModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete_tenant(self, session: AsyncSession, tenant_id: str) -> int:
        """Delete a tenant and cascade its whitelist. Returns entries removed."""
        tenant = await self.get_tenant(session, tenant_id)
        removed = await session.execute(
            delete(WhitelistEntryModel).where(WhitelistEntryModel.tenant_id == tenant_id)
        )
        await session.delete(tenant)
        await session.flush()
        return removed.rowcount or 0

    async def delete_tenant_by_name(self, session: AsyncSession, database_name: str) -> bool:
        """Remove a tenant row by generated database name (compensation path)."""
        result = await session.execute(
            select(TenantModel).where(TenantModel.database_name == database_name)
        )
        tenant = result.scalar_one_or_none()
        if tenant is None:
            return False
        await session.execute(
            delete(WhitelistEntryModel).where(WhitelistEntryModel.tenant_id == tenant.id)
        )
        await session.delete(tenant)
        await session.flush()
        return True

    # ── Whitelist ──

    async def insert_whitelist_entry(
        self,
        session: AsyncSession,
        tenant_id: str,
        address: str,
        description: str | None = None,
    ) -> WhitelistEntryModel:
        entry = WhitelistEntryModel(
            tenant_id=tenant_id, address=address, description=description,
        )
        session.add(entry)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"{address} is already whitelisted for this database") from exc
        return entry

    async def delete_whitelist_entry(
        self, session: AsyncSession, tenant_id: str, entry_id: int
    ) -> WhitelistEntryModel:
        result = await session.execute(
            select(WhitelistEntryModel).where(
                WhitelistEntryModel.id == entry_id,
                WhitelistEntryModel.tenant_id == tenant_id,
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise WhitelistEntryNotFoundError()
        await session.delete(entry)
        await session.flush()
        return entry

    async def list_whitelist(
        self, session: AsyncSession, tenant_id: str
    ) -> list[WhitelistEntryModel]:
        """Entries for one tenant, newest first."""
        result = await session.execute(
            select(WhitelistEntryModel)
            .where(WhitelistEntryModel.tenant_id == tenant_id)
            .order_by(WhitelistEntryModel.created_at.desc(), WhitelistEntryModel.id.desc())
        )
        return list(result.scalars().all())

    async def count_whitelist(self, session: AsyncSession, tenant_id: str) -> int:
        result = await session.execute(
            select(func.count(WhitelistEntryModel.id))
            .where(WhitelistEntryModel.tenant_id == tenant_id)
        )
        return int(result.scalar_one())

    async def list_access_rules(self, session: AsyncSession) -> list[AccessRuleRow]:
        """Active tenants left-joined to their entries.

        Ordered by database name, then entry insertion order.
        """
        result = await session.execute(
            select(
                TenantModel.database_name,
                TenantModel.role_name,
                WhitelistEntryModel.address,
            )
            .outerjoin(WhitelistEntryModel, WhitelistEntryModel.tenant_id == TenantModel.id)
            .where(TenantModel.status == TENANT_ACTIVE)
            .order_by(TenantModel.database_name, WhitelistEntryModel.id)
        )
        return [AccessRuleRow(*row) for row in result.all()]

    # ── Audit ──

    async def append_audit(
        self,
        session: AsyncSession,
        action: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
    ):
        return await self.audit.record(session, action, resource_id, details)
