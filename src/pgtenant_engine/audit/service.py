"""Audit service — append and query the audit trail."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pgtenant_engine.audit.models import AuditRecordModel

RESOURCE_DATABASE = "database"

TENANT_CREATED = "database_created"
TENANT_CREATE_FAILED = "database_create_failed"
TENANT_DELETED = "database_deleted"
TENANT_DELETE_FAILED = "database_delete_failed"
WHITELIST_ADDED = "ip_whitelist_added"
WHITELIST_REMOVED = "ip_whitelist_removed"
ACCESS_CONTROL_STALE = "access_control_stale"


class AuditService:
    """Append-only log of mutating operations.

    Records are never updated or deleted here; retention belongs to
    external housekeeping.
    """

    # ── Write ──

    async def record(
        self,
        session: AsyncSession,
        action: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
        resource_type: str = RESOURCE_DATABASE,
    ) -> AuditRecordModel:
        """Add an audit record to the session's current unit of work."""
        entry = AuditRecordModel(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
        )
        session.add(entry)
        await session.flush()
        return entry

    # ── Read ──

    async def list_records(
        self,
        session: AsyncSession,
        resource_id: str | None = None,
        action: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditRecordModel]:
        """Paginated record list, newest first."""
        query = select(AuditRecordModel)
        if resource_id:
            query = query.where(AuditRecordModel.resource_id == resource_id)
        if action:
            query = query.where(AuditRecordModel.action == action)
        query = (
            query.order_by(AuditRecordModel.created_at.desc(), AuditRecordModel.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await session.execute(query)
        return list(result.scalars().all())
