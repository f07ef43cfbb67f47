"""Audit trail API router."""

from fastapi import APIRouter, Depends, Query

from pgtenant_engine.audit.schemas import AuditRecordResponse
from pgtenant_engine.common.schemas import Envelope
from pgtenant_engine.common.security import require_api_key
from pgtenant_engine.deps import ServiceContainer, get_container

router = APIRouter()


@router.get("/audit", response_model=Envelope[list[AuditRecordResponse]])
async def list_audit_records(
    resource_id: str | None = Query(None),
    action: str | None = Query(None),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    settings = services.settings
    limit = min(limit or settings.default_page_size, settings.max_page_size)
    async with services.store.unit_of_work() as session:
        records = await services.audit.list_records(
            session, resource_id=resource_id, action=action,
            limit=limit, offset=offset,
        )
        data = [AuditRecordResponse.model_validate(r) for r in records]
    return Envelope(count=len(data), data=data)
