"""Whitelist and access-control API router."""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from pgtenant_engine.access.schemas import (
    CompileResponse,
    InstalledRuleResponse,
    WhitelistAdd,
    WhitelistEntryResponse,
)
from pgtenant_engine.common.errors import stale_response
from pgtenant_engine.common.exceptions import AccessControlStaleError
from pgtenant_engine.common.schemas import Envelope, MessageResponse
from pgtenant_engine.common.security import require_api_key
from pgtenant_engine.deps import ServiceContainer, get_container

router = APIRouter()


@router.post(
    "/databases/{tenant_id}/whitelist",
    response_model=Envelope[WhitelistEntryResponse],
    status_code=201,
)
async def add_whitelist_entry(
    tenant_id: str,
    body: WhitelistAdd,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    try:
        entry = await services.whitelist.add_ip(tenant_id, body.ip_address, body.description)
    except AccessControlStaleError as exc:
        return stale_response(exc, WhitelistEntryResponse.from_model(exc.record))
    return Envelope(
        message="IP added to whitelist successfully",
        data=WhitelistEntryResponse.from_model(entry),
    )


@router.get(
    "/databases/{tenant_id}/whitelist",
    response_model=Envelope[list[WhitelistEntryResponse]],
)
async def list_whitelist(
    tenant_id: str,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    entries = await services.whitelist.list_ips(tenant_id)
    return Envelope(
        count=len(entries),
        data=[WhitelistEntryResponse.from_model(e) for e in entries],
    )


@router.delete(
    "/databases/{tenant_id}/whitelist/{entry_id}",
    response_model=MessageResponse,
)
async def remove_whitelist_entry(
    tenant_id: str,
    entry_id: int,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    try:
        await services.whitelist.remove_ip(tenant_id, entry_id)
    except AccessControlStaleError as exc:
        return stale_response(exc, WhitelistEntryResponse.from_model(exc.record))
    return MessageResponse(message="IP removed from whitelist successfully")


@router.post("/access-control/recompile", response_model=Envelope[CompileResponse])
async def recompile_access_control(
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    result = await services.compiler.recompile()
    return Envelope(
        message="Access-control file recompiled and reloaded",
        data=CompileResponse(**asdict(result)),
    )


@router.get("/access-control/rules", response_model=Envelope[list[InstalledRuleResponse]])
async def list_installed_rules(
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    rules = await services.compiler.installed_rules()
    return Envelope(
        count=len(rules),
        data=[InstalledRuleResponse(**asdict(r)) for r in rules],
    )
