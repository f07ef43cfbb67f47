"""Tenant database API router — requires the admin API key."""

from fastapi import APIRouter, Depends

from pgtenant_engine.common.schemas import Envelope, MessageResponse
from pgtenant_engine.common.security import require_api_key
from pgtenant_engine.deps import ServiceContainer, get_container
from pgtenant_engine.tenants.schemas import (
    ConnectionStringsResponse,
    TenantCreate,
    TenantCreateResponse,
    TenantResponse,
    TenantStatsResponse,
)

router = APIRouter(prefix="/databases", tags=["databases"])


@router.post("", response_model=Envelope[TenantCreateResponse], status_code=201)
async def create_database(
    body: TenantCreate,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    provisioned = await services.tenants.create_tenant(
        friendly_name=body.friendly_name,
        owner_email=body.owner_email,
        max_connections=body.max_connections,
    )
    base = TenantResponse.from_model(provisioned.tenant)
    return Envelope(
        message="Database created successfully",
        data=TenantCreateResponse(
            **base.model_dump(),
            password=provisioned.password,
            **provisioned.connection_strings,
        ),
    )


@router.get("", response_model=Envelope[list[TenantResponse]])
async def list_databases(
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    tenants = await services.tenants.list_tenants()
    return Envelope(
        count=len(tenants),
        data=[TenantResponse.from_model(t) for t in tenants],
    )


@router.get("/{tenant_id}", response_model=Envelope[TenantResponse])
async def get_database(
    tenant_id: str,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    tenant = await services.tenants.get_tenant(tenant_id)
    return Envelope(data=TenantResponse.from_model(tenant))


@router.get("/{tenant_id}/stats", response_model=Envelope[TenantStatsResponse])
async def get_database_stats(
    tenant_id: str,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    stats = await services.tenants.get_stats(tenant_id)
    return Envelope(data=TenantStatsResponse(**stats))


@router.get(
    "/{tenant_id}/connection-strings",
    response_model=Envelope[ConnectionStringsResponse],
)
async def get_connection_strings(
    tenant_id: str,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    strings = await services.tenants.get_connection_strings(tenant_id)
    return Envelope(data=ConnectionStringsResponse(**strings))


@router.delete("/{tenant_id}", response_model=MessageResponse)
async def delete_database(
    tenant_id: str,
    services: ServiceContainer = Depends(get_container),
    _=Depends(require_api_key),
):
    await services.tenants.delete_tenant(tenant_id)
    return MessageResponse(message="Database deleted successfully")
