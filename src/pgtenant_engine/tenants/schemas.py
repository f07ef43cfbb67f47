"""Pydantic schemas for tenant endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from pgtenant_engine.tenants.models import TenantModel


class TenantCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    friendly_name: str = Field(..., min_length=1, max_length=255, alias="friendlyName")
    owner_email: str = Field(..., min_length=3, max_length=255, alias="ownerEmail")
    max_connections: Optional[int] = Field(None, ge=1, le=10000, alias="maxConnections")


class TenantResponse(BaseModel):
    id: str
    database_name: str
    role_name: str
    username: str
    owner_email: str
    friendly_name: str
    max_connections: int
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, tenant: TenantModel) -> "TenantResponse":
        return cls(
            id=tenant.id,
            database_name=tenant.database_name,
            role_name=tenant.role_name,
            username=tenant.role_name,
            owner_email=tenant.owner_email,
            friendly_name=tenant.friendly_name,
            max_connections=tenant.max_connections,
            status=tenant.status,
            created_at=tenant.created_at,
            updated_at=tenant.updated_at,
        )


class TenantCreateResponse(TenantResponse):
    """Includes the plaintext password — only returned once at creation time."""

    password: str
    connection_string: str
    DATABASE_URL: str
    DIRECT_URL: str
    SHADOW_DATABASE_URL: str


class TenantStatsResponse(BaseModel):
    database_id: str
    database_name: str
    size_bytes: int
    size_pretty: str
    active_connections: int
    max_connections: int


class ConnectionStringsResponse(BaseModel):
    database_id: str
    database_name: str
    username: str
    connection_string: str
    DATABASE_URL: str
    DIRECT_URL: str
    SHADOW_DATABASE_URL: str
    note: str
