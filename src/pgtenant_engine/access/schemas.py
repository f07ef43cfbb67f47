"""Pydantic schemas for whitelist and access-control endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from pgtenant_engine.tenants.models import WhitelistEntryModel


class WhitelistAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ip_address: str = Field(..., min_length=1, max_length=64, alias="ipAddress")
    description: Optional[str] = Field(None, max_length=255)


class WhitelistEntryResponse(BaseModel):
    id: int
    database_id: str
    ip_address: str
    description: Optional[str] = None
    added_at: datetime

    @classmethod
    def from_model(cls, entry: WhitelistEntryModel) -> "WhitelistEntryResponse":
        return cls(
            id=entry.id,
            database_id=entry.tenant_id,
            ip_address=entry.address,
            description=entry.description,
            added_at=entry.created_at,
        )


class CompileResponse(BaseModel):
    path: str
    tenants: int
    rules: int
    changed: bool


class InstalledRuleResponse(BaseModel):
    mode: str
    database: str
    role: str
    address: str
    method: str
