"""Pydantic schemas for audit trail responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class AuditRecordResponse(BaseModel):
    id: int
    action: str
    resource_type: str
    resource_id: str
    details: dict[str, Any] = {}
    created_at: datetime

    model_config = {"from_attributes": True}
