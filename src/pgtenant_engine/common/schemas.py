"""Shared Pydantic schemas for PgTenant-Engine."""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "pgtenant-engine"
    environment: str = "development"
    timestamp: datetime


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    message: str = ""
    count: Optional[int] = None
    data: Optional[T] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    message: str
    trace: Optional[str] = None
