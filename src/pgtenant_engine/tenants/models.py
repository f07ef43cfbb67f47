"""SQLAlchemy models for tenants and their IP whitelists."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pgtenant_engine.common.models import Base, TimestampMixin, generate_uuid, utc_now

TENANT_ACTIVE = "active"


class TenantModel(Base, TimestampMixin):
    """A provisioned tenant database.

    Deleting a tenant removes its row. Rows are always written as
    ``active``; any other status is set by operators outside this service
    and excludes the tenant from the compiled access rules.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    database_name: Mapped[str] = mapped_column(
        String(63), unique=True, nullable=False, index=True
    )
    role_name: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_email: Mapped[str] = mapped_column(String(255), nullable=False)
    friendly_name: Mapped[str] = mapped_column(String(255), nullable=False)
    max_connections: Mapped[int] = mapped_column(Integer, default=20, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TENANT_ACTIVE, nullable=False, index=True
    )


class WhitelistEntryModel(Base):
    __tablename__ = "ip_whitelist"
    __table_args__ = (
        UniqueConstraint("tenant_id", "address", name="uq_ip_whitelist_tenant_address"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    address: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
