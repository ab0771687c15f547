"""Tenant directory tables -- tenants and their routable domains.

A Tenant wraps exactly one data scope (a "channel" in the commerce engine).
The channel handles data filtering; the Tenant handles lifecycle, domain
routing, plan and tenant-specific configuration.

IMPORTANT: channel_id is written once, when the tenant record is created at
the end of provisioning, and is never reassigned. The unique constraint keeps
two tenants from ever sharing a data scope.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from src.tenancy.core.database import SharedBase, utcnow


class TenantStatus(str, Enum):
    """Tenant lifecycle states. Transitions are defined in services.lifecycle."""

    REQUESTED = "REQUESTED"
    PROVISIONING = "PROVISIONING"
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING_DELETION = "PENDING_DELETION"
    DELETED = "DELETED"
    PURGED = "PURGED"


# Statuses under which a tenant's hostnames resolve at all
OPERATIONAL_STATUSES: frozenset[TenantStatus] = frozenset(
    {TenantStatus.TRIAL, TenantStatus.ACTIVE}
)


class TenantModel(SharedBase):
    """One merchant of the platform."""

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=TenantStatus.REQUESTED.value
    )
    # Opaque collaborator reference, not a foreign key: the channel is
    # deleted on purge while this row is kept as an archive.
    channel_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False)
    plan: Mapped[str] = mapped_column(String(50), nullable=False, default="trial")
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    suspended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=utcnow
    )

    domains: Mapped[list[TenantDomainModel]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TenantDomainModel.created_at",
    )

    @validates("channel_id")
    def _validate_channel_id(self, key: str, value: uuid.UUID) -> uuid.UUID:
        if self.channel_id is not None and value != self.channel_id:
            msg = f"Tenant {self.slug} already owns channel {self.channel_id}; it cannot be reassigned"
            raise ValueError(msg)
        return value


class TenantDomainModel(SharedBase):
    """A routable hostname bound to a tenant. Domain values are globally unique."""

    __tablename__ = "tenant_domains"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    domain: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("shared.tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ssl_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    tenant: Mapped[TenantModel] = relationship(back_populates="domains")
