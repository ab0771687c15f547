"""Audit log table -- append-only record of security-relevant events.

Entries are platform-wide (not scoped to any channel) and are never updated
or deleted by application code. Retention is an operational concern.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, String, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from src.tenancy.core.database import SharedBase, utcnow


class AuditSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    CRITICAL = "CRITICAL"


class AuditLogModel(SharedBase):
    """One immutable audit entry."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    action: Mapped[str] = mapped_column(String(80), index=True, nullable=False)
    severity: Mapped[str] = mapped_column(
        String(16), index=True, nullable=False, default=AuditSeverity.INFO.value
    )
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    channel_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    tenant_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True, nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True, nullable=False, default=utcnow
    )


@event.listens_for(AuditLogModel, "before_update")
def _reject_audit_update(mapper: Any, connection: Any, target: AuditLogModel) -> None:
    raise RuntimeError(f"Audit log entry {target.id} is immutable")


@event.listens_for(AuditLogModel, "before_delete")
def _reject_audit_delete(mapper: Any, connection: Any, target: AuditLogModel) -> None:
    raise RuntimeError(f"Audit log entry {target.id} is immutable")
