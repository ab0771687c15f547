"""Pydantic schemas for the audit log."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from src.tenancy.models.audit import AuditSeverity


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action: str
    severity: AuditSeverity
    actor_user_id: uuid.UUID | None = None
    channel_id: uuid.UUID | None = None
    tenant_id: uuid.UUID | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    ip_address: str | None = None
    created_at: datetime


class AuditQuery(BaseModel):
    action: str | None = None
    severity: AuditSeverity | None = None
    tenant_id: uuid.UUID | None = None
    since: datetime | None = None
    until: datetime | None = None
    take: int = Field(25, ge=1, le=500)
    skip: int = Field(0, ge=0)


class AuditLogPage(BaseModel):
    items: list[AuditLogRead]
    total: int
    take: int
    skip: int
