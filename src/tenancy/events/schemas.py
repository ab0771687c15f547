"""Tenant lifecycle event schemas.

Events are published by the lifecycle manager and provisioning service and
consumed in-process (the audit log subscribes at startup). They carry enough
context for a subscriber to act without reading the tenant back.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class LifecycleEventType(str, Enum):
    TENANT_CREATED = "tenant.created"
    TENANT_STATUS_CHANGED = "tenant.status_changed"
    TENANT_SUSPENDED = "tenant.suspended"
    TENANT_DELETED = "tenant.deleted"
    TENANT_PURGED = "tenant.purged"


class LifecycleEvent(BaseModel):
    """Base event.

    Attributes:
        event_id: Unique identifier (auto-generated UUID4).
        timestamp: UTC creation time.
        tenant_id: Tenant the event is about.
        tenant_slug: Slug at the time of the event.
        channel_id: The tenant's data scope.
        actor_user_id: Administrator who triggered it; None for system jobs.
        data: Small event-specific payload.
    """

    event_type: LifecycleEventType
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tenant_id: uuid.UUID
    tenant_slug: str
    channel_id: uuid.UUID | None = None
    actor_user_id: uuid.UUID | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class TenantCreated(LifecycleEvent):
    event_type: LifecycleEventType = LifecycleEventType.TENANT_CREATED


class TenantStatusChanged(LifecycleEvent):
    event_type: LifecycleEventType = LifecycleEventType.TENANT_STATUS_CHANGED
    from_status: str
    to_status: str


class TenantSuspended(LifecycleEvent):
    event_type: LifecycleEventType = LifecycleEventType.TENANT_SUSPENDED


class TenantDeleted(LifecycleEvent):
    event_type: LifecycleEventType = LifecycleEventType.TENANT_DELETED


class TenantPurged(LifecycleEvent):
    event_type: LifecycleEventType = LifecycleEventType.TENANT_PURGED
