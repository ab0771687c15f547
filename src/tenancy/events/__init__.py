"""Tenant lifecycle events.

Exports:
    LifecycleEvent: Base event model carrying tenant and actor context.
    TenantCreated, TenantStatusChanged, TenantSuspended, TenantDeleted,
    TenantPurged: Concrete lifecycle events.
    LifecycleEventBus: In-process publish/subscribe.
"""

from __future__ import annotations

from src.tenancy.events.bus import LifecycleEventBus
from src.tenancy.events.schemas import (
    LifecycleEvent,
    LifecycleEventType,
    TenantCreated,
    TenantDeleted,
    TenantPurged,
    TenantStatusChanged,
    TenantSuspended,
)

__all__ = [
    "LifecycleEvent",
    "LifecycleEventBus",
    "LifecycleEventType",
    "TenantCreated",
    "TenantDeleted",
    "TenantPurged",
    "TenantStatusChanged",
    "TenantSuspended",
]
