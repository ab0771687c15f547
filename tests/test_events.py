"""Lifecycle event bus and tenant context tests."""

from __future__ import annotations

import uuid

import pytest

from src.tenancy.core.tenant import (
    TenantContext,
    get_current_tenant,
    get_current_tenant_or_none,
    reset_tenant_context,
    set_tenant_context,
)
from src.tenancy.events import (
    LifecycleEvent,
    LifecycleEventBus,
    TenantCreated,
    TenantStatusChanged,
)


def _created() -> TenantCreated:
    return TenantCreated(tenant_id=uuid.uuid4(), tenant_slug="alpha-store")


async def test_subscribers_receive_matching_events():
    bus = LifecycleEventBus()
    created, changed = [], []

    async def on_created(event):
        created.append(event)

    async def on_changed(event):
        changed.append(event)

    bus.subscribe(TenantCreated, on_created)
    bus.subscribe(TenantStatusChanged, on_changed)

    await bus.publish(_created())

    assert len(created) == 1
    assert changed == []
    assert created[0].event_type.value == "tenant.created"


async def test_base_class_subscriber_sees_everything():
    bus = LifecycleEventBus()
    seen = []

    async def on_any(event):
        seen.append(event.event_type.value)

    bus.subscribe(LifecycleEvent, on_any)
    await bus.publish(_created())
    await bus.publish(
        TenantStatusChanged(
            tenant_id=uuid.uuid4(), tenant_slug="alpha-store", from_status="TRIAL", to_status="ACTIVE"
        )
    )

    assert seen == ["tenant.created", "tenant.status_changed"]


async def test_failing_subscriber_does_not_stop_delivery():
    bus = LifecycleEventBus()
    delivered = []

    async def broken(event):
        raise RuntimeError("subscriber bug")

    async def healthy(event):
        delivered.append(event)

    bus.subscribe(TenantCreated, broken)
    bus.subscribe(TenantCreated, healthy)

    await bus.publish(_created())

    assert len(delivered) == 1


async def test_unsubscribe():
    bus = LifecycleEventBus()
    delivered = []

    async def handler(event):
        delivered.append(event)

    bus.subscribe(TenantCreated, handler)
    bus.unsubscribe(TenantCreated, handler)
    await bus.publish(_created())

    assert delivered == []


# ── Tenant Context ──────────────────────────────────────────────────────────


def test_tenant_context_propagation():
    ctx = TenantContext(
        tenant_id=uuid.uuid4(),
        tenant_slug="alpha-store",
        tenant_status="TRIAL",
        channel_id=uuid.uuid4(),
        channel_token="tok",
    )
    token = set_tenant_context(ctx)
    try:
        assert get_current_tenant() is ctx
    finally:
        reset_tenant_context(token)

    assert get_current_tenant_or_none() is None


def test_no_tenant_context_raises():
    with pytest.raises(RuntimeError, match="No tenant context"):
        get_current_tenant()
