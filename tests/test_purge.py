"""Purge scheduler tests.

Covers:
- Phase 1: PENDING_DELETION past the grace period -> DELETED (audited)
- Phase 2: DELETED past the purge window -> PURGED (audited, scope destroyed)
- Per-tenant failures do not abort the run
- Overlapping runs are skipped
- APScheduler wrapper start/stop
- Manual run over HTTP
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

from src.tenancy.core.database import utcnow
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.schemas.audit import AuditQuery
from src.tenancy.services.purge import PurgeScheduler


async def _pending_since(services, tenant_id, days_ago: int) -> None:
    await services.lifecycle.change_status(
        tenant_id, TenantStatus.PENDING_DELETION, now=utcnow() - timedelta(days=days_ago)
    )


async def test_grace_period_auto_delete(services, provision):
    """31 days in PENDING_DELETION is deleted; 10 days is left alone."""
    old = await provision("old-shop")
    recent = await provision("recent-shop")
    await _pending_since(services, old.tenant.id, 31)
    await _pending_since(services, recent.tenant.id, 10)

    result = await services.purge_job.run()

    assert result.auto_deleted == ["old-shop"]
    assert result.purged == []
    assert (await services.directory.get_by_id(old.tenant.id)).status == TenantStatus.DELETED
    assert (await services.directory.get_by_id(recent.tenant.id)).status == TenantStatus.PENDING_DELETION

    page = await services.audit.query(AuditQuery(action="TENANT_AUTO_DELETED"))
    assert page.total == 1
    entry = page.items[0]
    assert entry.tenant_id == old.tenant.id
    assert entry.severity == "WARN"
    assert entry.metadata["grace_days"] == 30


async def test_purge_window(services, provision):
    expired = await provision("expired-shop")
    await _pending_since(services, expired.tenant.id, 91)

    result = await services.purge_job.run()

    # Same run: auto-deleted first, then purged
    assert result.auto_deleted == ["expired-shop"]
    assert result.purged == ["expired-shop"]

    tenant = await services.directory.get_by_id(expired.tenant.id)
    assert tenant.status == TenantStatus.PURGED
    assert tenant.domains == []
    assert await services.commerce.get_channel(expired.tenant.channel_id) is None

    page = await services.audit.query(AuditQuery(action="TENANT_PURGED"))
    assert page.total == 1
    assert page.items[0].severity == "CRITICAL"
    assert page.items[0].metadata["purge_after_days"] == 90


async def test_deleted_inside_window_is_kept(services, provision):
    shop = await provision("kept-shop")
    await _pending_since(services, shop.tenant.id, 45)

    result = await services.purge_job.run()

    assert result.auto_deleted == ["kept-shop"]
    assert result.purged == []
    assert await services.commerce.get_channel(shop.tenant.channel_id) is not None


async def test_failure_is_isolated(services, provision):
    first = await provision("first-shop")
    second = await provision("second-shop")
    await _pending_since(services, first.tenant.id, 40)
    await _pending_since(services, second.tenant.id, 40)

    real_change_status = services.lifecycle.change_status

    async def flaky(tenant_id, to_status, **kwargs):
        if tenant_id == first.tenant.id:
            raise RuntimeError("engine down")
        return await real_change_status(tenant_id, to_status, **kwargs)

    with patch.object(services.lifecycle, "change_status", side_effect=flaky):
        result = await services.purge_job.run()

    assert result.failed == ["first-shop"]
    assert result.auto_deleted == ["second-shop"]
    assert (await services.directory.get_by_id(first.tenant.id)).status == TenantStatus.PENDING_DELETION


async def test_overlapping_run_is_skipped(services):
    async with services.purge_job._lock:
        result = await services.purge_job.run()
    assert result.skipped is True


async def test_run_reconciles_orphans(services):
    with patch.object(
        services.provisioning,
        "reconcile_orphaned_scopes",
        AsyncMock(return_value=["tenant-ghost"]),
    ) as reconcile:
        result = await services.purge_job.run()

    reconcile.assert_awaited_once()
    assert result.orphans_reclaimed == ["tenant-ghost"]


async def test_scheduler_start_stop(services):
    scheduler = PurgeScheduler(services.purge_job, interval_seconds=3600)
    assert scheduler.running is False

    scheduler.start()
    scheduler.start()
    assert scheduler.running is True

    scheduler.stop()
    assert scheduler.running is False


async def test_purge_run_endpoint(client, superadmin_headers, tenant_alpha):
    response = await client.post("/api/v1/tenants/purge-runs", headers=superadmin_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["skipped"] is False
    assert body["auto_deleted"] == []
