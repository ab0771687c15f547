"""Purge scheduler -- advances tenants through grace-period deletion.

TenantPurgeJob holds the logic and can be run directly (tests, the admin
"run purge" endpoint). PurgeScheduler wraps it in an APScheduler interval
job. Runs never overlap: the scheduler allows one instance and coalesces
missed runs, and the job itself holds a lock so a manual trigger during a
scheduled run is skipped.

Phase 1: PENDING_DELETION older than the grace period -> DELETED
Phase 2: DELETED older than the purge window -> PURGED (domains and data
         scope destroyed by the lifecycle manager)
Phase 3: reclaim data scopes orphaned by failed provisioning runs

Each tenant is processed independently: a failure is logged and the batch
moves on, with no retry inside the run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.tenancy.core.database import utcnow
from src.tenancy.core.monitoring import tenants_purged_total
from src.tenancy.models.audit import AuditSeverity
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.schemas.tenant import PurgeRunResult
from src.tenancy.services.audit import AuditAction, AuditService
from src.tenancy.services.lifecycle import TenantLifecycleManager
from src.tenancy.services.provisioning import TenantProvisioningService
from src.tenancy.services.tenants import TenantDirectory

logger = structlog.get_logger(__name__)


class TenantPurgeJob:
    """One purge run over all tenants.

    Args:
        directory: Tenant directory.
        lifecycle: Lifecycle manager performing the transitions.
        provisioning: Provisioning service, for orphan reconciliation.
        audit: Audit service.
        grace_days: Days in PENDING_DELETION before auto-deletion.
        purge_after_days: Days after the deletion request before purge.
        clock: Current UTC time source, injectable for tests.
    """

    def __init__(
        self,
        directory: TenantDirectory,
        lifecycle: TenantLifecycleManager,
        provisioning: TenantProvisioningService,
        audit: AuditService,
        *,
        grace_days: int = 30,
        purge_after_days: int = 90,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._directory = directory
        self._lifecycle = lifecycle
        self._provisioning = provisioning
        self._audit = audit
        self._grace_days = grace_days
        self._purge_after_days = purge_after_days
        self._clock = clock
        self._lock = asyncio.Lock()

    async def run(self, now: datetime | None = None) -> PurgeRunResult:
        """Run all phases once. Returns skipped=True if a run is in progress."""
        if self._lock.locked():
            logger.warning("purge.run_skipped", reason="previous run still in progress")
            return PurgeRunResult(skipped=True)

        async with self._lock:
            now = now or self._clock()
            result = PurgeRunResult()
            await self.process_pending_deletions(now, result)
            await self.process_expired_tenants(now, result)
            try:
                result.orphans_reclaimed = await self._provisioning.reconcile_orphaned_scopes(now)
            except Exception:
                logger.exception("purge.reconciliation_failed")

            logger.info(
                "purge.run_complete",
                auto_deleted=len(result.auto_deleted),
                purged=len(result.purged),
                failed=len(result.failed),
                orphans_reclaimed=len(result.orphans_reclaimed),
            )
            return result

    async def process_pending_deletions(
        self, now: datetime, result: PurgeRunResult | None = None
    ) -> PurgeRunResult:
        """Phase 1: PENDING_DELETION past the grace period -> DELETED."""
        result = result or PurgeRunResult()
        cutoff = now - timedelta(days=self._grace_days)
        tenants = await self._directory.find_by_status_deleted_before(
            TenantStatus.PENDING_DELETION, cutoff
        )
        for tenant in tenants:
            try:
                await self._lifecycle.change_status(tenant.id, TenantStatus.DELETED, now=now)
            except Exception as exc:
                result.failed.append(tenant.slug)
                logger.error("purge.auto_delete_failed", slug=tenant.slug, error=str(exc))
                continue

            result.auto_deleted.append(tenant.slug)
            await self._audit.record(
                AuditAction.TENANT_AUTO_DELETED,
                AuditSeverity.WARN,
                tenant_id=tenant.id,
                channel_id=tenant.channel_id,
                metadata={"slug": tenant.slug, "grace_days": self._grace_days},
            )
        return result

    async def process_expired_tenants(
        self, now: datetime, result: PurgeRunResult | None = None
    ) -> PurgeRunResult:
        """Phase 2: DELETED past the purge window -> PURGED."""
        result = result or PurgeRunResult()
        cutoff = now - timedelta(days=self._purge_after_days)
        tenants = await self._directory.find_by_status_deleted_before(TenantStatus.DELETED, cutoff)
        for tenant in tenants:
            try:
                await self._lifecycle.change_status(tenant.id, TenantStatus.PURGED, now=now)
            except Exception as exc:
                result.failed.append(tenant.slug)
                logger.error("purge.purge_failed", slug=tenant.slug, error=str(exc))
                continue

            result.purged.append(tenant.slug)
            tenants_purged_total.inc()
            await self._audit.record(
                AuditAction.TENANT_PURGED,
                AuditSeverity.CRITICAL,
                tenant_id=tenant.id,
                channel_id=tenant.channel_id,
                metadata={"slug": tenant.slug, "purge_after_days": self._purge_after_days},
            )
        return result


class PurgeScheduler:
    """APScheduler wrapper running TenantPurgeJob at a fixed interval.

    Args:
        job: The purge job.
        interval_seconds: Seconds between runs (default daily).
    """

    def __init__(self, job: TenantPurgeJob, interval_seconds: int = 24 * 60 * 60) -> None:
        self._job = job
        self._interval_seconds = interval_seconds
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._started:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._run,
            trigger=IntervalTrigger(seconds=self._interval_seconds),
            id="tenant_purge",
            name="Advance tenants through grace-period deletion",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        self._scheduler.start()
        self._started = True
        logger.info("purge_scheduler.started", interval_seconds=self._interval_seconds)

    async def _run(self) -> None:
        try:
            await self._job.run()
        except Exception:
            logger.exception("purge_scheduler.run_failed")

    def stop(self) -> None:
        """Shut down the scheduler."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("purge_scheduler.stopped")
