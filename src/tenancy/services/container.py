"""Wiring of the tenancy services.

build_services() assembles every service from a session factory and the
settings; the app lifespan stores the result on app.state.services and the
API dependencies read it from there.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.tenancy.commerce.adapter import CommerceAdapter
from src.tenancy.commerce.sql import SqlCommerceAdapter
from src.tenancy.config import Settings
from src.tenancy.core.cache import InMemoryResolutionCache, RedisResolutionCache, ResolutionCache
from src.tenancy.core.database import SessionFactory
from src.tenancy.core.redis import get_redis_pool
from src.tenancy.events import LifecycleEventBus
from src.tenancy.services.audit import AuditService
from src.tenancy.services.lifecycle import TenantLifecycleManager
from src.tenancy.services.provisioning import TenantProvisioningService
from src.tenancy.services.purge import PurgeScheduler, TenantPurgeJob
from src.tenancy.services.resolution import TenantResolver
from src.tenancy.services.tenants import TenantDirectory


@dataclass
class TenancyServices:
    settings: Settings
    session_factory: SessionFactory
    bus: LifecycleEventBus
    commerce: CommerceAdapter
    directory: TenantDirectory
    cache: ResolutionCache
    resolver: TenantResolver
    audit: AuditService
    lifecycle: TenantLifecycleManager
    provisioning: TenantProvisioningService
    purge_job: TenantPurgeJob
    purge_scheduler: PurgeScheduler


def build_cache(settings: Settings) -> ResolutionCache:
    if settings.RESOLVER_CACHE_BACKEND == "redis":
        return RedisResolutionCache(get_redis_pool())
    return InMemoryResolutionCache()


def build_services(
    session_factory: SessionFactory,
    settings: Settings,
    *,
    cache: ResolutionCache | None = None,
    commerce: CommerceAdapter | None = None,
) -> TenancyServices:
    """Create and connect all tenancy services.

    The audit service is subscribed to the lifecycle bus here.
    """
    bus = LifecycleEventBus()
    commerce = commerce or SqlCommerceAdapter(session_factory)
    directory = TenantDirectory(session_factory)
    cache = cache or build_cache(settings)
    resolver = TenantResolver(
        directory,
        commerce,
        cache,
        ttl_seconds=settings.RESOLVER_CACHE_TTL_SECONDS,
        negative_ttl_seconds=settings.RESOLVER_NEGATIVE_TTL_SECONDS,
    )
    audit = AuditService(session_factory)
    audit.subscribe(bus)

    lifecycle = TenantLifecycleManager(directory, resolver, commerce, bus)
    provisioning = TenantProvisioningService(
        directory,
        lifecycle,
        commerce,
        audit,
        bus,
        default_plan=settings.DEFAULT_PLAN,
        default_language_code=settings.DEFAULT_LANGUAGE_CODE,
        default_currency_code=settings.DEFAULT_CURRENCY_CODE,
        prices_include_tax=settings.DEFAULT_PRICES_INCLUDE_TAX,
    )
    purge_job = TenantPurgeJob(
        directory,
        lifecycle,
        provisioning,
        audit,
        grace_days=settings.DELETION_GRACE_DAYS,
        purge_after_days=settings.PURGE_AFTER_DAYS,
    )
    purge_scheduler = PurgeScheduler(purge_job, interval_seconds=settings.PURGE_INTERVAL_SECONDS)

    return TenancyServices(
        settings=settings,
        session_factory=session_factory,
        bus=bus,
        commerce=commerce,
        directory=directory,
        cache=cache,
        resolver=resolver,
        audit=audit,
        lifecycle=lifecycle,
        provisioning=provisioning,
        purge_job=purge_job,
        purge_scheduler=purge_scheduler,
    )
