"""Tenant resolver -- hostname to isolation credential, with a TTL cache.

resolve() returns a TenantResolutionResult for hostnames bound to an
operational (TRIAL/ACTIVE) tenant and None for everything else: unknown
hosts and suspended, deleted or purged tenants look exactly the same to the
caller. Both outcomes are cached, negative results for a shorter window so
that newly added domains become routable quickly.

Directory or cache failures raise ResolutionError, never None.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

import structlog
from pydantic import BaseModel

from src.tenancy.commerce.adapter import CommerceAdapter
from src.tenancy.core.cache import MISS, ResolutionCache
from src.tenancy.core.database import utcnow
from src.tenancy.core.errors import ResolutionError
from src.tenancy.core.monitoring import tenant_resolutions_total
from src.tenancy.models.tenant import OPERATIONAL_STATUSES, TenantStatus
from src.tenancy.services.tenants import TenantDirectory

logger = structlog.get_logger(__name__)


class TenantResolutionResult(BaseModel):
    """Derived, cached view of a tenant for request binding. Never persisted."""

    channel_id: uuid.UUID
    channel_token: str
    tenant_id: uuid.UUID
    tenant_slug: str
    tenant_status: TenantStatus
    expires_at: datetime


def normalize_hostname(host: str) -> str:
    """Strip the port suffix and a trailing root dot, then lowercase."""
    return host.strip().split(":")[0].lower().rstrip(".")


class TenantResolver:
    """Resolve hostnames to tenants.

    Args:
        directory: Tenant directory used on cache misses.
        commerce: Collaborator adapter, for the channel's isolation token.
        cache: Injected resolution cache (in-memory or Redis).
        ttl_seconds: Lifetime of positive results.
        negative_ttl_seconds: Lifetime of not-found results.
    """

    def __init__(
        self,
        directory: TenantDirectory,
        commerce: CommerceAdapter,
        cache: ResolutionCache,
        ttl_seconds: int = 60,
        negative_ttl_seconds: int = 10,
    ) -> None:
        self._directory = directory
        self._commerce = commerce
        self._cache = cache
        self._ttl = ttl_seconds
        self._negative_ttl = negative_ttl_seconds

    async def resolve(self, hostname: str) -> TenantResolutionResult | None:
        """Resolve a hostname.

        Raises:
            ResolutionError: The directory or the cache backend failed.
        """
        host = normalize_hostname(hostname)
        if not host:
            return None

        try:
            cached = await self._cache.get(host)
        except Exception as exc:
            tenant_resolutions_total.labels(outcome="error").inc()
            logger.exception("tenant_resolution.cache_read_failed", host=host)
            raise ResolutionError(f"Cache read failed for {host}") from exc

        if cached is not MISS:
            tenant_resolutions_total.labels(outcome="cache_hit").inc()
            if cached is None:
                return None
            return TenantResolutionResult.model_validate(cached)

        try:
            result = await self._lookup(host)
            await self._cache.set(
                host,
                result.model_dump(mode="json") if result else None,
                self._ttl if result else self._negative_ttl,
            )
        except Exception as exc:
            tenant_resolutions_total.labels(outcome="error").inc()
            logger.exception("tenant_resolution.lookup_failed", host=host)
            raise ResolutionError(f"Tenant lookup failed for {host}") from exc

        if result is None:
            tenant_resolutions_total.labels(outcome="not_found").inc()
            logger.debug("tenant_resolution.not_found", host=host)
        else:
            tenant_resolutions_total.labels(outcome="hit").inc()
            logger.debug("tenant_resolution.resolved", host=host, tenant_slug=result.tenant_slug)
        return result

    async def _lookup(self, host: str) -> TenantResolutionResult | None:
        tenant = await self._directory.get_by_domain(host)
        if tenant is None or tenant.status not in OPERATIONAL_STATUSES:
            return None

        channel = await self._commerce.get_channel(tenant.channel_id)
        if channel is None:
            logger.error(
                "tenant_resolution.channel_missing",
                tenant_slug=tenant.slug,
                channel_id=str(tenant.channel_id),
            )
            return None

        return TenantResolutionResult(
            channel_id=channel.id,
            channel_token=channel.token,
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            tenant_status=tenant.status,
            expires_at=utcnow() + timedelta(seconds=self._ttl),
        )

    async def invalidate(self, hostname: str) -> None:
        """Drop the cached result for one hostname. Idempotent."""
        await self._cache.delete(normalize_hostname(hostname))

    async def invalidate_many(self, hostnames: list[str]) -> None:
        for hostname in hostnames:
            await self.invalidate(hostname)

    async def invalidate_all(self) -> None:
        await self._cache.clear()
        logger.info("tenant_resolution.cache_cleared")
