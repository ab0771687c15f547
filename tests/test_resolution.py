"""Tenant resolver tests.

Covers:
- Hostname normalization (case, port)
- Positive and negative caching with separate TTLs
- Non-operational tenants and missing channels resolve to None
- Infrastructure failures raise ResolutionError
- Domain add/remove invalidation
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.tenancy.core.errors import ResolutionError
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.services.resolution import normalize_hostname


def test_normalize_hostname():
    assert normalize_hostname("Shop.Example.TLD:8443") == "shop.example.tld"
    assert normalize_hostname("  alpha.example.tld ") == "alpha.example.tld"
    assert normalize_hostname("Alpha.Example.TLD.") == "alpha.example.tld"
    assert normalize_hostname("alpha.example.tld.:443") == "alpha.example.tld"


async def test_fully_qualified_hostname_resolves(services, provision):
    created = await provision("gamma")

    result = await services.resolver.resolve("gamma.example.tld.")

    assert result is not None
    assert result.tenant_id == created.tenant.id


async def test_invalidate_twice_matches_single_invalidate(services, provision):
    await provision("gamma")
    directory = services.directory
    await services.resolver.resolve("gamma.example.tld")

    await services.resolver.invalidate("gamma.example.tld")
    await services.resolver.invalidate("gamma.example.tld")
    await services.resolver.invalidate("never-cached.example.tld")

    with patch.object(directory, "get_by_domain", wraps=directory.get_by_domain) as spy:
        result = await services.resolver.resolve("gamma.example.tld")
        assert result is not None
        assert result.tenant_slug == "gamma"
        assert spy.await_count == 1

        # Repopulated exactly once; the next lookup is a cache hit
        await services.resolver.resolve("gamma.example.tld")
        assert spy.await_count == 1


async def test_resolves_operational_tenant(services, provision):
    created = await provision("gamma")

    result = await services.resolver.resolve("GAMMA.example.tld:443")

    assert result is not None
    assert result.tenant_id == created.tenant.id
    assert result.tenant_slug == "gamma"
    assert result.tenant_status == TenantStatus.TRIAL
    assert result.channel_id == created.tenant.channel_id
    assert result.channel_token == created.channel_token


async def test_unknown_hostname_resolves_to_none(services):
    assert await services.resolver.resolve("nowhere.example.tld") is None
    assert await services.resolver.resolve("") is None


async def test_positive_result_is_cached_until_ttl(services, provision, clock):
    await provision("gamma")
    directory = services.directory
    with patch.object(directory, "get_by_domain", wraps=directory.get_by_domain) as spy:
        await services.resolver.resolve("gamma.example.tld")
        await services.resolver.resolve("gamma.example.tld")
        assert spy.await_count == 1

        clock.advance(services.settings.RESOLVER_CACHE_TTL_SECONDS + 1)
        await services.resolver.resolve("gamma.example.tld")
        assert spy.await_count == 2


async def test_negative_result_uses_short_ttl(services, provision, clock):
    """A not-found result is cached, but only for the negative TTL."""
    created = await provision("gamma")
    assert await services.resolver.resolve("new.gamma.example.tld") is None

    # Written behind the lifecycle manager's back, so nothing invalidates
    await services.directory.add_domain(created.tenant.id, "new.gamma.example.tld")
    assert await services.resolver.resolve("new.gamma.example.tld") is None

    clock.advance(services.settings.RESOLVER_NEGATIVE_TTL_SECONDS + 1)
    result = await services.resolver.resolve("new.gamma.example.tld")
    assert result is not None
    assert result.tenant_slug == "gamma"


async def test_added_domain_is_routable_immediately(services, provision):
    created = await provision("gamma")
    assert await services.resolver.resolve("shop.gamma.example.tld") is None

    await services.lifecycle.add_domain(created.tenant.id, "shop.gamma.example.tld")

    assert await services.resolver.resolve("shop.gamma.example.tld") is not None


async def test_removed_domain_stops_resolving(services, provision):
    created = await provision("gamma")
    extra = await services.lifecycle.add_domain(created.tenant.id, "shop.gamma.example.tld")
    assert await services.resolver.resolve("shop.gamma.example.tld") is not None

    await services.lifecycle.remove_domain(created.tenant.id, extra.id)

    assert await services.resolver.resolve("shop.gamma.example.tld") is None


@pytest.mark.parametrize(
    "status",
    [TenantStatus.SUSPENDED, TenantStatus.PENDING_DELETION],
)
async def test_non_operational_tenant_resolves_to_none(services, provision, status):
    created = await provision("gamma")
    await services.lifecycle.change_status(created.tenant.id, status)
    assert await services.resolver.resolve("gamma.example.tld") is None


async def test_missing_channel_resolves_to_none(services, provision):
    await provision("gamma")
    with patch.object(services.commerce, "get_channel", AsyncMock(return_value=None)):
        assert await services.resolver.resolve("gamma.example.tld") is None


async def test_directory_failure_raises(services):
    with patch.object(
        services.directory, "get_by_domain", AsyncMock(side_effect=RuntimeError("db gone"))
    ):
        with pytest.raises(ResolutionError) as exc_info:
            await services.resolver.resolve("gamma.example.tld")
    assert exc_info.value.status_code == 503
    assert exc_info.value.detail == "Service temporarily unavailable"


async def test_cache_failure_raises(services):
    with patch.object(services.cache, "get", AsyncMock(side_effect=ConnectionError("redis gone"))):
        with pytest.raises(ResolutionError):
            await services.resolver.resolve("gamma.example.tld")


async def test_invalidate_all(services, provision):
    await provision("gamma")
    await services.resolver.resolve("gamma.example.tld")
    await services.resolver.resolve("nowhere.example.tld")
    assert len(services.cache) == 2

    await services.resolver.invalidate_all()

    assert len(services.cache) == 0
