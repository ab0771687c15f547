"""Tenant provisioning tests.

Covers:
- End-to-end provisioning over HTTP (status, credential, primary domain)
- Slug and domain conflicts
- The initial administrator's permissions are confined to the new channel
- Step failures: ProvisioningError, CRITICAL audit entry, orphan reclaim
- Resuming a tenant left in REQUESTED
- Orphaned data scope reconciliation
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from src.tenancy.commerce.permissions import PLATFORM_PERMISSIONS, Permission
from src.tenancy.commerce.schemas import ChannelCreate
from src.tenancy.core.database import utcnow
from src.tenancy.core.errors import ConflictError, ForbiddenError, ProvisioningError
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.schemas.audit import AuditQuery
from src.tenancy.services.provisioning import channel_code_for

ALPHA_DOMAIN = "alpha-store.example.tld"


# ── HTTP ────────────────────────────────────────────────────────────────────


async def test_provision_tenant(tenant_alpha):
    """Provisioning returns a TRIAL tenant, a credential and one primary domain."""
    tenant = tenant_alpha["tenant"]
    assert tenant["slug"] == "alpha-store"
    assert tenant["status"] == "TRIAL"
    assert tenant["plan"] == "trial"
    assert tenant_alpha["channel_token"]
    assert tenant_alpha["administrator_id"]
    assert tenant_alpha["resumed"] is False

    assert len(tenant["domains"]) == 1
    assert tenant["domains"][0]["domain"] == ALPHA_DOMAIN
    assert tenant["domains"][0]["is_primary"] is True


async def test_provisioned_tenant_reads_back_by_slug(client, services, superadmin_headers, tenant_alpha):
    stored = await services.directory.get_by_slug("alpha-store")
    assert stored is not None
    assert stored.status == TenantStatus.TRIAL
    assert [d.domain for d in stored.domains if d.is_primary] == [ALPHA_DOMAIN]
    assert str(stored.channel_id) == tenant_alpha["tenant"]["channel_id"]

    response = await client.get("/api/v1/tenants/by-slug/alpha-store", headers=superadmin_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "TRIAL"
    primaries = [d for d in body["domains"] if d["is_primary"]]
    assert len(primaries) == 1
    assert primaries[0]["domain"] == ALPHA_DOMAIN


async def test_duplicate_slug_rejected(client, superadmin_headers, tenant_alpha):
    response = await client.post(
        "/api/v1/tenants",
        json={
            "name": "Alpha Again",
            "slug": "alpha-store",
            "domain": "other.example.tld",
            "admin": {
                "first_name": "A",
                "last_name": "B",
                "email": "a@other.example.com",
                "password": "password-1",
            },
        },
        headers=superadmin_headers,
    )
    assert response.status_code == 409
    assert "already taken" in response.json()["detail"]


async def test_duplicate_domain_rejected(client, superadmin_headers, tenant_alpha):
    response = await client.post(
        "/api/v1/tenants",
        json={
            "name": "Copycat",
            "slug": "copycat",
            "domain": "Alpha-Store.example.tld",
            "admin": {
                "first_name": "C",
                "last_name": "D",
                "email": "c@copycat.example.com",
                "password": "password-1",
            },
        },
        headers=superadmin_headers,
    )
    assert response.status_code == 409
    assert "already in use" in response.json()["detail"]


async def test_invalid_slug_rejected(client, superadmin_headers):
    response = await client.post(
        "/api/v1/tenants",
        json={
            "name": "Bad",
            "slug": "Bad Slug!",
            "domain": "bad.example.tld",
            "admin": {
                "first_name": "B",
                "last_name": "D",
                "email": "b@bad.example.com",
                "password": "password-1",
            },
        },
        headers=superadmin_headers,
    )
    assert response.status_code == 422


async def test_provision_requires_manage_tenants(client, alpha_headers):
    response = await client.post(
        f"http://{ALPHA_DOMAIN}/api/v1/tenants",
        json={
            "name": "Sneaky",
            "slug": "sneaky",
            "domain": "sneaky.example.tld",
            "admin": {
                "first_name": "S",
                "last_name": "N",
                "email": "s@sneaky.example.com",
                "password": "password-1",
            },
        },
        headers=alpha_headers,
    )
    assert response.status_code == 403


async def test_tenant_admin_permissions_are_channel_scoped(client, alpha_headers):
    response = await client.get(f"http://{ALPHA_DOMAIN}/api/v1/auth/me", headers=alpha_headers)
    assert response.status_code == 200, response.text
    me = response.json()
    assert me["channel_code"] == channel_code_for("alpha-store")
    assert me["is_super_admin"] is False
    assert Permission.UPDATE_SETTINGS.value in me["permissions"]
    assert not set(me["permissions"]) & {p.value for p in PLATFORM_PERMISSIONS}


async def test_superadmin_gains_new_channel(client, superadmin_headers, tenant_alpha):
    response = await client.get(f"http://{ALPHA_DOMAIN}/api/v1/auth/me", headers=superadmin_headers)
    assert response.status_code == 200
    assert response.json()["is_super_admin"] is True


# ── Service Level ───────────────────────────────────────────────────────────


async def test_tenant_created_is_audited(services, provision):
    created = await provision("gamma")
    page = await services.audit.query(
        AuditQuery(action="TENANT_CREATED", tenant_id=created.tenant.id)
    )
    assert page.total == 1
    assert page.items[0].metadata["domain"] == "gamma.example.tld"


async def test_step_failure_is_reported_and_audited(services, provision):
    with patch.object(
        services.commerce, "create_role", AsyncMock(side_effect=RuntimeError("db down"))
    ):
        with pytest.raises(ProvisioningError) as exc_info:
            await provision("gamma")

    err = exc_info.value
    assert err.step == "create_admin_role"
    assert err.completed_steps == ["create_seller", "create_channel", "grant_super_admin_role"]
    assert err.status_code == 500
    assert err.detail == "Tenant provisioning failed at step 'create_admin_role'"
    assert "db down" not in err.detail

    page = await services.audit.query(AuditQuery(action="TENANT_PROVISIONING_FAILED"))
    assert page.total == 1
    entry = page.items[0]
    assert entry.severity == "CRITICAL"
    assert entry.metadata["step"] == "create_admin_role"
    assert await services.directory.get_by_slug("gamma") is None


async def test_retry_reclaims_orphaned_channel(services, provision):
    """A channel left by a failed run is destroyed before the retry creates a new one."""
    with patch.object(
        services.commerce, "create_administrator", AsyncMock(side_effect=RuntimeError("boom"))
    ):
        with pytest.raises(ProvisioningError):
            await provision("gamma")

    orphan = await services.commerce.get_channel_by_code(channel_code_for("gamma"))
    assert orphan is not None

    created = await provision("gamma")

    assert created.tenant.channel_id != orphan.id
    assert await services.commerce.get_channel(orphan.id) is None
    page = await services.audit.query(AuditQuery(action="ORPHANED_DATA_SCOPE_RECLAIMED"))
    assert page.items[0].metadata["channel_code"] == "tenant-gamma"


async def test_missing_super_admin_grant_blocks_role_creation(services, provision):
    """Without the grant step, the channel permission check rejects the admin role."""
    with patch.object(services.commerce, "assign_role_to_channel", AsyncMock(return_value=None)):
        with pytest.raises(ProvisioningError) as exc_info:
            await provision("gamma")

    assert exc_info.value.step == "create_admin_role"
    assert isinstance(exc_info.value.cause, ForbiddenError)


async def test_resume_requested_tenant(services, provision):
    with patch.object(
        services.lifecycle, "change_status", AsyncMock(side_effect=RuntimeError("lost"))
    ):
        with pytest.raises(ProvisioningError) as exc_info:
            await provision("gamma")
    assert exc_info.value.step == "activate"
    assert "create_primary_domain" in exc_info.value.completed_steps

    stuck = await services.directory.get_by_slug("gamma")
    assert stuck.status == TenantStatus.REQUESTED

    resumed = await provision("gamma")

    assert resumed.resumed is True
    assert resumed.tenant.id == stuck.id
    assert resumed.tenant.status == TenantStatus.TRIAL
    assert resumed.channel_token


async def test_slug_of_live_tenant_is_not_resumed(services, provision):
    await provision("gamma")
    with pytest.raises(ConflictError):
        await provision("gamma", domain="other-gamma.example.tld")


async def test_reconcile_skips_young_orphans(services, superadmin):
    channel = await services.commerce.create_channel(
        ChannelCreate(code=channel_code_for("ghost"), token="ghost-token")
    )

    assert await services.provisioning.reconcile_orphaned_scopes(utcnow()) == []
    assert await services.commerce.get_channel(channel.id) is not None

    reclaimed = await services.provisioning.reconcile_orphaned_scopes(utcnow() + timedelta(hours=2))

    assert reclaimed == ["tenant-ghost"]
    assert await services.commerce.get_channel(channel.id) is None


async def test_reconcile_keeps_channels_in_use(services, provision):
    created = await provision("gamma")
    reclaimed = await services.provisioning.reconcile_orphaned_scopes(utcnow() + timedelta(days=1))
    assert reclaimed == []
    assert await services.commerce.get_channel(created.tenant.channel_id) is not None


async def test_default_channel_cannot_be_purged(services):
    default = await services.commerce.get_default_channel()
    with pytest.raises(ForbiddenError):
        await services.commerce.purge_channel(default.id)
