"""Tenant management API endpoints (platform surface).

Everything here requires ManageTenants, which only the SuperAdmin role holds,
except reading a tenant by id: a tenant administrator may read their own
tenant, and any other id answers 404.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from src.tenancy.api.deps import get_services, require_operation
from src.tenancy.api.guards import assert_in_scope
from src.tenancy.commerce.permissions import Permission
from src.tenancy.core.errors import NotFoundError
from src.tenancy.core.request_context import RequestContext
from src.tenancy.schemas.tenant import (
    DomainCreate,
    ProvisionResult,
    PurgeRunResult,
    TenantDomainRead,
    TenantProvisionRequest,
    TenantRead,
    TenantStatusChange,
    TenantUpdate,
)
from src.tenancy.services.container import TenancyServices

router = APIRouter(prefix="/api/v1/tenants", tags=["tenants"])

MANAGE = Permission.MANAGE_TENANTS


async def _get_or_404(services: TenancyServices, tenant_id: uuid.UUID) -> TenantRead:
    tenant = await services.directory.get_by_id(tenant_id)
    if tenant is None:
        raise NotFoundError("Not found")
    return tenant


@router.get("", response_model=list[TenantRead])
async def list_tenants(
    take: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("tenants", MANAGE)),
):
    """Newest-first page of all tenants."""
    return await services.directory.find_all(take=take, skip=skip)


@router.post("", response_model=ProvisionResult, status_code=status.HTTP_201_CREATED)
async def provision_tenant(
    body: TenantProvisionRequest,
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("create_tenant", MANAGE)),
):
    """Provision a tenant: seller, channel, admin role and administrator, tenant, domain."""
    return await services.provisioning.provision(ctx.actor_id, body)


@router.post("/purge-runs", response_model=PurgeRunResult)
async def run_purge(
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("delete_expired_tenants", MANAGE)),
):
    """Run the purge scheduler once, now."""
    return await services.purge_job.run()


@router.get("/by-slug/{slug}", response_model=TenantRead)
async def get_tenant_by_slug(
    slug: str,
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("tenant_by_slug", MANAGE)),
):
    tenant = await services.directory.get_by_slug(slug)
    if tenant is None:
        raise NotFoundError("Not found")
    return tenant


@router.get("/{tenant_id}", response_model=TenantRead)
async def get_tenant(
    tenant_id: uuid.UUID,
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("tenant", Permission.READ_SETTINGS)),
):
    tenant = await _get_or_404(services, tenant_id)
    assert_in_scope(ctx, tenant.channel_id)
    return tenant


@router.patch("/{tenant_id}", response_model=TenantRead)
async def update_tenant(
    tenant_id: uuid.UUID,
    body: TenantUpdate,
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("update_tenant", MANAGE)),
):
    """Update name/plan; config keys are merged (null removes a key)."""
    return await services.directory.update_tenant(
        tenant_id, name=body.name, plan=body.plan, config=body.config
    )


@router.post("/{tenant_id}/status", response_model=TenantRead)
async def change_tenant_status(
    tenant_id: uuid.UUID,
    body: TenantStatusChange,
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("update_tenant_status", MANAGE)),
):
    return await services.lifecycle.change_status(
        tenant_id, body.status, actor_user_id=ctx.actor_id
    )


@router.delete("/{tenant_id}", response_model=TenantRead)
async def delete_tenant(
    tenant_id: uuid.UUID,
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("delete_tenant", MANAGE)),
):
    """Start the deletion grace period (PENDING_DELETION)."""
    return await services.lifecycle.delete_tenant(tenant_id, actor_user_id=ctx.actor_id)


@router.post(
    "/{tenant_id}/domains",
    response_model=TenantDomainRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_tenant_domain(
    tenant_id: uuid.UUID,
    body: DomainCreate,
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("add_tenant_domain", MANAGE)),
):
    return await services.lifecycle.add_domain(tenant_id, body.domain, body.is_primary)


@router.delete("/{tenant_id}/domains/{domain_id}", response_model=TenantDomainRead)
async def remove_tenant_domain(
    tenant_id: uuid.UUID,
    domain_id: uuid.UUID,
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("remove_tenant_domain", MANAGE)),
):
    return await services.lifecycle.remove_domain(tenant_id, domain_id)
