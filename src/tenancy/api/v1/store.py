"""Tenant-facing endpoints, scoped to whatever channel the request is bound to.

Mutations here (add_domain, remove_domain, set_config) are frozen while the
tenant is suspended; reads keep working.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status

from src.tenancy.api.deps import get_services, require_operation
from src.tenancy.commerce.permissions import Permission
from src.tenancy.core.errors import NotFoundError
from src.tenancy.core.request_context import RequestContext
from src.tenancy.schemas.tenant import (
    ConfigPatch,
    DomainCreate,
    StoreTenantRead,
    TenantDomainRead,
    TenantRead,
)
from src.tenancy.services.container import TenancyServices

router = APIRouter(prefix="/api/v1/store", tags=["store"])


async def _current_tenant(services: TenancyServices, ctx: RequestContext) -> TenantRead:
    tenant = await services.directory.get_by_channel_id(ctx.channel.id)
    if tenant is None:
        raise NotFoundError("Not found")
    return tenant


@router.get("/tenant", response_model=StoreTenantRead)
async def active_tenant(
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("active_tenant", public=True)),
):
    """The tenant owning the bound channel."""
    tenant = await _current_tenant(services, ctx)
    return StoreTenantRead(
        id=tenant.id,
        name=tenant.name,
        slug=tenant.slug,
        status=tenant.status,
        plan=tenant.plan,
        primary_domain=tenant.primary_domain,
    )


@router.get("/config")
async def tenant_config(
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("tenant_config", Permission.READ_SETTINGS)),
) -> dict:
    tenant = await _current_tenant(services, ctx)
    return tenant.config


@router.patch("/config")
async def set_config(
    body: ConfigPatch,
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("set_config", Permission.UPDATE_SETTINGS)),
) -> dict:
    """Set config keys; a null value removes the key."""
    tenant = await _current_tenant(services, ctx)
    updated = await services.directory.update_tenant(tenant.id, config=body.values)
    return updated.config


@router.get("/domains", response_model=list[TenantDomainRead])
async def tenant_domains(
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("tenant_domains", Permission.READ_SETTINGS)),
):
    tenant = await _current_tenant(services, ctx)
    return await services.directory.list_domains(tenant.id)


@router.post("/domains", response_model=TenantDomainRead, status_code=status.HTTP_201_CREATED)
async def add_domain(
    body: DomainCreate,
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("add_domain", Permission.UPDATE_SETTINGS)),
):
    tenant = await _current_tenant(services, ctx)
    return await services.lifecycle.add_domain(tenant.id, body.domain, body.is_primary)


@router.delete("/domains/{domain_id}", response_model=TenantDomainRead)
async def remove_domain(
    domain_id: uuid.UUID,
    services: TenancyServices = Depends(get_services),
    ctx: RequestContext = Depends(require_operation("remove_domain", Permission.UPDATE_SETTINGS)),
):
    tenant = await _current_tenant(services, ctx)
    return await services.lifecycle.remove_domain(tenant.id, domain_id)
