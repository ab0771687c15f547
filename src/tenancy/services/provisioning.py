"""Tenant provisioning -- the multi-step workflow that creates a tenant.

Steps run in a fixed order; each one needs the output of an earlier one:

1. validate     slug (and primary domain) are free
2. seller       business entity for the tenant's organization
3. channel      dedicated data scope with a fresh isolation token
4. grant        SuperAdmin role gains the new channel, otherwise step 5 is
                rejected by the collaborator's channel permission check
5. role         tenant admin role, business permissions only
6. admin        initial administrator bound to that role
7/8. tenant     tenant row (REQUESTED) and primary domain, one transaction
9. activate     REQUESTED -> PROVISIONING -> TRIAL
10. announce    TenantCreated

Failure after step 1 raises ProvisioningError naming the failing step and
is audited as CRITICAL. Recovery:
- a slug whose tenant row exists but is still REQUESTED/PROVISIONING is
  resumed from step 8 by calling provision() again;
- a channel ``tenant-<slug>`` with no tenant row (failure between steps 3
  and 7) is destroyed before a new one is created, and also by
  reconcile_orphaned_scopes(), which the purge job runs.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import structlog

from src.tenancy.commerce.adapter import CommerceAdapter
from src.tenancy.commerce.permissions import TENANT_ADMIN_PERMISSIONS
from src.tenancy.commerce.schemas import AdministratorCreate, ChannelCreate, ChannelRead
from src.tenancy.core.database import utcnow
from src.tenancy.core.errors import ConflictError, ProvisioningError
from src.tenancy.core.security import generate_channel_token
from src.tenancy.events import LifecycleEventBus, TenantCreated
from src.tenancy.models.audit import AuditSeverity
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.schemas.tenant import ProvisionResult, TenantProvisionRequest, TenantRead
from src.tenancy.services.audit import AuditAction, AuditService
from src.tenancy.services.lifecycle import TenantLifecycleManager
from src.tenancy.services.tenants import TenantDirectory

logger = structlog.get_logger(__name__)

CHANNEL_CODE_PREFIX = "tenant-"

_RESUMABLE = (TenantStatus.REQUESTED, TenantStatus.PROVISIONING)


def channel_code_for(slug: str) -> str:
    return f"{CHANNEL_CODE_PREFIX}{slug}"


class TenantProvisioningService:
    """Creates tenants and reclaims the data scopes of failed attempts.

    Args:
        directory: Tenant directory.
        lifecycle: Lifecycle manager used for the activation transitions.
        commerce: Collaborator adapter creating seller/channel/role/admin.
        audit: Audit service for failures and reclaimed scopes.
        bus: Event bus receiving TenantCreated.
        default_plan: Plan of tenants provisioned without an explicit one.
        default_language_code, default_currency_code, prices_include_tax:
            Channel defaults when the request leaves them unset.
        orphan_min_age: Channels younger than this are never treated as
            orphans (a provisioning run may still be in flight).
    """

    def __init__(
        self,
        directory: TenantDirectory,
        lifecycle: TenantLifecycleManager,
        commerce: CommerceAdapter,
        audit: AuditService,
        bus: LifecycleEventBus,
        *,
        default_plan: str = "trial",
        default_language_code: str = "en",
        default_currency_code: str = "USD",
        prices_include_tax: bool = True,
        orphan_min_age: timedelta = timedelta(hours=1),
    ) -> None:
        self._directory = directory
        self._lifecycle = lifecycle
        self._commerce = commerce
        self._audit = audit
        self._bus = bus
        self._default_plan = default_plan
        self._default_language_code = default_language_code
        self._default_currency_code = default_currency_code
        self._prices_include_tax = prices_include_tax
        self._orphan_min_age = orphan_min_age

    async def provision(
        self, actor_user_id: uuid.UUID, request: TenantProvisionRequest
    ) -> ProvisionResult:
        """Provision a tenant, or resume one left in REQUESTED/PROVISIONING.

        Raises:
            ConflictError: Slug or domain taken by another tenant.
            ProvisioningError: A step after validation failed.
        """
        slug = request.slug
        existing = await self._directory.get_by_slug(slug)
        if existing is not None:
            if existing.status in _RESUMABLE:
                return await self._resume(actor_user_id, existing, request)
            raise ConflictError(f"Tenant slug '{slug}' is already taken")

        if await self._directory.get_by_domain(request.domain) is not None:
            raise ConflictError(f"Domain '{request.domain}' is already in use")

        completed: list[str] = []
        step = "reclaim_orphan"
        try:
            await self._reclaim_orphan_for(slug, actor_user_id)

            step = "create_seller"
            seller = await self._commerce.create_seller(request.name)
            completed.append(step)

            step = "create_channel"
            default_channel = await self._commerce.get_default_channel()
            channel = await self._commerce.create_channel(
                ChannelCreate(
                    code=channel_code_for(slug),
                    token=generate_channel_token(slug),
                    seller_id=seller.id,
                    default_language_code=request.default_language_code
                    or self._default_language_code,
                    default_currency_code=request.default_currency_code
                    or self._default_currency_code,
                    prices_include_tax=(
                        request.prices_include_tax
                        if request.prices_include_tax is not None
                        else self._prices_include_tax
                    ),
                    default_tax_zone_id=default_channel.default_tax_zone_id,
                    default_shipping_zone_id=default_channel.default_shipping_zone_id,
                )
            )
            completed.append(step)

            step = "grant_super_admin_role"
            super_admin_role = await self._commerce.get_super_admin_role()
            await self._commerce.assign_role_to_channel(super_admin_role.id, channel.id)
            completed.append(step)

            step = "create_admin_role"
            role = await self._commerce.create_role(
                actor_user_id,
                code=f"{slug}-admin",
                description=f"Administrator of {request.name}",
                channel_ids=[channel.id],
                permissions=TENANT_ADMIN_PERMISSIONS,
            )
            completed.append(step)

            step = "create_administrator"
            administrator = await self._commerce.create_administrator(
                actor_user_id,
                AdministratorCreate(
                    first_name=request.admin.first_name,
                    last_name=request.admin.last_name,
                    email=request.admin.email,
                    password=request.admin.password,
                    role_ids=[role.id],
                ),
            )
            completed.append(step)

            step = "create_tenant"
            tenant = await self._directory.create_tenant(
                name=request.name,
                slug=slug,
                channel_id=channel.id,
                primary_domain=request.domain,
                plan=request.plan or self._default_plan,
            )
            completed.extend(["create_tenant", "create_primary_domain"])

            step = "activate"
            tenant = await self._activate(tenant, actor_user_id)
            completed.append(step)
        except Exception as exc:
            await self._audit.record(
                AuditAction.TENANT_PROVISIONING_FAILED,
                AuditSeverity.CRITICAL,
                actor_user_id=actor_user_id,
                metadata={
                    "slug": slug,
                    "step": step,
                    "completed_steps": completed,
                    "error": f"{type(exc).__name__}: {exc}",
                },
            )
            logger.error(
                "provisioning.failed",
                slug=slug,
                step=step,
                completed_steps=completed,
                error=str(exc),
            )
            raise ProvisioningError(step, completed, exc) from exc

        await self._announce(tenant, actor_user_id, request.domain)
        logger.info("provisioning.completed", tenant_id=str(tenant.id), slug=slug)
        return ProvisionResult(
            tenant=tenant,
            channel_token=channel.token,
            administrator_id=administrator.id,
        )

    async def reconcile_orphaned_scopes(self, now: datetime | None = None) -> list[str]:
        """Destroy tenant channels that no tenant row references.

        Returns the codes of the reclaimed channels.
        """
        now = now or utcnow()
        channels = await self._commerce.list_channels_by_code_prefix(CHANNEL_CODE_PREFIX)
        in_use = await self._directory.channel_ids_in_use(c.id for c in channels)

        reclaimed: list[str] = []
        for channel in channels:
            if channel.id in in_use or not self._old_enough(channel, now):
                continue
            try:
                await self._reclaim(channel, actor_user_id=None)
                reclaimed.append(channel.code)
            except Exception:
                logger.exception("provisioning.reclaim_failed", channel_code=channel.code)
        return reclaimed

    # ── Internal ────────────────────────────────────────────────────────

    async def _resume(
        self,
        actor_user_id: uuid.UUID,
        tenant: TenantRead,
        request: TenantProvisionRequest,
    ) -> ProvisionResult:
        logger.info("provisioning.resuming", tenant_id=str(tenant.id), status=tenant.status.value)
        step = "create_primary_domain"
        try:
            if not tenant.domains:
                await self._lifecycle.add_domain(tenant.id, request.domain, is_primary=True)
            step = "activate"
            tenant = await self._activate(tenant, actor_user_id)
            channel = await self._commerce.get_channel(tenant.channel_id)
        except Exception as exc:
            await self._audit.record(
                AuditAction.TENANT_PROVISIONING_FAILED,
                AuditSeverity.CRITICAL,
                actor_user_id=actor_user_id,
                tenant_id=tenant.id,
                channel_id=tenant.channel_id,
                metadata={"slug": tenant.slug, "step": step, "resumed": True, "error": str(exc)},
            )
            raise ProvisioningError(step, ["create_tenant"], exc) from exc

        await self._announce(tenant, actor_user_id, tenant.primary_domain or request.domain)
        return ProvisionResult(
            tenant=tenant,
            channel_token=channel.token if channel else "",
            administrator_id=None,
            resumed=True,
        )

    async def _activate(self, tenant: TenantRead, actor_user_id: uuid.UUID) -> TenantRead:
        if tenant.status == TenantStatus.REQUESTED:
            tenant = await self._lifecycle.change_status(
                tenant.id, TenantStatus.PROVISIONING, actor_user_id=actor_user_id
            )
        if tenant.status == TenantStatus.PROVISIONING:
            tenant = await self._lifecycle.change_status(
                tenant.id, TenantStatus.TRIAL, actor_user_id=actor_user_id
            )
        return tenant

    async def _announce(self, tenant: TenantRead, actor_user_id: uuid.UUID, domain: str) -> None:
        await self._bus.publish(
            TenantCreated(
                tenant_id=tenant.id,
                tenant_slug=tenant.slug,
                channel_id=tenant.channel_id,
                actor_user_id=actor_user_id,
                data={"name": tenant.name, "domain": domain, "plan": tenant.plan},
            )
        )

    async def _reclaim_orphan_for(self, slug: str, actor_user_id: uuid.UUID) -> None:
        orphan = await self._commerce.get_channel_by_code(channel_code_for(slug))
        if orphan is None:
            return
        if await self._directory.get_by_channel_id(orphan.id) is not None:
            raise ConflictError(f"Channel {orphan.code} already belongs to a tenant")
        await self._reclaim(orphan, actor_user_id=actor_user_id)

    async def _reclaim(self, channel: ChannelRead, actor_user_id: uuid.UUID | None) -> None:
        await self._commerce.purge_channel(channel.id)
        await self._audit.record(
            AuditAction.ORPHANED_DATA_SCOPE_RECLAIMED,
            AuditSeverity.WARN,
            actor_user_id=actor_user_id,
            channel_id=channel.id,
            metadata={"channel_code": channel.code},
        )

    def _old_enough(self, channel: ChannelRead, now: datetime) -> bool:
        if channel.created_at is None:
            return True
        created = channel.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return now - created >= self._orphan_min_age
