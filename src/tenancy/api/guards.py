"""Post-authentication guards (second stage of the request gate).

Run after the RequestContext is built and before the endpoint body:

TenantGuard
    - requests bound to a tenant hostname must act on that tenant's channel;
      anything else is an internal inconsistency or a bypass attempt (403,
      CROSS_TENANT_ATTEMPT_BLOCKED)
    - an authenticated principal without any role on the tenant's channel is
      answered as not found (404, CROSS_TENANT_ATTEMPT_BLOCKED); public
      operations are exempt
    - mutations against a SUSPENDED tenant are rejected (403,
      SUSPENDED_TENANT_MUTATION_BLOCKED); reads pass. Without hostname
      binding the tenant is looked up from the active channel.

DefaultChannelGuard
    - the default channel sees every tenant; only SuperAdmin may act on it.
      Every SuperAdmin use is logged and mutations are audited
      (SUPERADMIN_ACTION). Anyone else is rejected (403,
      DEFAULT_CHANNEL_ACCESS_BLOCKED). Public operations are exempt.

assert_in_scope() is the entity-level check: an entity from another
channel is reported as not found.
"""

from __future__ import annotations

import re
import uuid

import structlog

from src.tenancy.core.errors import ForbiddenError, NotFoundError
from src.tenancy.core.monitoring import isolation_blocks_total
from src.tenancy.core.request_context import RequestContext
from src.tenancy.models.audit import AuditSeverity
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.services.audit import AuditAction, AuditService
from src.tenancy.services.resolution import TenantResolutionResult
from src.tenancy.services.tenants import TenantDirectory

logger = structlog.get_logger(__name__)

_MUTATION_PATTERN = re.compile(r"^(create|update|delete|add|remove|set)(?=$|_|[A-Z])")


def is_mutation(operation: str) -> bool:
    """True for operation names starting with a write verb (add_domain, setConfig)."""
    return bool(_MUTATION_PATTERN.match(operation))


class SuspendedTenantError(ForbiddenError):
    public_message = "This store is suspended and cannot be changed"


def assert_in_scope(ctx: RequestContext, channel_id: uuid.UUID) -> None:
    """Raise NotFoundError unless the entity belongs to the caller's channel.

    SuperAdmin acting on the default channel sees every channel.
    """
    if ctx.channel.is_default and ctx.is_super_admin:
        return
    if channel_id != ctx.channel.id:
        raise NotFoundError("Not found")


class TenantGuard:
    def __init__(self, directory: TenantDirectory, audit: AuditService) -> None:
        self._directory = directory
        self._audit = audit

    async def check(
        self,
        ctx: RequestContext,
        operation: str,
        bound: TenantResolutionResult | None,
        public: bool = False,
    ) -> None:
        if bound is not None:
            if ctx.channel.id != bound.channel_id:
                isolation_blocks_total.labels(kind="cross_tenant").inc()
                await self._audit.record(
                    AuditAction.CROSS_TENANT_ATTEMPT_BLOCKED,
                    AuditSeverity.CRITICAL,
                    actor_user_id=ctx.actor_id,
                    channel_id=ctx.channel.id,
                    tenant_id=bound.tenant_id,
                    metadata={
                        "operation": operation,
                        "tenant_slug": bound.tenant_slug,
                        "resolved_channel_id": str(bound.channel_id),
                    },
                    ip_address=ctx.ip_address,
                )
                raise ForbiddenError(
                    f"Channel {ctx.channel.id} does not match tenant {bound.tenant_slug}"
                )
            tenant_id, slug, status = bound.tenant_id, bound.tenant_slug, bound.tenant_status
        else:
            if ctx.channel.is_default:
                return
            tenant = await self._directory.get_by_channel_id(ctx.channel.id)
            if tenant is None:
                return
            tenant_id, slug, status = tenant.id, tenant.slug, tenant.status

        # Principal holds no role on this tenant's channel
        if ctx.is_authenticated and not public and not ctx.permissions:
            isolation_blocks_total.labels(kind="cross_tenant").inc()
            await self._audit.record(
                AuditAction.CROSS_TENANT_ATTEMPT_BLOCKED,
                AuditSeverity.CRITICAL,
                actor_user_id=ctx.actor_id,
                channel_id=ctx.channel.id,
                tenant_id=tenant_id,
                metadata={
                    "operation": operation,
                    "tenant_slug": slug,
                    "reason": "principal_out_of_scope",
                },
                ip_address=ctx.ip_address,
            )
            raise NotFoundError("Not found")

        if status == TenantStatus.SUSPENDED and is_mutation(operation):
            isolation_blocks_total.labels(kind="suspended_mutation").inc()
            await self._audit.record(
                AuditAction.SUSPENDED_TENANT_MUTATION_BLOCKED,
                AuditSeverity.WARN,
                actor_user_id=ctx.actor_id,
                channel_id=ctx.channel.id,
                tenant_id=tenant_id,
                metadata={"operation": operation, "tenant_slug": slug},
                ip_address=ctx.ip_address,
            )
            raise SuspendedTenantError(f"Tenant {slug} is suspended; {operation} rejected")


class DefaultChannelGuard:
    def __init__(self, audit: AuditService) -> None:
        self._audit = audit

    async def check(self, ctx: RequestContext, operation: str, public: bool = False) -> None:
        if public or not ctx.channel.is_default:
            return

        if ctx.is_super_admin:
            logger.info(
                "default_channel.superadmin_access",
                operation=operation,
                administrator_id=str(ctx.actor_id),
            )
            if is_mutation(operation):
                await self._audit.record(
                    AuditAction.SUPERADMIN_ACTION,
                    AuditSeverity.INFO,
                    actor_user_id=ctx.actor_id,
                    channel_id=ctx.channel.id,
                    metadata={"operation": operation},
                    ip_address=ctx.ip_address,
                )
            return

        isolation_blocks_total.labels(kind="default_channel").inc()
        await self._audit.record(
            AuditAction.DEFAULT_CHANNEL_ACCESS_BLOCKED,
            AuditSeverity.CRITICAL,
            actor_user_id=ctx.actor_id,
            channel_id=ctx.channel.id,
            metadata={"operation": operation},
            ip_address=ctx.ip_address,
        )
        raise ForbiddenError(f"Operation {operation} on the default channel requires SuperAdmin")
