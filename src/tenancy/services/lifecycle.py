"""Tenant lifecycle manager -- validated status transitions and their side effects.

Status transitions are validated against VALID_TRANSITIONS and written with
a compare-and-set update, so two concurrent requests cannot both move a
tenant out of the same state. Every transition invalidates the resolver
cache for the tenant's domains after the new status is committed.

Entering PURGED is irreversible: the tenant's domains and its whole data
scope are destroyed first, and the status is written only once that
succeeded, so a failed purge stays retryable from DELETED.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import structlog

from src.tenancy.commerce.adapter import CommerceAdapter
from src.tenancy.core.errors import ConflictError, InvalidStatusTransitionError, NotFoundError
from src.tenancy.core.monitoring import tenant_status_changes_total
from src.tenancy.events import (
    LifecycleEventBus,
    TenantDeleted,
    TenantPurged,
    TenantStatusChanged,
    TenantSuspended,
)
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.schemas.tenant import TenantDomainRead, TenantRead
from src.tenancy.services.resolution import TenantResolver
from src.tenancy.services.tenants import TenantDirectory

logger = structlog.get_logger(__name__)

# ── Status Transition Validation ─────────────────────────────────────────────

VALID_TRANSITIONS: dict[TenantStatus, set[TenantStatus]] = {
    TenantStatus.REQUESTED: {TenantStatus.PROVISIONING},
    TenantStatus.PROVISIONING: {TenantStatus.TRIAL, TenantStatus.ACTIVE},
    TenantStatus.TRIAL: {
        TenantStatus.ACTIVE,
        TenantStatus.SUSPENDED,
        TenantStatus.PENDING_DELETION,
    },
    TenantStatus.ACTIVE: {TenantStatus.SUSPENDED, TenantStatus.PENDING_DELETION},
    TenantStatus.SUSPENDED: {TenantStatus.ACTIVE, TenantStatus.PENDING_DELETION},
    TenantStatus.PENDING_DELETION: {TenantStatus.ACTIVE, TenantStatus.DELETED},
    TenantStatus.DELETED: {TenantStatus.PURGED},
    TenantStatus.PURGED: set(),  # Terminal
}


def validate_status_transition(from_status: TenantStatus, to_status: TenantStatus) -> None:
    """Validate that a tenant status transition is allowed.

    Raises:
        InvalidStatusTransitionError: If the pair is not in the table.
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    if to_status not in allowed:
        raise InvalidStatusTransitionError(from_status, to_status, allowed)


# ── Manager ──────────────────────────────────────────────────────────────────


class TenantLifecycleManager:
    """Executes tenant status transitions and domain-set changes.

    Args:
        directory: Tenant directory (status is written only from here).
        resolver: Resolver whose cache is invalidated on every change.
        commerce: Collaborator adapter, used to destroy data scopes on purge.
        bus: Event bus that receives lifecycle events.
    """

    def __init__(
        self,
        directory: TenantDirectory,
        resolver: TenantResolver,
        commerce: CommerceAdapter,
        bus: LifecycleEventBus,
    ) -> None:
        self._directory = directory
        self._resolver = resolver
        self._commerce = commerce
        self._bus = bus

    async def change_status(
        self,
        tenant_id: uuid.UUID,
        to_status: TenantStatus,
        *,
        actor_user_id: uuid.UUID | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> TenantRead:
        """Move a tenant to a new status.

        Raises:
            NotFoundError: Unknown tenant.
            InvalidStatusTransitionError: Pair not in VALID_TRANSITIONS.
            ConflictError: The tenant changed status concurrently.
        """
        tenant = await self._directory.get_by_id(tenant_id)
        if tenant is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        from_status = tenant.status
        validate_status_transition(from_status, to_status)

        hostnames = [d.domain for d in tenant.domains]
        if to_status == TenantStatus.PURGED:
            await self._purge_resources(tenant)

        updated = await self._directory.transition_status(tenant_id, from_status, to_status, now)
        if updated is None:
            raise ConflictError(
                f"Tenant {tenant.slug} is no longer {from_status.value}; retry the transition"
            )

        await self._resolver.invalidate_many(hostnames)
        tenant_status_changes_total.labels(
            from_status=from_status.value, to_status=to_status.value
        ).inc()
        logger.info(
            "lifecycle.status_changed",
            tenant_id=str(tenant_id),
            slug=tenant.slug,
            from_status=from_status.value,
            to_status=to_status.value,
            actor_user_id=str(actor_user_id) if actor_user_id else None,
        )

        await self._publish(updated, from_status, to_status, actor_user_id, reason)
        return updated

    async def delete_tenant(
        self, tenant_id: uuid.UUID, *, actor_user_id: uuid.UUID | None = None
    ) -> TenantRead:
        """Start the deletion grace period."""
        return await self.change_status(
            tenant_id, TenantStatus.PENDING_DELETION, actor_user_id=actor_user_id
        )

    async def add_domain(
        self, tenant_id: uuid.UUID, domain: str, is_primary: bool = False
    ) -> TenantDomainRead:
        created = await self._directory.add_domain(tenant_id, domain, is_primary)
        await self._resolver.invalidate(created.domain)
        return created

    async def remove_domain(self, tenant_id: uuid.UUID, domain_id: uuid.UUID) -> TenantDomainRead:
        removed = await self._directory.remove_domain(tenant_id, domain_id)
        await self._resolver.invalidate(removed.domain)
        return removed

    # ── Internal ────────────────────────────────────────────────────────

    async def _purge_resources(self, tenant: TenantRead) -> None:
        removed = await self._directory.remove_all_domains(tenant.id)
        await self._resolver.invalidate_many(removed)
        await self._commerce.purge_channel(tenant.channel_id)
        logger.warning(
            "lifecycle.resources_purged",
            tenant_id=str(tenant.id),
            slug=tenant.slug,
            domains_removed=len(removed),
            channel_id=str(tenant.channel_id),
        )

    async def _publish(
        self,
        tenant: TenantRead,
        from_status: TenantStatus,
        to_status: TenantStatus,
        actor_user_id: uuid.UUID | None,
        reason: str | None,
    ) -> None:
        common: dict[str, Any] = {
            "tenant_id": tenant.id,
            "tenant_slug": tenant.slug,
            "channel_id": tenant.channel_id,
            "actor_user_id": actor_user_id,
        }
        data = {"reason": reason} if reason else {}

        if to_status == TenantStatus.SUSPENDED:
            await self._bus.publish(TenantSuspended(**common, data=data))
        elif to_status == TenantStatus.DELETED:
            await self._bus.publish(TenantDeleted(**common, data=data))
        elif to_status == TenantStatus.PURGED:
            await self._bus.publish(TenantPurged(**common, data=data))

        await self._bus.publish(
            TenantStatusChanged(
                **common,
                from_status=from_status.value,
                to_status=to_status.value,
                data=data,
            )
        )
