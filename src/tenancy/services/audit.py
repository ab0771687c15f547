"""Audit log service -- append-only record of security-relevant events.

record() never raises: a failed write is logged and the triggering
operation continues. Every entry is mirrored to the structured log at a
level derived from its severity.

The service subscribes to lifecycle events so that emitters (lifecycle
manager, provisioning) need no audit-specific code for them.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import func, select

from src.tenancy.core.database import SessionFactory
from src.tenancy.events import (
    LifecycleEventBus,
    TenantCreated,
    TenantDeleted,
    TenantStatusChanged,
    TenantSuspended,
)
from src.tenancy.models.audit import AuditLogModel, AuditSeverity
from src.tenancy.models.tenant import TenantStatus
from src.tenancy.schemas.audit import AuditLogPage, AuditLogRead, AuditQuery

logger = structlog.get_logger(__name__)


class AuditAction:
    """Symbolic audit action identifiers."""

    TENANT_CREATED = "TENANT_CREATED"
    TENANT_STATUS_CHANGED = "TENANT_STATUS_CHANGED"
    TENANT_SUSPENDED = "TENANT_SUSPENDED"
    TENANT_DELETED = "TENANT_DELETED"
    TENANT_AUTO_DELETED = "TENANT_AUTO_DELETED"
    TENANT_PURGED = "TENANT_PURGED"
    TENANT_PROVISIONING_FAILED = "TENANT_PROVISIONING_FAILED"
    ORPHANED_DATA_SCOPE_RECLAIMED = "ORPHANED_DATA_SCOPE_RECLAIMED"
    TOKEN_MISMATCH = "TOKEN_MISMATCH"
    CROSS_TENANT_ATTEMPT_BLOCKED = "CROSS_TENANT_ATTEMPT_BLOCKED"
    SUSPENDED_TENANT_MUTATION_BLOCKED = "SUSPENDED_TENANT_MUTATION_BLOCKED"
    DEFAULT_CHANNEL_ACCESS_BLOCKED = "DEFAULT_CHANNEL_ACCESS_BLOCKED"
    SUPERADMIN_ACTION = "SUPERADMIN_ACTION"


REDACTED = "[REDACTED]"
_SENSITIVE_KEY_PARTS = ("password", "token", "secret", "authorization", "api_key")

# Credential fields an action is allowed to keep verbatim
_UNREDACTED_FIELDS: dict[str, frozenset[str]] = {
    AuditAction.TOKEN_MISMATCH: frozenset({"supplied_token", "resolved_token"}),
}

_LOG_METHOD = {
    AuditSeverity.INFO: "info",
    AuditSeverity.WARN: "warning",
    AuditSeverity.CRITICAL: "error",
}


def sanitize_metadata(value: Any, allowed: frozenset[str] = frozenset()) -> Any:
    """Redact values under sensitive keys, recursively."""
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            lowered = str(key).lower()
            if lowered not in allowed and any(part in lowered for part in _SENSITIVE_KEY_PARTS):
                cleaned[key] = REDACTED
            else:
                cleaned[key] = sanitize_metadata(item, allowed)
        return cleaned
    if isinstance(value, (list, tuple)):
        return [sanitize_metadata(item, allowed) for item in value]
    return value


def status_change_severity(to_status: str) -> AuditSeverity:
    if to_status == TenantStatus.PURGED.value:
        return AuditSeverity.CRITICAL
    if to_status in (TenantStatus.SUSPENDED.value, TenantStatus.DELETED.value):
        return AuditSeverity.WARN
    return AuditSeverity.INFO


class AuditService:
    """Writes and queries audit entries.

    Args:
        session_factory: async_sessionmaker producing AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        action: str,
        severity: AuditSeverity = AuditSeverity.INFO,
        *,
        actor_user_id: uuid.UUID | None = None,
        channel_id: uuid.UUID | None = None,
        tenant_id: uuid.UUID | None = None,
        metadata: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> AuditLogRead | None:
        """Append one entry. Returns None if the write failed."""
        meta = sanitize_metadata(metadata or {}, _UNREDACTED_FIELDS.get(action, frozenset()))
        # Allow-listed credentials are kept on the row only, never in logs
        logged = sanitize_metadata(metadata or {})

        log = getattr(logger, _LOG_METHOD[severity])
        log(
            "audit." + action.lower(),
            severity=severity.value,
            actor_user_id=str(actor_user_id) if actor_user_id else None,
            tenant_id=str(tenant_id) if tenant_id else None,
            channel_id=str(channel_id) if channel_id else None,
            ip_address=ip_address,
            **{f"meta_{k}": v for k, v in logged.items() if not isinstance(v, (dict, list))},
        )

        try:
            async with self._session_factory() as session:
                entry = AuditLogModel(
                    action=action,
                    severity=severity.value,
                    actor_user_id=actor_user_id,
                    channel_id=channel_id,
                    tenant_id=tenant_id,
                    meta=meta,
                    ip_address=ip_address,
                )
                session.add(entry)
                await session.commit()
                return AuditLogRead.model_validate(entry)
        except Exception:
            logger.exception("audit.write_failed", action=action, severity=severity.value)
            return None

    async def query(self, filters: AuditQuery) -> AuditLogPage:
        """Newest-first page of entries matching the filters."""
        conditions = []
        if filters.action:
            conditions.append(AuditLogModel.action == filters.action)
        if filters.severity:
            conditions.append(AuditLogModel.severity == filters.severity.value)
        if filters.tenant_id:
            conditions.append(AuditLogModel.tenant_id == filters.tenant_id)
        if filters.since:
            conditions.append(AuditLogModel.created_at >= filters.since)
        if filters.until:
            conditions.append(AuditLogModel.created_at <= filters.until)

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(AuditLogModel).where(*conditions)
            )
            result = await session.execute(
                select(AuditLogModel)
                .where(*conditions)
                .order_by(AuditLogModel.created_at.desc())
                .offset(filters.skip)
                .limit(filters.take)
            )
            items = [AuditLogRead.model_validate(row) for row in result.scalars().all()]

        return AuditLogPage(items=items, total=total or 0, take=filters.take, skip=filters.skip)

    # ── Lifecycle subscriptions ─────────────────────────────────────────

    def subscribe(self, bus: LifecycleEventBus) -> None:
        """Register handlers that turn lifecycle events into audit entries."""
        bus.subscribe(TenantCreated, self._on_tenant_created)
        bus.subscribe(TenantStatusChanged, self._on_status_changed)
        bus.subscribe(TenantSuspended, self._on_tenant_suspended)
        bus.subscribe(TenantDeleted, self._on_tenant_deleted)

    async def _on_tenant_created(self, event: TenantCreated) -> None:
        await self.record(
            AuditAction.TENANT_CREATED,
            AuditSeverity.INFO,
            actor_user_id=event.actor_user_id,
            channel_id=event.channel_id,
            tenant_id=event.tenant_id,
            metadata={"slug": event.tenant_slug, **event.data},
        )

    async def _on_status_changed(self, event: TenantStatusChanged) -> None:
        await self.record(
            AuditAction.TENANT_STATUS_CHANGED,
            status_change_severity(event.to_status),
            actor_user_id=event.actor_user_id,
            channel_id=event.channel_id,
            tenant_id=event.tenant_id,
            metadata={
                "slug": event.tenant_slug,
                "from_status": event.from_status,
                "to_status": event.to_status,
                **event.data,
            },
        )

    async def _on_tenant_suspended(self, event: TenantSuspended) -> None:
        await self.record(
            AuditAction.TENANT_SUSPENDED,
            AuditSeverity.WARN,
            actor_user_id=event.actor_user_id,
            channel_id=event.channel_id,
            tenant_id=event.tenant_id,
            metadata={"slug": event.tenant_slug},
        )

    async def _on_tenant_deleted(self, event: TenantDeleted) -> None:
        await self.record(
            AuditAction.TENANT_DELETED,
            AuditSeverity.WARN,
            actor_user_id=event.actor_user_id,
            channel_id=event.channel_id,
            tenant_id=event.tenant_id,
            metadata={"slug": event.tenant_slug},
        )
