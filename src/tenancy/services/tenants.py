"""Tenant directory -- async repository for tenants and their domains.

The authoritative record of tenants, domains and status. Status is written
only through transition_status(), a compare-and-set update used by the
lifecycle manager; no other method touches it.

Domain values are stored normalized (lowercase, no port) and are globally
unique. Exactly one domain per tenant is kept primary by add_domain() and
remove_domain().
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.tenancy.core.database import SessionFactory, utcnow
from src.tenancy.core.errors import ConflictError, NotFoundError
from src.tenancy.models.tenant import TenantDomainModel, TenantModel, TenantStatus
from src.tenancy.schemas.tenant import TenantDomainRead, TenantRead

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_tenant(model: TenantModel) -> TenantRead:
    return TenantRead.model_validate(model)


def _model_to_domain(model: TenantDomainModel) -> TenantDomainRead:
    return TenantDomainRead.model_validate(model)


async def _load_tenant(session: AsyncSession, tenant_id: uuid.UUID) -> TenantModel | None:
    result = await session.execute(
        select(TenantModel)
        .where(TenantModel.id == tenant_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ── Repository ──────────────────────────────────────────────────────────────


class TenantDirectory:
    """Async CRUD for tenants and tenant domains.

    Args:
        session_factory: async_sessionmaker producing AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Tenants ─────────────────────────────────────────────────────────

    async def create_tenant(
        self,
        *,
        name: str,
        slug: str,
        channel_id: uuid.UUID,
        primary_domain: str,
        plan: str,
        config: dict[str, Any] | None = None,
    ) -> TenantRead:
        """Create a tenant in REQUESTED together with its primary domain.

        Both rows are written in one transaction.

        Raises:
            ConflictError: If the slug or the domain is already taken.
        """
        async with self._session_factory() as session:
            model = TenantModel(
                name=name,
                slug=slug,
                status=TenantStatus.REQUESTED.value,
                channel_id=channel_id,
                plan=plan,
                config=dict(config or {}),
                domains=[TenantDomainModel(domain=primary_domain, is_primary=True)],
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(
                    f"Tenant slug '{slug}' or domain '{primary_domain}' is already in use"
                ) from exc
            logger.info(
                "directory.tenant_created",
                tenant_id=str(model.id),
                slug=slug,
                channel_id=str(channel_id),
            )
            return _model_to_tenant(model)

    async def get_by_id(self, tenant_id: uuid.UUID) -> TenantRead | None:
        async with self._session_factory() as session:
            model = await session.get(TenantModel, tenant_id)
            return _model_to_tenant(model) if model else None

    async def get_by_slug(self, slug: str) -> TenantRead | None:
        async with self._session_factory() as session:
            result = await session.execute(select(TenantModel).where(TenantModel.slug == slug))
            model = result.scalar_one_or_none()
            return _model_to_tenant(model) if model else None

    async def get_by_channel_id(self, channel_id: uuid.UUID) -> TenantRead | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantModel).where(TenantModel.channel_id == channel_id)
            )
            model = result.scalar_one_or_none()
            return _model_to_tenant(model) if model else None

    async def get_by_domain(self, domain: str) -> TenantRead | None:
        """Tenant owning a normalized hostname, whatever its status."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantModel)
                .join(TenantDomainModel, TenantDomainModel.tenant_id == TenantModel.id)
                .where(TenantDomainModel.domain == domain)
            )
            model = result.scalar_one_or_none()
            return _model_to_tenant(model) if model else None

    async def find_all(self, take: int = 100, skip: int = 0) -> list[TenantRead]:
        """Newest-first page of tenants."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantModel).order_by(TenantModel.created_at.desc()).offset(skip).limit(take)
            )
            return [_model_to_tenant(m) for m in result.scalars().all()]

    async def find_by_status_deleted_before(
        self, status: TenantStatus, cutoff: datetime
    ) -> list[TenantRead]:
        """Tenants in a status whose deleted_at is at or before the cutoff."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantModel)
                .where(
                    TenantModel.status == status.value,
                    TenantModel.deleted_at.is_not(None),
                    TenantModel.deleted_at <= cutoff,
                )
                .order_by(TenantModel.deleted_at)
            )
            return [_model_to_tenant(m) for m in result.scalars().all()]

    async def channel_ids_in_use(self, channel_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
        ids = list(channel_ids)
        if not ids:
            return set()
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantModel.channel_id).where(TenantModel.channel_id.in_(ids))
            )
            return set(result.scalars().all())

    async def update_tenant(
        self,
        tenant_id: uuid.UUID,
        *,
        name: str | None = None,
        plan: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> TenantRead:
        """Update name/plan and merge config keys (a None value removes a key)."""
        async with self._session_factory() as session:
            model = await _load_tenant(session, tenant_id)
            if model is None:
                raise NotFoundError(f"Tenant {tenant_id} not found")
            if name is not None:
                model.name = name
            if plan is not None:
                model.plan = plan
            if config:
                merged = dict(model.config or {})
                for key, value in config.items():
                    if value is None:
                        merged.pop(key, None)
                    else:
                        merged[key] = value
                model.config = merged
            await session.commit()
            model = await _load_tenant(session, tenant_id)
            return _model_to_tenant(model)

    async def transition_status(
        self,
        tenant_id: uuid.UUID,
        from_status: TenantStatus,
        to_status: TenantStatus,
        now: datetime | None = None,
    ) -> TenantRead | None:
        """Compare-and-set the status column.

        Returns the updated tenant, or None when the row was no longer in
        from_status (a concurrent transition won).
        """
        now = now or utcnow()
        values: dict[str, Any] = {"status": to_status.value, "updated_at": now}
        if to_status == TenantStatus.SUSPENDED:
            values["suspended_at"] = now
        elif to_status == TenantStatus.PENDING_DELETION:
            values["deleted_at"] = now
        elif to_status in (TenantStatus.ACTIVE, TenantStatus.TRIAL):
            values["suspended_at"] = None
            values["deleted_at"] = None

        async with self._session_factory() as session:
            result = await session.execute(
                update(TenantModel)
                .where(TenantModel.id == tenant_id, TenantModel.status == from_status.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                return None
            await session.commit()
            model = await _load_tenant(session, tenant_id)
            return _model_to_tenant(model)

    # ── Domains ─────────────────────────────────────────────────────────

    async def list_domains(self, tenant_id: uuid.UUID) -> list[TenantDomainRead]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantDomainModel)
                .where(TenantDomainModel.tenant_id == tenant_id)
                .order_by(TenantDomainModel.created_at)
            )
            return [_model_to_domain(m) for m in result.scalars().all()]

    async def add_domain(
        self, tenant_id: uuid.UUID, domain: str, is_primary: bool = False
    ) -> TenantDomainRead:
        """Bind a hostname to a tenant.

        The first domain of a tenant is always primary; a new primary domain
        demotes the previous one.

        Raises:
            NotFoundError: Unknown tenant.
            ConflictError: The hostname is bound to any tenant already.
        """
        async with self._session_factory() as session:
            tenant = await session.get(TenantModel, tenant_id)
            if tenant is None:
                raise NotFoundError(f"Tenant {tenant_id} not found")

            existing = await session.execute(
                select(TenantDomainModel.id).where(TenantDomainModel.domain == domain)
            )
            if existing.first() is not None:
                raise ConflictError(f"Domain '{domain}' is already in use")

            current = await session.execute(
                select(TenantDomainModel).where(TenantDomainModel.tenant_id == tenant_id)
            )
            siblings = list(current.scalars().all())
            make_primary = is_primary or not siblings
            if make_primary:
                for sibling in siblings:
                    sibling.is_primary = False

            model = TenantDomainModel(tenant_id=tenant_id, domain=domain, is_primary=make_primary)
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Domain '{domain}' is already in use") from exc
            logger.info(
                "directory.domain_added",
                tenant_id=str(tenant_id),
                domain=domain,
                is_primary=make_primary,
            )
            return _model_to_domain(model)

    async def remove_domain(self, tenant_id: uuid.UUID, domain_id: uuid.UUID) -> TenantDomainRead:
        """Unbind a hostname. A domain owned by another tenant is reported as not found."""
        async with self._session_factory() as session:
            model = await session.get(TenantDomainModel, domain_id)
            if model is None or model.tenant_id != tenant_id:
                raise NotFoundError("Domain not found")
            removed = _model_to_domain(model)
            await session.delete(model)

            if removed.is_primary:
                result = await session.execute(
                    select(TenantDomainModel)
                    .where(
                        TenantDomainModel.tenant_id == tenant_id,
                        TenantDomainModel.id != domain_id,
                    )
                    .order_by(TenantDomainModel.created_at)
                    .limit(1)
                )
                successor = result.scalar_one_or_none()
                if successor is not None:
                    successor.is_primary = True

            await session.commit()
            logger.info("directory.domain_removed", tenant_id=str(tenant_id), domain=removed.domain)
            return removed

    async def remove_all_domains(self, tenant_id: uuid.UUID) -> list[str]:
        """Delete every domain of a tenant, returning the removed hostnames."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(TenantDomainModel).where(TenantDomainModel.tenant_id == tenant_id)
            )
            models = list(result.scalars().all())
            for model in models:
                await session.delete(model)
            await session.commit()
            return [m.domain for m in models]
