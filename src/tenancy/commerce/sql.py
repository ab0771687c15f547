"""SQLAlchemy implementation of the commerce adapter.

Stores channels, sellers, roles and administrators in the shared schema.
Uses the session_factory pattern shared by every repository in this package:
each public method opens its own session and commits before returning.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Iterable, Sequence

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.tenancy.commerce.adapter import CommerceAdapter
from src.tenancy.commerce.models import (
    AdministratorModel,
    ChannelModel,
    RoleModel,
    SellerModel,
    administrator_roles,
    role_channels,
)
from src.tenancy.commerce.permissions import PLATFORM_PERMISSIONS, Permission
from src.tenancy.commerce.schemas import (
    AdministratorCreate,
    AdministratorRead,
    ChannelCreate,
    ChannelRead,
    RoleRead,
    SellerRead,
)
from src.tenancy.core.database import SessionFactory
from src.tenancy.core.errors import ConflictError, ForbiddenError, NotFoundError
from src.tenancy.core.security import hash_password, verify_password

logger = structlog.get_logger(__name__)

DEFAULT_CHANNEL_CODE = "__default_channel__"
SUPER_ADMIN_ROLE_CODE = "__super_admin_role__"

# Permissions that allow creating roles/administrators on a channel
_ADMIN_MANAGEMENT_PERMISSIONS = frozenset({Permission.SUPER_ADMIN, Permission.CREATE_ADMINISTRATOR})


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_role(model: RoleModel) -> RoleRead:
    permissions = []
    for value in model.permissions or []:
        try:
            permissions.append(Permission(value))
        except ValueError:
            logger.warning("commerce.unknown_permission", role=model.code, permission=value)
    return RoleRead(
        id=model.id,
        code=model.code,
        description=model.description,
        permissions=permissions,
        channel_ids=[channel.id for channel in model.channels],
    )


def _model_to_administrator(model: AdministratorModel) -> AdministratorRead:
    return AdministratorRead(
        id=model.id,
        first_name=model.first_name,
        last_name=model.last_name,
        email=model.email,
        is_active=model.is_active,
        roles=[_model_to_role(role) for role in model.roles],
    )


# ── Adapter ─────────────────────────────────────────────────────────────────


class SqlCommerceAdapter(CommerceAdapter):
    """Commerce adapter backed by the platform database.

    Args:
        session_factory: async_sessionmaker producing AsyncSession instances.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ── Channels ────────────────────────────────────────────────────────

    async def create_channel(self, data: ChannelCreate) -> ChannelRead:
        async with self._session_factory() as session:
            model = ChannelModel(**data.model_dump())
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Channel with code '{data.code}' already exists") from exc
            logger.info("commerce.channel_created", channel_id=str(model.id), code=model.code)
            return ChannelRead.model_validate(model)

    async def get_channel(self, channel_id: uuid.UUID) -> ChannelRead | None:
        async with self._session_factory() as session:
            model = await session.get(ChannelModel, channel_id)
            return ChannelRead.model_validate(model) if model else None

    async def get_channel_by_token(self, token: str) -> ChannelRead | None:
        async with self._session_factory() as session:
            result = await session.execute(select(ChannelModel).where(ChannelModel.token == token))
            model = result.scalar_one_or_none()
            return ChannelRead.model_validate(model) if model else None

    async def get_channel_by_code(self, code: str) -> ChannelRead | None:
        async with self._session_factory() as session:
            result = await session.execute(select(ChannelModel).where(ChannelModel.code == code))
            model = result.scalar_one_or_none()
            return ChannelRead.model_validate(model) if model else None

    async def get_default_channel(self) -> ChannelRead:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChannelModel).where(ChannelModel.is_default.is_(True))
            )
            model = result.scalar_one_or_none()
            if model is None:
                raise NotFoundError("Default channel has not been created")
            return ChannelRead.model_validate(model)

    async def list_channels_by_code_prefix(self, prefix: str) -> list[ChannelRead]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChannelModel)
                .where(ChannelModel.code.startswith(prefix, autoescape=True))
                .order_by(ChannelModel.created_at)
            )
            return [ChannelRead.model_validate(m) for m in result.scalars().all()]

    async def purge_channel(self, channel_id: uuid.UUID) -> None:
        async with self._session_factory() as session:
            channel = await session.get(ChannelModel, channel_id)
            if channel is None:
                return
            if channel.is_default:
                raise ForbiddenError("The default channel cannot be purged")

            # Roles scoped to this channel only are destroyed with it
            linked = await session.execute(
                select(role_channels.c.role_id).where(role_channels.c.channel_id == channel_id)
            )
            linked_role_ids = list(linked.scalars().all())
            exclusive_role_ids: list[uuid.UUID] = []
            if linked_role_ids:
                counts = await session.execute(
                    select(role_channels.c.role_id, func.count())
                    .where(role_channels.c.role_id.in_(linked_role_ids))
                    .group_by(role_channels.c.role_id)
                )
                exclusive_role_ids = [role_id for role_id, n in counts.all() if n == 1]

            orphaned_admin_ids: list[uuid.UUID] = []
            if exclusive_role_ids:
                holders = await session.execute(
                    select(administrator_roles.c.administrator_id)
                    .where(administrator_roles.c.role_id.in_(exclusive_role_ids))
                    .distinct()
                )
                holder_ids = list(holders.scalars().all())
                await session.execute(
                    delete(administrator_roles).where(
                        administrator_roles.c.role_id.in_(exclusive_role_ids)
                    )
                )
                for admin_id in holder_ids:
                    remaining = await session.execute(
                        select(func.count())
                        .select_from(administrator_roles)
                        .where(administrator_roles.c.administrator_id == admin_id)
                    )
                    if remaining.scalar_one() == 0:
                        orphaned_admin_ids.append(admin_id)

            await session.execute(delete(role_channels).where(role_channels.c.channel_id == channel_id))
            if exclusive_role_ids:
                await session.execute(delete(RoleModel).where(RoleModel.id.in_(exclusive_role_ids)))
            if orphaned_admin_ids:
                await session.execute(
                    delete(AdministratorModel).where(AdministratorModel.id.in_(orphaned_admin_ids))
                )

            seller_id = channel.seller_id
            await session.execute(delete(ChannelModel).where(ChannelModel.id == channel_id))
            if seller_id is not None:
                others = await session.execute(
                    select(func.count()).select_from(ChannelModel).where(ChannelModel.seller_id == seller_id)
                )
                if others.scalar_one() == 0:
                    await session.execute(delete(SellerModel).where(SellerModel.id == seller_id))

            await session.commit()
            logger.warning(
                "commerce.channel_purged",
                channel_id=str(channel_id),
                roles_removed=len(exclusive_role_ids),
                administrators_removed=len(orphaned_admin_ids),
            )

    # ── Sellers ─────────────────────────────────────────────────────────

    async def create_seller(self, name: str) -> SellerRead:
        async with self._session_factory() as session:
            model = SellerModel(name=name)
            session.add(model)
            await session.commit()
            return SellerRead.model_validate(model)

    # ── Roles ───────────────────────────────────────────────────────────

    async def get_super_admin_role(self) -> RoleRead:
        async with self._session_factory() as session:
            result = await session.execute(select(RoleModel).where(RoleModel.code == SUPER_ADMIN_ROLE_CODE))
            model = result.scalar_one_or_none()
            if model is None:
                raise NotFoundError("SuperAdmin role has not been created")
            return _model_to_role(model)

    async def assign_role_to_channel(self, role_id: uuid.UUID, channel_id: uuid.UUID) -> RoleRead:
        async with self._session_factory() as session:
            role = await session.get(RoleModel, role_id)
            channel = await session.get(ChannelModel, channel_id)
            if role is None or channel is None:
                raise NotFoundError("Role or channel not found")
            if all(c.id != channel_id for c in role.channels):
                role.channels.append(channel)
                await session.commit()
            return _model_to_role(role)

    async def create_role(
        self,
        actor_id: uuid.UUID,
        code: str,
        description: str,
        channel_ids: Sequence[uuid.UUID],
        permissions: Sequence[Permission],
    ) -> RoleRead:
        non_assignable = set(permissions) & PLATFORM_PERMISSIONS
        if non_assignable:
            raise ForbiddenError(
                f"Permissions cannot be assigned to a role: {sorted(p.value for p in non_assignable)}"
            )

        async with self._session_factory() as session:
            await self._assert_can_manage(session, actor_id, channel_ids)
            result = await session.execute(select(ChannelModel).where(ChannelModel.id.in_(channel_ids)))
            channels = list(result.scalars().all())
            if len(channels) != len(set(channel_ids)):
                raise NotFoundError("Channel not found")

            model = RoleModel(
                code=code,
                description=description,
                permissions=[p.value for p in permissions],
                channels=channels,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Role with code '{code}' already exists") from exc
            return _model_to_role(model)

    # ── Administrators ──────────────────────────────────────────────────

    async def create_administrator(
        self, actor_id: uuid.UUID, data: AdministratorCreate
    ) -> AdministratorRead:
        async with self._session_factory() as session:
            result = await session.execute(select(RoleModel).where(RoleModel.id.in_(data.role_ids)))
            roles = list(result.scalars().all())
            if len(roles) != len(set(data.role_ids)):
                raise NotFoundError("Role not found")
            target_channels = {channel.id for role in roles for channel in role.channels}
            await self._assert_can_manage(session, actor_id, target_channels)

            model = AdministratorModel(
                first_name=data.first_name,
                last_name=data.last_name,
                email=data.email.lower(),
                hashed_password=hash_password(data.password),
                roles=roles,
            )
            session.add(model)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError(f"Administrator with email '{data.email}' already exists") from exc
            return _model_to_administrator(model)

    async def get_administrator(self, administrator_id: uuid.UUID) -> AdministratorRead | None:
        async with self._session_factory() as session:
            model = await session.get(AdministratorModel, administrator_id)
            return _model_to_administrator(model) if model else None

    async def verify_credentials(self, email: str, password: str) -> AdministratorRead | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AdministratorModel).where(AdministratorModel.email == email.lower())
            )
            model = result.scalar_one_or_none()
            if model is None or not model.is_active:
                return None
            if not verify_password(password, model.hashed_password):
                return None
            return _model_to_administrator(model)

    async def ensure_default_setup(self, email: str, password: str) -> AdministratorRead:
        async with self._session_factory() as session:
            result = await session.execute(select(ChannelModel).where(ChannelModel.is_default.is_(True)))
            channel = result.scalar_one_or_none()
            if channel is None:
                channel = ChannelModel(
                    code=DEFAULT_CHANNEL_CODE,
                    token=secrets.token_urlsafe(24),
                    is_default=True,
                    default_tax_zone_id="default",
                    default_shipping_zone_id="default",
                )
                session.add(channel)

            result = await session.execute(select(RoleModel).where(RoleModel.code == SUPER_ADMIN_ROLE_CODE))
            role = result.scalar_one_or_none()
            if role is None:
                role = RoleModel(
                    code=SUPER_ADMIN_ROLE_CODE,
                    description="SuperAdmin",
                    permissions=[p.value for p in Permission],
                    channels=[channel],
                )
                session.add(role)

            result = await session.execute(
                select(AdministratorModel).where(AdministratorModel.email == email.lower())
            )
            admin = result.scalar_one_or_none()
            if admin is None:
                admin = AdministratorModel(
                    first_name="Super",
                    last_name="Admin",
                    email=email.lower(),
                    hashed_password=hash_password(password),
                    roles=[role],
                )
                session.add(admin)
                logger.info("commerce.superadmin_created", email=admin.email)

            await session.commit()
            return _model_to_administrator(admin)

    # ── Internal ────────────────────────────────────────────────────────

    async def _assert_can_manage(
        self, session: AsyncSession, actor_id: uuid.UUID, channel_ids: Iterable[uuid.UUID]
    ) -> None:
        """Raise ForbiddenError unless the actor may manage roles on every channel."""
        actor = await session.get(AdministratorModel, actor_id)
        if actor is None:
            raise ForbiddenError(f"Unknown actor {actor_id}")
        actor_read = _model_to_administrator(actor)
        for channel_id in channel_ids:
            if not actor_read.permissions_on(channel_id) & _ADMIN_MANAGEMENT_PERMISSIONS:
                raise ForbiddenError(
                    f"Administrator {actor_id} has no permission on channel {channel_id}"
                )
