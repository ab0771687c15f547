"""Reference tables for the commerce collaborator: channels, sellers, roles, administrators.

Only the parts of the commerce engine the tenancy core consumes are modelled
here. Catalog, order and customer data are filtered by channel_id inside the
engine and never touched by this package.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Table, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.tenancy.core.database import SharedBase, shared_metadata, utcnow

role_channels = Table(
    "role_channels",
    shared_metadata,
    Column("role_id", Uuid, ForeignKey("shared.roles.id", ondelete="CASCADE"), primary_key=True),
    Column("channel_id", Uuid, ForeignKey("shared.channels.id", ondelete="CASCADE"), primary_key=True),
)

administrator_roles = Table(
    "administrator_roles",
    shared_metadata,
    Column(
        "administrator_id",
        Uuid,
        ForeignKey("shared.administrators.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("role_id", Uuid, ForeignKey("shared.roles.id", ondelete="CASCADE"), primary_key=True),
)


class SellerModel(SharedBase):
    """Business entity that owns a channel."""

    __tablename__ = "sellers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ChannelModel(SharedBase):
    """Data scope every business query is filtered by."""

    __tablename__ = "channels"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    token: Mapped[str] = mapped_column(String(120), unique=True, index=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    seller_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("shared.sellers.id", ondelete="SET NULL"), nullable=True
    )
    default_language_code: Mapped[str] = mapped_column(String(16), nullable=False, default="en")
    default_currency_code: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    prices_include_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    default_tax_zone_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    default_shipping_zone_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class RoleModel(SharedBase):
    """Named permission set granted on a list of channels."""

    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    channels: Mapped[list[ChannelModel]] = relationship(secondary=role_channels, lazy="selectin")


class AdministratorModel(SharedBase):
    """Back-office user; identity is global, permissions come from roles per channel."""

    __tablename__ = "administrators"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    roles: Mapped[list[RoleModel]] = relationship(secondary=administrator_roles, lazy="selectin")
