"""Pydantic read/create schemas exchanged with the commerce collaborator."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.tenancy.commerce.permissions import Permission


class SellerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class ChannelCreate(BaseModel):
    """Parameters for a new data scope."""

    code: str
    token: str
    seller_id: uuid.UUID | None = None
    default_language_code: str = "en"
    default_currency_code: str = "USD"
    prices_include_tax: bool = True
    default_tax_zone_id: str | None = None
    default_shipping_zone_id: str | None = None


class ChannelRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    token: str
    is_default: bool = False
    seller_id: uuid.UUID | None = None
    default_language_code: str
    default_currency_code: str
    prices_include_tax: bool
    default_tax_zone_id: str | None = None
    default_shipping_zone_id: str | None = None
    created_at: datetime | None = None


class RoleRead(BaseModel):
    id: uuid.UUID
    code: str
    description: str
    permissions: list[Permission]
    channel_ids: list[uuid.UUID] = Field(default_factory=list)


class AdministratorCreate(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    role_ids: list[uuid.UUID]


class AdministratorRead(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    is_active: bool = True
    roles: list[RoleRead] = Field(default_factory=list)

    def permissions_on(self, channel_id: uuid.UUID) -> frozenset[Permission]:
        """Union of permissions from every role that includes the channel."""
        granted: set[Permission] = set()
        for role in self.roles:
            if channel_id in role.channel_ids:
                granted.update(role.permissions)
        return frozenset(granted)
