"""Authenticated request context -- the principal and the channel it acts on.

Built after the tenant middleware has (possibly) rewritten the channel token
header, so the channel here is the one the hostname resolved to whenever the
request arrived on a tenant hostname.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from fastapi import HTTPException, status

from src.tenancy.commerce.adapter import CommerceAdapter
from src.tenancy.commerce.permissions import Permission
from src.tenancy.commerce.schemas import AdministratorRead, ChannelRead
from src.tenancy.core.errors import NotFoundError
from src.tenancy.core.security import verify_token

logger = structlog.get_logger(__name__)


@dataclass
class RequestContext:
    """Channel, principal and permissions for one request."""

    channel: ChannelRead
    administrator: AdministratorRead | None = None
    permissions: frozenset[Permission] = frozenset()
    ip_address: str | None = None
    operation: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.administrator is not None

    @property
    def is_super_admin(self) -> bool:
        return Permission.SUPER_ADMIN in self.permissions

    @property
    def actor_id(self) -> uuid.UUID | None:
        return self.administrator.id if self.administrator else None

    def has_permissions(self, required: tuple[Permission, ...]) -> bool:
        return all(p in self.permissions for p in required)


async def build_request_context(
    commerce: CommerceAdapter,
    *,
    channel_token: str | None,
    bearer_token: str | None,
    ip_address: str | None = None,
) -> RequestContext:
    """Resolve the active channel and the authenticated administrator.

    No token selects the default channel. An unknown token is reported as
    not found. A bearer token that does not verify, or names an inactive or
    missing administrator, is rejected with 401.
    """
    if channel_token:
        channel = await commerce.get_channel_by_token(channel_token)
        if channel is None:
            raise NotFoundError("Channel not found")
    else:
        channel = await commerce.get_default_channel()

    administrator = None
    permissions: frozenset[Permission] = frozenset()
    if bearer_token:
        payload = verify_token(bearer_token, token_type="access")
        try:
            administrator_id = uuid.UUID(payload["sub"])
        except ValueError:
            administrator_id = None
        if administrator_id is not None:
            administrator = await commerce.get_administrator(administrator_id)
        if administrator is None or not administrator.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Administrator not found or inactive",
                headers={"WWW-Authenticate": "Bearer"},
            )
        permissions = administrator.permissions_on(channel.id)

    return RequestContext(
        channel=channel,
        administrator=administrator,
        permissions=permissions,
        ip_address=ip_address,
    )
