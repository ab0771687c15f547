"""Commerce adapter abstract base class -- the collaborator contract the tenancy core consumes.

The commerce engine owns channels (data scopes), sellers, roles and
administrators. The tenancy core never filters business data itself; it only
creates and destroys these objects during provisioning and purge, and looks
channels up when binding a request to a data scope.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence

from src.tenancy.commerce.permissions import Permission
from src.tenancy.commerce.schemas import (
    AdministratorCreate,
    AdministratorRead,
    ChannelCreate,
    ChannelRead,
    RoleRead,
    SellerRead,
)


class CommerceAdapter(ABC):
    """Abstract interface for the commerce engine's scope and identity objects.

    Role and administrator creation are permission-checked against the target
    channels: the acting administrator must already hold a role on every
    channel the new object is scoped to.
    """

    # ── Channels ────────────────────────────────────────────────────────

    @abstractmethod
    async def create_channel(self, data: ChannelCreate) -> ChannelRead:
        """Create a data scope, return it with its id and isolation token."""
        ...

    @abstractmethod
    async def get_channel(self, channel_id: uuid.UUID) -> ChannelRead | None:
        ...

    @abstractmethod
    async def get_channel_by_token(self, token: str) -> ChannelRead | None:
        ...

    @abstractmethod
    async def get_channel_by_code(self, code: str) -> ChannelRead | None:
        ...

    @abstractmethod
    async def get_default_channel(self) -> ChannelRead:
        """Return the platform-wide aggregate channel."""
        ...

    @abstractmethod
    async def list_channels_by_code_prefix(self, prefix: str) -> list[ChannelRead]:
        ...

    @abstractmethod
    async def purge_channel(self, channel_id: uuid.UUID) -> None:
        """Destroy a data scope with its seller, exclusive roles and their administrators."""
        ...

    # ── Sellers ─────────────────────────────────────────────────────────

    @abstractmethod
    async def create_seller(self, name: str) -> SellerRead:
        ...

    # ── Roles ───────────────────────────────────────────────────────────

    @abstractmethod
    async def get_super_admin_role(self) -> RoleRead:
        ...

    @abstractmethod
    async def assign_role_to_channel(self, role_id: uuid.UUID, channel_id: uuid.UUID) -> RoleRead:
        ...

    @abstractmethod
    async def create_role(
        self,
        actor_id: uuid.UUID,
        code: str,
        description: str,
        channel_ids: Sequence[uuid.UUID],
        permissions: Sequence[Permission],
    ) -> RoleRead:
        """Create a role; ForbiddenError if the actor cannot act on every channel."""
        ...

    # ── Administrators ──────────────────────────────────────────────────

    @abstractmethod
    async def create_administrator(
        self, actor_id: uuid.UUID, data: AdministratorCreate
    ) -> AdministratorRead:
        """Create an administrator; ForbiddenError if the actor cannot act on the role channels."""
        ...

    @abstractmethod
    async def get_administrator(self, administrator_id: uuid.UUID) -> AdministratorRead | None:
        ...

    @abstractmethod
    async def verify_credentials(self, email: str, password: str) -> AdministratorRead | None:
        """Return the administrator when email and password match, else None."""
        ...

    @abstractmethod
    async def ensure_default_setup(self, email: str, password: str) -> AdministratorRead:
        """Idempotently create the default channel, SuperAdmin role and platform administrator."""
        ...
