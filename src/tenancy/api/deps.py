"""FastAPI dependency injection for services, authentication and guards.

Endpoints declare their operation with require_operation(); the returned
dependency runs the post-authentication stage of the request gate in a
fixed order:

1. build the RequestContext (channel from the token header the tenant
   middleware left behind, administrator from the bearer JWT)
2. reject anonymous callers of non-public operations (401)
3. TenantGuard, then DefaultChannelGuard
4. check the operation's required permissions (403)
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.tenancy.api.guards import DefaultChannelGuard, TenantGuard
from src.tenancy.commerce.permissions import Permission
from src.tenancy.core.errors import ForbiddenError
from src.tenancy.core.request_context import RequestContext, build_request_context
from src.tenancy.services.container import TenancyServices


def get_services(request: Request) -> TenancyServices:
    return request.app.state.services


async def get_request_context(
    request: Request,
    services: TenancyServices = Depends(get_services),
) -> RequestContext:
    """Channel and administrator for the current request."""
    auth_header = request.headers.get("Authorization")
    bearer = auth_header[7:] if auth_header and auth_header.startswith("Bearer ") else None
    return await build_request_context(
        services.commerce,
        channel_token=request.headers.get(services.settings.CHANNEL_TOKEN_HEADER),
        bearer_token=bearer,
        ip_address=request.client.host if request.client else None,
    )


def require_operation(
    operation: str,
    *permissions: Permission,
    public: bool = False,
) -> Callable[..., Coroutine[Any, Any, RequestContext]]:
    """Build a dependency that authenticates and guards one named operation.

    Args:
        operation: Operation name; verbs create/update/delete/add/remove/set
            mark it as a mutation.
        permissions: Permissions the caller must hold on the active channel.
        public: Anonymous callers allowed; the default-channel guard is skipped.
    """

    async def dependency(
        request: Request,
        ctx: RequestContext = Depends(get_request_context),
        services: TenancyServices = Depends(get_services),
    ) -> RequestContext:
        ctx.operation = operation
        if not public and not ctx.is_authenticated:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )

        bound = getattr(request.state, "tenant", None)
        await TenantGuard(services.directory, services.audit).check(
            ctx, operation, bound, public=public
        )
        await DefaultChannelGuard(services.audit).check(ctx, operation, public=public)

        if permissions and not ctx.has_permissions(permissions):
            missing = sorted(p.value for p in permissions if p not in ctx.permissions)
            raise ForbiddenError(f"Operation {operation} requires {', '.join(missing)}")
        return ctx

    return dependency
