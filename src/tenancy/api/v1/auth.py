"""Authentication API endpoints.

Provides login, token refresh and the current administrator. Identity is
global; what an administrator may do depends on the channel the request is
bound to, so /me reports the permissions on the active channel.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from src.tenancy.api.deps import get_services, require_operation
from src.tenancy.core.request_context import RequestContext
from src.tenancy.core.security import create_access_token, create_refresh_token, verify_token
from src.tenancy.schemas.auth import LoginRequest, MeResponse, TokenRefreshRequest, TokenResponse
from src.tenancy.services.container import TenancyServices

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _issue_tokens(administrator_id: uuid.UUID, email: str) -> TokenResponse:
    token_data = {"sub": str(administrator_id), "email": email}
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("login", public=True)),
):
    """Authenticate an administrator and return JWT tokens."""
    administrator = await services.commerce.verify_credentials(body.email, body.password)
    if administrator is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return _issue_tokens(administrator.id, administrator.email)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: TokenRefreshRequest,
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("refresh_token", public=True)),
):
    """Exchange a valid refresh token for a new token pair."""
    payload = verify_token(body.refresh_token, token_type="refresh")
    try:
        administrator = await services.commerce.get_administrator(uuid.UUID(payload["sub"]))
    except ValueError:
        administrator = None
    if administrator is None or not administrator.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Administrator not found or inactive",
        )
    return _issue_tokens(administrator.id, administrator.email)


@router.get("/me", response_model=MeResponse)
async def me(ctx: RequestContext = Depends(require_operation("active_administrator"))):
    """Current administrator and their permissions on the active channel."""
    administrator = ctx.administrator
    return MeResponse(
        id=administrator.id,
        email=administrator.email,
        first_name=administrator.first_name,
        last_name=administrator.last_name,
        channel_id=ctx.channel.id,
        channel_code=ctx.channel.code,
        permissions=sorted(p.value for p in ctx.permissions),
        is_super_admin=ctx.is_super_admin,
    )
