"""Pydantic schemas for authentication API endpoints."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Request schema for administrator login."""

    email: EmailStr = Field(..., description="Administrator email address")
    password: str = Field(..., min_length=1, description="Administrator password")


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    """Request schema to refresh an access token."""

    refresh_token: str = Field(..., description="Valid refresh token")


class MeResponse(BaseModel):
    """The authenticated administrator as seen from the active channel."""

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    channel_id: uuid.UUID
    channel_code: str
    permissions: list[str]
    is_super_admin: bool
