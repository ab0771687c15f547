"""Pydantic schemas for tenant API endpoints and service results."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.tenancy.models.tenant import TenantStatus

_HOSTNAME_PATTERN = r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z0-9-]{2,63}$"


class AdministratorInput(BaseModel):
    """Initial administrator created for a new tenant."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class TenantProvisionRequest(BaseModel):
    """Request schema for provisioning a new tenant."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Human-readable tenant name",
        examples=["Alpha Store"],
    )
    slug: str = Field(
        ...,
        min_length=3,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="Unique tenant identifier (lowercase alphanumeric + hyphens)",
        examples=["alpha-store"],
    )
    domain: str = Field(
        ...,
        max_length=253,
        description="Primary hostname for the tenant's storefront and admin",
        examples=["alpha-store.example.tld"],
    )
    plan: str | None = Field(None, max_length=50)
    default_language_code: str | None = Field(None, max_length=16)
    default_currency_code: str | None = Field(None, max_length=8)
    prices_include_tax: bool | None = None
    admin: AdministratorInput

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        return normalize_domain(value)


class TenantUpdate(BaseModel):
    """Partial update; config keys are merged into the existing document."""

    name: str | None = Field(None, min_length=1, max_length=200)
    plan: str | None = Field(None, max_length=50)
    config: dict[str, Any] | None = None


class TenantStatusChange(BaseModel):
    status: TenantStatus


class DomainCreate(BaseModel):
    domain: str = Field(..., max_length=253, examples=["shop.alpha.com"])
    is_primary: bool = False

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        return normalize_domain(value)


class ConfigPatch(BaseModel):
    """Keys to set on the tenant config document (null removes a key)."""

    values: dict[str, Any]


class TenantDomainRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    domain: str
    tenant_id: uuid.UUID
    is_primary: bool
    ssl_status: str
    verified_at: datetime | None = None
    created_at: datetime | None = None


class TenantRead(BaseModel):
    """Full tenant record as seen by platform administrators."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    status: TenantStatus
    channel_id: uuid.UUID
    plan: str
    config: dict[str, Any] = Field(default_factory=dict)
    suspended_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    domains: list[TenantDomainRead] = Field(default_factory=list)

    @property
    def primary_domain(self) -> str | None:
        for domain in self.domains:
            if domain.is_primary:
                return domain.domain
        return None


class StoreTenantRead(BaseModel):
    """Current tenant as exposed on the tenant-facing surface."""

    id: uuid.UUID
    name: str
    slug: str
    status: TenantStatus
    plan: str
    primary_domain: str | None = None


class ProvisionResult(BaseModel):
    tenant: TenantRead
    channel_token: str
    administrator_id: uuid.UUID | None = None
    resumed: bool = False


class PurgeRunResult(BaseModel):
    """Outcome of one purge scheduler run."""

    auto_deleted: list[str] = Field(default_factory=list)
    purged: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    orphans_reclaimed: list[str] = Field(default_factory=list)
    skipped: bool = False


def normalize_domain(value: str) -> str:
    """Strip scheme-less host input down to a lowercase hostname and validate it."""
    domain = value.strip().split(":")[0].lower().rstrip(".")
    if not re.match(_HOSTNAME_PATTERN, domain):
        raise ValueError(f"'{value}' is not a valid hostname")
    return domain
