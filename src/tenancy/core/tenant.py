"""Tenant context propagation via Python contextvars.

The TenantContext is set by the request gate after a hostname resolves to a
tenant, and is readable anywhere in the call stack via get_current_tenant().
Logging, metrics and Sentry tagging use it to attribute work to a tenant.
Data filtering itself happens in the commerce engine through the channel
token; this context only carries the resolution result.
"""

from __future__ import annotations

import contextvars
import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TenantContext:
    """Immutable tenant context for the current request."""

    tenant_id: uuid.UUID
    tenant_slug: str
    tenant_status: str
    channel_id: uuid.UUID
    channel_token: str


_tenant_context: contextvars.ContextVar[TenantContext] = contextvars.ContextVar("tenant_context")


def get_current_tenant() -> TenantContext:
    """Get the tenant context for the current request.

    Raises RuntimeError if no tenant context has been set (platform host,
    bypass host, or a call outside a request).
    """
    try:
        return _tenant_context.get()
    except LookupError:
        raise RuntimeError("No tenant context set -- request is not tenant-scoped")


def get_current_tenant_or_none() -> TenantContext | None:
    return _tenant_context.get(None)


def set_tenant_context(ctx: TenantContext) -> contextvars.Token[TenantContext]:
    """Set the tenant context for the current request. Returns a token for reset."""
    return _tenant_context.set(ctx)


def reset_tenant_context(token: contextvars.Token[TenantContext]) -> None:
    _tenant_context.reset(token)
