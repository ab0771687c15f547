"""Tenant binding middleware (pre-authentication stage of the request gate).

For every request outside SKIP_TENANT_PATHS:
1. Take the hostname from the Host header (X-Forwarded-Host as fallback),
   strip the port and lowercase it.
2. Bypass hosts (local development) continue unbound.
3. Resolve the hostname. Unknown or non-operational tenants get a bare 404;
   nothing falls through to the platform-wide default channel.
4. Overwrite the channel token header with the resolved tenant's token,
   whatever the client sent. A differing client token is audited as a
   TOKEN_MISMATCH.
5. Attach the resolution result to request.state.tenant and set the
   TenantContext contextvar.

Resolver infrastructure failures return 503 by default. With
TENANT_RESOLUTION_FAIL_OPEN the request continues unbound but with the
client's channel token removed, so it lands on the default channel, which
the default-channel guard reserves for SuperAdmin.
"""

from __future__ import annotations

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.tenancy.core.errors import ResolutionError
from src.tenancy.core.monitoring import isolation_blocks_total
from src.tenancy.core.tenant import TenantContext, reset_tenant_context, set_tenant_context
from src.tenancy.models.audit import AuditSeverity
from src.tenancy.services.audit import AuditAction
from src.tenancy.services.resolution import normalize_hostname

logger = structlog.get_logger(__name__)

# ── Paths that skip tenant resolution ───────────────────────────────────────

SKIP_TENANT_PATHS = (
    "/health",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/redoc",
)


def request_hostname(request: Request) -> str:
    raw = request.headers.get("host") or request.headers.get("x-forwarded-host") or ""
    return normalize_hostname(raw.split(",")[0])


def replace_header(request: Request, name: str, value: str | None) -> None:
    """Set (or with None, remove) a header on the ASGI scope seen downstream."""
    key = name.lower().encode("latin-1")
    headers = [(k, v) for k, v in request.scope["headers"] if k.lower() != key]
    if value is not None:
        headers.append((key, value.encode("latin-1")))
    request.scope["headers"] = headers


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Binds each request to the tenant its hostname resolves to.

    Services are read from request.app.state.services at dispatch time.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if any(path == skip or path.startswith(skip + "/") for skip in SKIP_TENANT_PATHS):
            return await call_next(request)

        services = request.app.state.services
        settings = services.settings
        header = settings.CHANNEL_TOKEN_HEADER

        hostname = request_hostname(request)
        if not hostname or hostname in settings.bypass_hosts:
            return await call_next(request)

        try:
            result = await services.resolver.resolve(hostname)
        except ResolutionError:
            isolation_blocks_total.labels(kind="resolution_error").inc()
            if not settings.TENANT_RESOLUTION_FAIL_OPEN:
                logger.error("tenant_gate.resolution_failed", host=hostname, action="reject")
                return JSONResponse(
                    status_code=503, content={"detail": ResolutionError.public_message}
                )
            logger.error("tenant_gate.resolution_failed", host=hostname, action="continue_unbound")
            replace_header(request, header, None)
            return await call_next(request)

        if result is None:
            isolation_blocks_total.labels(kind="unknown_host").inc()
            logger.info("tenant_gate.unknown_host", host=hostname)
            return JSONResponse(status_code=404, content={"detail": "Not found"})

        supplied = request.headers.get(header)
        if supplied and supplied != result.channel_token:
            isolation_blocks_total.labels(kind="token_mismatch").inc()
            await services.audit.record(
                AuditAction.TOKEN_MISMATCH,
                AuditSeverity.WARN,
                channel_id=result.channel_id,
                tenant_id=result.tenant_id,
                metadata={
                    "supplied_token": supplied,
                    "resolved_token": result.channel_token,
                    "domain": hostname,
                    "path": path,
                },
                ip_address=request.client.host if request.client else None,
            )

        replace_header(request, header, result.channel_token)
        request.state.tenant = result
        request.state.tenant_slug = result.tenant_slug

        token = set_tenant_context(
            TenantContext(
                tenant_id=result.tenant_id,
                tenant_slug=result.tenant_slug,
                tenant_status=result.tenant_status.value,
                channel_id=result.channel_id,
                channel_token=result.channel_token,
            )
        )
        try:
            return await call_next(request)
        finally:
            reset_tenant_context(token)
