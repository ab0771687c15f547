"""API middleware package."""

from src.tenancy.api.middleware.logging import LoggingMiddleware
from src.tenancy.api.middleware.tenant import TenantContextMiddleware

__all__ = ["LoggingMiddleware", "TenantContextMiddleware"]
