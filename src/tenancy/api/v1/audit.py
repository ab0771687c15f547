"""Audit log query endpoint (SuperAdmin only)."""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from src.tenancy.api.deps import get_services, require_operation
from src.tenancy.commerce.permissions import Permission
from src.tenancy.core.request_context import RequestContext
from src.tenancy.models.audit import AuditSeverity
from src.tenancy.schemas.audit import AuditLogPage, AuditQuery
from src.tenancy.services.container import TenancyServices

router = APIRouter(prefix="/api/v1/audit-logs", tags=["audit"])


@router.get("", response_model=AuditLogPage)
async def query_audit_logs(
    action: str | None = None,
    severity: AuditSeverity | None = None,
    tenant_id: uuid.UUID | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    take: int = Query(25, ge=1, le=500),
    skip: int = Query(0, ge=0),
    services: TenancyServices = Depends(get_services),
    _ctx: RequestContext = Depends(require_operation("audit_logs", Permission.SUPER_ADMIN)),
):
    """Newest-first audit entries filtered by action, severity, tenant and time range."""
    return await services.audit.query(
        AuditQuery(
            action=action,
            severity=severity,
            tenant_id=tenant_id,
            since=since,
            until=until,
            take=take,
            skip=skip,
        )
    )
