"""Audit log tests.

Covers:
- Metadata sanitization (nested keys, per-action allow-list)
- record() persistence and its never-raise contract
- Entries are immutable
- Query filters, ordering and pagination
- Audit endpoint access control
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select

from src.tenancy.core.database import utcnow
from src.tenancy.models.audit import AuditLogModel, AuditSeverity
from src.tenancy.schemas.audit import AuditQuery
from src.tenancy.services.audit import (
    REDACTED,
    AuditAction,
    AuditService,
    sanitize_metadata,
    status_change_severity,
)


def test_sanitize_redacts_nested_sensitive_keys():
    cleaned = sanitize_metadata(
        {
            "slug": "alpha-store",
            "password": "hunter2",
            "admin": {"email": "a@example.com", "Authorization": "Bearer x"},
            "items": [{"api_key": "k"}, {"name": "ok"}],
            "refresh_token": "r",
        }
    )
    assert cleaned == {
        "slug": "alpha-store",
        "password": REDACTED,
        "admin": {"email": "a@example.com", "Authorization": REDACTED},
        "items": [{"api_key": REDACTED}, {"name": "ok"}],
        "refresh_token": REDACTED,
    }


def test_sanitize_allow_list():
    cleaned = sanitize_metadata(
        {"supplied_token": "a", "resolved_token": "b", "session_token": "c"},
        frozenset({"supplied_token", "resolved_token"}),
    )
    assert cleaned == {"supplied_token": "a", "resolved_token": "b", "session_token": REDACTED}


@pytest.mark.parametrize(
    "to_status,expected",
    [
        ("PURGED", AuditSeverity.CRITICAL),
        ("SUSPENDED", AuditSeverity.WARN),
        ("DELETED", AuditSeverity.WARN),
        ("ACTIVE", AuditSeverity.INFO),
    ],
)
def test_status_change_severity(to_status, expected):
    assert status_change_severity(to_status) == expected


async def test_record_persists_sanitized_entry(services):
    entry = await services.audit.record(
        AuditAction.SUPERADMIN_ACTION,
        AuditSeverity.INFO,
        metadata={"operation": "set_config", "secret": "s3"},
        ip_address="10.0.0.1",
    )
    assert entry is not None
    assert entry.metadata == {"operation": "set_config", "secret": REDACTED}

    page = await services.audit.query(AuditQuery(action=AuditAction.SUPERADMIN_ACTION))
    assert page.total == 1
    assert page.items[0].id == entry.id
    assert page.items[0].ip_address == "10.0.0.1"


async def test_token_mismatch_keeps_both_tokens(services):
    entry = await services.audit.record(
        AuditAction.TOKEN_MISMATCH,
        AuditSeverity.WARN,
        metadata={"supplied_token": "beta", "resolved_token": "alpha", "password": "x"},
    )
    assert entry.metadata == {"supplied_token": "beta", "resolved_token": "alpha", "password": REDACTED}


async def test_log_mirror_redacts_allow_listed_tokens(services):
    with patch("src.tenancy.services.audit.logger") as mock_logger:
        entry = await services.audit.record(
            AuditAction.TOKEN_MISMATCH,
            AuditSeverity.WARN,
            metadata={"supplied_token": "beta", "resolved_token": "alpha", "domain": "a.example.tld"},
        )

    assert entry.metadata["supplied_token"] == "beta"
    mock_logger.warning.assert_called_once()
    event_name = mock_logger.warning.call_args.args[0]
    fields = mock_logger.warning.call_args.kwargs
    assert event_name == "audit.token_mismatch"
    assert fields["meta_supplied_token"] == REDACTED
    assert fields["meta_resolved_token"] == REDACTED
    assert fields["meta_domain"] == "a.example.tld"


async def test_record_never_raises():
    broken_factory = MagicMock(side_effect=RuntimeError("no database"))
    audit = AuditService(broken_factory)

    result = await audit.record(AuditAction.TENANT_CREATED, metadata={"slug": "x"})

    assert result is None


async def test_entries_are_immutable(services):
    entry = await services.audit.record(AuditAction.TENANT_CREATED, metadata={"slug": "x"})

    async with services.session_factory() as session:
        model = await session.scalar(select(AuditLogModel).where(AuditLogModel.id == entry.id))
        model.action = "TAMPERED"
        with pytest.raises(RuntimeError, match="immutable"):
            await session.commit()


async def test_entries_cannot_be_deleted(services):
    entry = await services.audit.record(AuditAction.TENANT_CREATED, metadata={"slug": "x"})

    async with services.session_factory() as session:
        model = await session.scalar(select(AuditLogModel).where(AuditLogModel.id == entry.id))
        await session.delete(model)
        with pytest.raises(RuntimeError, match="immutable"):
            await session.commit()

    page = await services.audit.query(AuditQuery(action=AuditAction.TENANT_CREATED))
    assert page.total == 1


async def test_query_filters_and_orders(services):
    for i in range(3):
        await services.audit.record(AuditAction.TENANT_CREATED, metadata={"n": i})
    await services.audit.record(AuditAction.TENANT_PURGED, AuditSeverity.CRITICAL)

    created = await services.audit.query(AuditQuery(action=AuditAction.TENANT_CREATED))
    assert created.total == 3
    assert [item.metadata["n"] for item in created.items] == [2, 1, 0]

    critical = await services.audit.query(AuditQuery(severity=AuditSeverity.CRITICAL))
    assert [item.action for item in critical.items] == [AuditAction.TENANT_PURGED]

    page = await services.audit.query(AuditQuery(action=AuditAction.TENANT_CREATED, take=2, skip=2))
    assert page.total == 3
    assert [item.metadata["n"] for item in page.items] == [0]

    future = await services.audit.query(AuditQuery(since=utcnow() + timedelta(minutes=5)))
    assert future.total == 0


async def test_audit_endpoint_superadmin(client, superadmin_headers, tenant_alpha):
    response = await client.get(
        "/api/v1/audit-logs",
        params={"action": "TENANT_CREATED", "tenant_id": tenant_alpha["tenant"]["id"]},
        headers=superadmin_headers,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["metadata"]["slug"] == "alpha-store"


async def test_audit_endpoint_forbidden_for_tenant_admin(client, alpha_headers):
    response = await client.get(
        "http://alpha-store.example.tld/api/v1/audit-logs", headers=alpha_headers
    )
    assert response.status_code == 403
