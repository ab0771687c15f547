#!/usr/bin/env python3
"""CLI script to provision a new tenant.

Usage:
    uv run python scripts/provision_tenant.py --slug alpha-store --name "Alpha Store" \
        --domain alpha-store.example.tld --admin-email owner@alpha.example.com --admin-password changeme

Connects directly to the database using DATABASE_URL from environment or .env file.
Bootstraps the default channel and SuperAdmin if needed, then runs the full
provisioning workflow as the SuperAdmin and prints the tenant's channel token.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.tenancy
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def provision(args: argparse.Namespace) -> int:
    """Provision a tenant by calling the provisioning service directly."""
    from src.tenancy.config import get_settings
    from src.tenancy.core.database import close_db, get_session_factory, init_db
    from src.tenancy.core.errors import TenancyError
    from src.tenancy.schemas.tenant import AdministratorInput, TenantProvisionRequest
    from src.tenancy.services.container import build_services

    settings = get_settings()
    await init_db()
    services = build_services(get_session_factory(), settings)
    superadmin = await services.commerce.ensure_default_setup(
        settings.SUPERADMIN_EMAIL, settings.SUPERADMIN_PASSWORD
    )

    request = TenantProvisionRequest(
        name=args.name,
        slug=args.slug,
        domain=args.domain,
        plan=args.plan,
        admin=AdministratorInput(
            first_name=args.admin_first_name,
            last_name=args.admin_last_name,
            email=args.admin_email,
            password=args.admin_password,
        ),
    )

    print(f"Provisioning tenant: slug={args.slug}, name={args.name}, domain={request.domain}")
    try:
        result = await services.provisioning.provision(superadmin.id, request)
    except TenancyError as exc:
        print(f"Provisioning failed: {exc}", file=sys.stderr)
        return 1
    finally:
        await close_db()

    tenant = result.tenant
    print("Tenant provisioned successfully:" if not result.resumed else "Tenant provisioning resumed:")
    print(f"  ID:      {tenant.id}")
    print(f"  Slug:    {tenant.slug}")
    print(f"  Status:  {tenant.status.value}")
    print(f"  Domain:  {tenant.primary_domain}")
    print(f"  Channel: {tenant.channel_id}")
    print(f"  Token:   {result.channel_token}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Provision a new tenant")
    parser.add_argument("--slug", required=True, help="Tenant slug (e.g., alpha-store)")
    parser.add_argument("--name", required=True, help="Tenant display name (e.g., 'Alpha Store')")
    parser.add_argument("--domain", required=True, help="Primary hostname")
    parser.add_argument("--plan", default=None, help="Plan name (defaults to DEFAULT_PLAN)")
    parser.add_argument("--admin-email", required=True, help="Initial administrator email")
    parser.add_argument("--admin-password", required=True, help="Initial administrator password")
    parser.add_argument("--admin-first-name", default="Store", help="Initial administrator first name")
    parser.add_argument("--admin-last-name", default="Owner", help="Initial administrator last name")
    args = parser.parse_args()

    sys.exit(asyncio.run(provision(args)))


if __name__ == "__main__":
    main()
