"""Test fixtures for the tenancy core.

Provides:
- In-memory SQLite engine with the shared tables created
- Tenancy services wired to that engine, with a fake-clock resolver cache
- FastAPI app and async HTTP client (platform host http://localhost)
- SuperAdmin credentials and two tenants (alpha, beta) provisioned over HTTP
- A provision() helper for service-level tests
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.tenancy.config import Settings
from src.tenancy.core.cache import InMemoryResolutionCache
from src.tenancy.core.database import create_engine_for, create_schema, make_session_factory
from src.tenancy.main import create_app
from src.tenancy.schemas.tenant import AdministratorInput, TenantProvisionRequest
from src.tenancy.services.container import TenancyServices, build_services

SUPERADMIN_EMAIL = "root@platform.example.com"
SUPERADMIN_PASSWORD = "root-password"

ALPHA_DOMAIN = "alpha-store.example.tld"
BETA_DOMAIN = "beta-store.example.tld"
ALPHA_ADMIN = {"email": "ann@alpha.example.com", "password": "alpha-password"}
BETA_ADMIN = {"email": "ben@beta.example.com", "password": "beta-password"}


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def provision_payload(name: str, slug: str, domain: str, admin: dict) -> dict:
    return {
        "name": name,
        "slug": slug,
        "domain": domain,
        "admin": {
            "first_name": name.split()[0],
            "last_name": "Owner",
            "email": admin["email"],
            "password": admin["password"],
        },
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        SUPERADMIN_EMAIL=SUPERADMIN_EMAIL,
        SUPERADMIN_PASSWORD=SUPERADMIN_PASSWORD,
        RESOLVER_CACHE_BACKEND="memory",
        PURGE_SCHEDULER_ENABLED=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_engine_for(settings.DATABASE_URL)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def services(engine, settings, clock) -> TenancyServices:
    """Services over a fresh database with the default channel bootstrapped."""
    services = build_services(
        make_session_factory(engine),
        settings,
        cache=InMemoryResolutionCache(clock=clock),
    )
    await services.commerce.ensure_default_setup(SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD)
    return services


@pytest_asyncio.fixture
async def superadmin(services):
    """The platform administrator (already created; the call is idempotent)."""
    return await services.commerce.ensure_default_setup(SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD)


@pytest.fixture
def provision(services, superadmin):
    """Provision a tenant through the service layer."""

    async def _provision(slug: str, domain: str | None = None, email: str | None = None):
        request = TenantProvisionRequest(
            name=f"{slug.title()} Shop",
            slug=slug,
            domain=domain or f"{slug}.example.tld",
            admin=AdministratorInput(
                first_name="Store",
                last_name="Owner",
                email=email or f"owner@{slug}.example.com",
                password="owner-password",
            ),
        )
        return await services.provisioning.provision(superadmin.id, request)

    return _provision


@pytest.fixture
def app(services):
    return create_app(services)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client; the base URL is the platform (bypass) host."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://localhost") as ac:
        yield ac


async def login(client: AsyncClient, email: str, password: str, host: str = "localhost") -> str:
    response = await client.post(
        f"http://{host}/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


@pytest_asyncio.fixture
async def superadmin_headers(client) -> dict[str, str]:
    token = await login(client, SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def tenant_alpha(client, superadmin_headers) -> dict:
    """Provision alpha-store over the platform API."""
    response = await client.post(
        "/api/v1/tenants",
        json=provision_payload("Alpha Store", "alpha-store", ALPHA_DOMAIN, ALPHA_ADMIN),
        headers=superadmin_headers,
    )
    assert response.status_code == 201, f"Failed to create alpha-store: {response.text}"
    return response.json()


@pytest_asyncio.fixture
async def tenant_beta(client, superadmin_headers, tenant_alpha) -> dict:
    """Provision beta-store (after alpha to keep ordering stable)."""
    response = await client.post(
        "/api/v1/tenants",
        json=provision_payload("Beta Store", "beta-store", BETA_DOMAIN, BETA_ADMIN),
        headers=superadmin_headers,
    )
    assert response.status_code == 201, f"Failed to create beta-store: {response.text}"
    return response.json()


@pytest_asyncio.fixture
async def alpha_headers(client, tenant_alpha) -> dict[str, str]:
    token = await login(client, ALPHA_ADMIN["email"], ALPHA_ADMIN["password"])
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def beta_headers(client, tenant_beta) -> dict[str, str]:
    token = await login(client, BETA_ADMIN["email"], BETA_ADMIN["password"])
    return {"Authorization": f"Bearer {token}"}
