"""Async SQLAlchemy engine and the shared platform schema.

Provides:
- SharedBase: Declarative base for platform tables (tenants, domains, audit
  log, and the commerce collaborator's channel/role/administrator tables)
- create_engine_for(): engine construction for PostgreSQL or SQLite
- get_session_factory(): async_sessionmaker bound to the engine singleton
- init_db() / close_db(): lifecycle helpers used by the app lifespan

All platform tables are declared in the "shared" schema. SQLite has no
schemas, so the placeholder is remapped to the default schema there via
schema_translate_map.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from src.tenancy.config import get_settings

SessionFactory = async_sessionmaker[AsyncSession]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# ── Declarative Base ────────────────────────────────────────────────────────

shared_metadata = MetaData(schema="shared")


class SharedBase(DeclarativeBase):
    """Base class for all platform tables in the shared schema."""

    metadata = shared_metadata


# ── Engine ──────────────────────────────────────────────────────────────────

_engine: AsyncEngine | None = None


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite URLs are upgraded to the aiosqlite driver, share a single
    connection (so in-memory databases survive across sessions) and map the
    "shared" schema to the default schema.
    """
    if database_url.startswith("sqlite://"):
        database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://")

    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            execution_options={"schema_translate_map": {"shared": None}},
        )

    return create_async_engine(
        database_url,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        echo=echo,
    )


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.DATABASE_URL)
    return _engine


def make_session_factory(engine: AsyncEngine) -> SessionFactory:
    """Build a session factory for an engine (sessions keep loaded state after commit)."""
    return async_sessionmaker(engine, expire_on_commit=False)


def get_session_factory() -> SessionFactory:
    """Session factory bound to the engine singleton."""
    return make_session_factory(get_engine())


# ── Database Initialization ─────────────────────────────────────────────────


async def create_schema(engine: AsyncEngine) -> None:
    """Create the shared schema (PostgreSQL only) and all platform tables."""
    # Model modules register their tables on SharedBase.metadata at import time
    import src.tenancy.commerce.models  # noqa: F401
    import src.tenancy.models.audit  # noqa: F401
    import src.tenancy.models.tenant  # noqa: F401

    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text("CREATE SCHEMA IF NOT EXISTS shared"))
        await conn.run_sync(SharedBase.metadata.create_all)


async def init_db() -> None:
    """Create the shared schema and tables on the engine singleton."""
    await create_schema(get_engine())


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
