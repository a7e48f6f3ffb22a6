# SPDX-License-Identifier: MIT
"""Database module for the crate catalog."""

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .catalog import Catalog, CatalogConflictError, CatalogError, latest_version

if TYPE_CHECKING:
    from ..config import DatabaseConfig

__all__ = [
    "Catalog",
    "CatalogConflictError",
    "CatalogError",
    "latest_version",
    "async_database_url",
    "init_db",
    "close_db",
    "get_catalog",
    "get_session",
    "get_session_factory",
]

# Database engine and session will be initialized at startup
_engine = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def async_database_url(url: str) -> str:
    """Rewrite a sync database URL to its asyncio driver."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


async def init_db(config: "DatabaseConfig") -> None:
    """Initialize the connection pool and create missing tables.

    Args:
        config: Database configuration
    """
    global _engine, _session_factory

    url = async_database_url(config.url)
    engine_options = {"echo": config.echo}
    if not url.startswith("sqlite"):
        engine_options.update(pool_size=config.pool_size, max_overflow=config.max_overflow)

    _engine = create_async_engine(url, **engine_options)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    from .models import Base

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection."""
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the shared session factory."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    return _session_factory


async def get_session():
    """Get database session for dependency injection."""
    async with get_session_factory()() as session:
        yield session


def get_catalog() -> Catalog:
    """Get the catalog for dependency injection."""
    return Catalog(get_session_factory())
