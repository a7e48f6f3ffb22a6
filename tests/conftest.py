# SPDX-License-Identifier: MIT
"""Pytest fixtures for registry tests."""

import json
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from crate_registry import APIConfig, create_app
from crate_registry.auth import issue_api_token
from crate_registry.db import Catalog, get_catalog, get_session
from crate_registry.db.models import Base
from crate_registry.dependencies import get_blob_store
from crate_registry.storage import LocalBlobStore


@pytest.fixture
def test_config(tmp_path) -> APIConfig:
    """Create test configuration backed by a throwaway SQLite file.

    A file rather than ``:memory:`` so concurrent sessions share one database.
    """
    config = APIConfig()
    config.database.url = f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"
    config.database.echo = False
    config.rate_limit.enabled = False
    config.storage.backend = "local"
    config.storage.local_path = str(tmp_path / "blobs")
    config.base_url = "http://registry.test"
    return config


@pytest_asyncio.fixture
async def test_engine(test_config: APIConfig):
    """Create test database engine."""
    engine = create_async_engine(
        test_config.database.url,
        echo=test_config.database.echo,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog(session_factory) -> Catalog:
    return Catalog(session_factory)


@pytest_asyncio.fixture
async def blob_store(test_config: APIConfig) -> LocalBlobStore:
    store = LocalBlobStore(test_config.storage.local_path)
    await store.check_connection()
    return store


@pytest_asyncio.fixture
async def app(test_config: APIConfig, session_factory, catalog, blob_store):
    """Create test FastAPI application.

    ASGITransport does not run the lifespan, so every resource the lifespan
    would build is supplied through dependency overrides.
    """
    app = create_app(test_config)

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    return app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest_asyncio.fixture
async def alice_token(test_session: AsyncSession) -> str:
    """API token for user alice with publish and yank scopes."""
    return await issue_api_token(test_session, "alice", name="alice-laptop")


@pytest_asyncio.fixture
async def bob_token(test_session: AsyncSession) -> str:
    """API token for user bob with publish and yank scopes."""
    return await issue_api_token(test_session, "bob", name="bob-ci")


def crate_metadata(name: str, vers: str, **fields) -> dict:
    """Build a publish metadata document the way cargo sends it."""
    metadata = {
        "name": name,
        "vers": vers,
        "deps": [],
        "features": {},
        "authors": ["Test Author <test@example.com>"],
        "description": f"{name} test crate",
        "keywords": [],
        "categories": [],
        "license": "MIT",
    }
    metadata.update(fields)
    return metadata


@pytest.fixture
def publish(client: AsyncClient):
    """Return a helper that publishes a crate through the HTTP API."""

    async def _publish(token: str | None, name: str, vers: str, data: bytes, **fields):
        headers = {"Authorization": token} if token else {}
        return await client.put(
            "/api/v1/crates/new",
            data={"metadata": json.dumps(crate_metadata(name, vers, **fields))},
            files={"crate": (f"{name}-{vers}.crate", data, "application/octet-stream")},
            headers=headers,
        )

    return _publish


@pytest.fixture
def make_metadata():
    """Return the metadata builder for tests that drive the pipeline directly."""
    return crate_metadata
