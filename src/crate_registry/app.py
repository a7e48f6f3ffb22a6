# SPDX-License-Identifier: MIT
"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import APIConfig
from .db import Catalog, CatalogError, get_catalog
from .models import HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    config: APIConfig = app.state.config

    from .db import close_db, init_db
    from .storage import create_blob_store

    await init_db(config.database)

    # Fail fast on an unreachable storage backend
    blob_store = create_blob_store(config.storage)
    try:
        await blob_store.check_connection()
    except Exception:
        logger.error("Blob store (%s) failed its connectivity check", config.storage.backend)
        await close_db()
        raise
    logger.info("Blob store initialized (backend=%s)", config.storage.backend)
    app.state.blob_store = blob_store

    yield

    app.state.blob_store = None
    await close_db()


def create_app(config: APIConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: API configuration. If None, loads from environment.

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = APIConfig.from_env()

    app = FastAPI(
        title=config.title,
        description=config.description,
        version=config.version,
        docs_url=config.docs_url,
        openapi_url=config.openapi_url,
        lifespan=lifespan,
    )

    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .middleware.errors import add_error_handlers

    add_error_handlers(app)

    if config.rate_limit.enabled:
        from .middleware.ratelimit import RateLimitMiddleware

        app.add_middleware(
            RateLimitMiddleware,
            requests_per_minute=config.rate_limit.requests_per_minute,
            burst_size=config.rate_limit.burst_size,
        )

    from .routes import crates, download, publish

    app.include_router(crates.router, prefix=config.api_prefix, tags=["crates"])
    app.include_router(download.router, prefix=config.api_prefix, tags=["download"])
    app.include_router(publish.router, prefix=config.api_prefix, tags=["publish"])

    @app.get("/config.json")
    async def registry_config() -> dict:
        """Registry handshake read by cargo."""
        base_url = config.base_url.rstrip("/")
        return {
            "dl": f"{base_url}{config.api_prefix}/crates",
            "api": base_url,
            "auth-required": False,
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check(catalog: Annotated[Catalog, Depends(get_catalog)]) -> HealthResponse:
        """Health check endpoint with catalog totals."""
        health = HealthResponse(
            status="healthy", version=config.version, storage=config.storage.backend
        )
        try:
            stats = await catalog.stats()
        except CatalogError as e:
            logger.warning("Health check could not read catalog stats: %s", e)
            health.status = "degraded"
            return health
        health.crates = stats["crates"]
        health.versions = stats["versions"]
        health.downloads = stats["downloads"]
        return health

    return app
