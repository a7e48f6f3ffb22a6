# SPDX-License-Identifier: MIT
"""FastAPI dependencies shared by the route modules."""

from typing import Annotated

from fastapi import Depends, Request

from .config import APIConfig
from .db import Catalog, get_catalog
from .download import DownloadPipeline
from .publish import PublishPipeline
from .storage import BlobStore


def get_config(request: Request) -> APIConfig:
    """Return the configuration the app was created with."""
    return request.app.state.config


def get_blob_store(request: Request) -> BlobStore:
    """Return the blob store built during application startup."""
    blob_store = getattr(request.app.state, "blob_store", None)
    if blob_store is None:
        raise RuntimeError("Blob store not initialized")
    return blob_store


def get_publish_pipeline(
    config: Annotated[APIConfig, Depends(get_config)],
    catalog: Annotated[Catalog, Depends(get_catalog)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
) -> PublishPipeline:
    return PublishPipeline(catalog, blob_store, config.publish.max_upload_size)


def get_download_pipeline(
    config: Annotated[APIConfig, Depends(get_config)],
    catalog: Annotated[Catalog, Depends(get_catalog)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
) -> DownloadPipeline:
    return DownloadPipeline(catalog, blob_store, redirect=config.storage.redirect_downloads)
