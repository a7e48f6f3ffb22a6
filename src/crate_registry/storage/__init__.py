# SPDX-License-Identifier: MIT
"""Pluggable crate archive storage."""

from typing import TYPE_CHECKING

from .base import (
    BlobNotFoundError,
    BlobStore,
    StorageError,
    StorageUnavailableError,
    WriteFailedError,
    blob_key,
    crate_filename,
)
from .local import LocalBlobStore

if TYPE_CHECKING:
    from ..config import StorageConfig

__all__ = [
    "BlobNotFoundError",
    "BlobStore",
    "LocalBlobStore",
    "StorageError",
    "StorageUnavailableError",
    "WriteFailedError",
    "blob_key",
    "crate_filename",
    "create_blob_store",
]


def create_blob_store(config: "StorageConfig") -> BlobStore:
    """Build the blob store selected by configuration.

    This is the only place that knows which backends exist.

    Raises:
        ValueError: For an unknown backend or an S3 backend without settings.
    """
    if config.backend == "local":
        return LocalBlobStore(config.local_path)
    if config.backend == "s3":
        if config.s3 is None:
            raise ValueError("S3 storage backend selected but no S3 settings were provided")
        from .s3 import S3BlobStore

        return S3BlobStore(config.s3)
    raise ValueError(f"Unknown storage backend: {config.backend}")
