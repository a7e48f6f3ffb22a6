# SPDX-License-Identifier: MIT
"""Self-hosted Cargo registry: publish, store and serve crate archives."""

__version__ = "0.1.0"

from .app import create_app
from .checksum import (
    ChecksumMismatchError,
    compute_sha256,
    compute_sha256_stream,
    verify_checksum,
)
from .config import (
    APIConfig,
    AuthConfig,
    ConfigError,
    DatabaseConfig,
    PublishConfig,
    RateLimitConfig,
    S3Config,
    StorageConfig,
)
from .download import DownloadPipeline
from .middleware.errors import (
    APIError,
    ErrorCode,
    ForbiddenError,
    MalformedRequestError,
    PackageNotFoundError,
    PayloadTooLargeError,
    RateLimitedError,
    StorageFailureError,
    UnauthorizedError,
    VersionExistsError,
    VersionNotFoundError,
)
from .publish import PublishPipeline

__all__ = [
    # App factory
    "create_app",
    # Configuration
    "APIConfig",
    "AuthConfig",
    "ConfigError",
    "DatabaseConfig",
    "PublishConfig",
    "RateLimitConfig",
    "S3Config",
    "StorageConfig",
    # Checksum utilities
    "ChecksumMismatchError",
    "compute_sha256",
    "compute_sha256_stream",
    "verify_checksum",
    # Pipelines
    "DownloadPipeline",
    "PublishPipeline",
    # Errors
    "APIError",
    "ErrorCode",
    "ForbiddenError",
    "MalformedRequestError",
    "PackageNotFoundError",
    "PayloadTooLargeError",
    "RateLimitedError",
    "StorageFailureError",
    "UnauthorizedError",
    "VersionExistsError",
    "VersionNotFoundError",
]
