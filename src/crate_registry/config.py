# SPDX-License-Identifier: MIT
"""Registry server configuration."""

import os
from dataclasses import dataclass, field
from typing import Optional

ENV_PREFIX = "CRATE_REGISTRY_"


class ConfigError(Exception):
    """Raised when the environment describes an unusable configuration."""


@dataclass
class DatabaseConfig:
    """Catalog database connection configuration."""

    url: str = "sqlite:///./crate_registry.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10


@dataclass
class S3Config:
    """S3-compatible object storage settings.

    ``endpoint`` is only needed for non-AWS stores such as MinIO, which
    usually also want ``path_style`` addressing.
    """

    bucket: str
    region: str = "us-east-1"
    endpoint: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    path_style: bool = True
    use_ssl: bool = True
    public_url: Optional[str] = None
    prefix: str = ""


@dataclass
class StorageConfig:
    """Crate archive storage configuration."""

    backend: str = "local"  # "local" or "s3"
    local_path: str = "./data"
    s3: Optional[S3Config] = None
    redirect_downloads: bool = False


@dataclass
class PublishConfig:
    """Limits applied to inbound publishes."""

    max_upload_size: int = 10 * 1024 * 1024


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""

    enabled: bool = True
    requests_per_minute: int = 100
    burst_size: int = 20


@dataclass
class AuthConfig:
    """API token configuration."""

    token_prefix: str = "crg_"


@dataclass
class APIConfig:
    """Main registry server configuration."""

    # Server settings
    title: str = "Crate Registry"
    description: str = "Self-hosted Cargo registry for publishing and downloading crates"
    version: str = "0.1.0"
    base_url: str = "http://localhost:8080"
    log_level: str = "INFO"
    debug: bool = False

    # Sub-configurations
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    # API settings
    api_prefix: str = "/api/v1"
    docs_url: str = "/docs"
    openapi_url: str = "/openapi.json"

    @classmethod
    def from_env(cls) -> "APIConfig":
        """Create configuration from ``CRATE_REGISTRY_*`` environment variables.

        Raises:
            ConfigError: On malformed numbers, an unknown storage backend,
                or an S3 backend without a bucket.
        """
        config = cls()

        if base_url := _env("BASE_URL"):
            config.base_url = base_url.rstrip("/")
        if log_level := _env("LOG_LEVEL"):
            config.log_level = log_level.upper()
        config.debug = _env_bool("DEBUG", False)

        # Database
        if db_url := _env("DATABASE_URL"):
            config.database.url = db_url
        config.database.echo = _env_bool("DATABASE_ECHO", False)
        config.database.pool_size = _env_int("DATABASE_POOL_SIZE", config.database.pool_size)

        # Storage
        backend = (_env("STORAGE_BACKEND") or config.storage.backend).lower()
        if backend not in ("local", "s3"):
            raise ConfigError(f"Unknown storage backend: {backend!r}")
        config.storage.backend = backend
        if local_path := _env("STORAGE_LOCAL_PATH"):
            config.storage.local_path = local_path
        config.storage.redirect_downloads = _env_bool("STORAGE_REDIRECT_DOWNLOADS", False)
        if backend == "s3":
            bucket = _env("S3_BUCKET")
            if not bucket:
                raise ConfigError("S3 storage selected but CRATE_REGISTRY_S3_BUCKET is not set")
            config.storage.s3 = S3Config(
                bucket=bucket,
                region=_env("S3_REGION") or "us-east-1",
                endpoint=_env("S3_ENDPOINT"),
                access_key=_env("S3_ACCESS_KEY"),
                secret_key=_env("S3_SECRET_KEY"),
                path_style=_env_bool("S3_PATH_STYLE", True),
                use_ssl=_env_bool("S3_USE_SSL", True),
                public_url=_env("S3_PUBLIC_URL"),
                prefix=_env("S3_PREFIX") or "",
            )

        # Publish limits
        config.publish.max_upload_size = _env_int(
            "MAX_UPLOAD_SIZE", config.publish.max_upload_size
        )

        # Rate limiting
        config.rate_limit.enabled = _env_bool("RATE_LIMIT_ENABLED", True)
        config.rate_limit.requests_per_minute = _env_int(
            "RATE_LIMIT_RPM", config.rate_limit.requests_per_minute
        )

        # Auth
        if token_prefix := _env("TOKEN_PREFIX"):
            config.auth.token_prefix = token_prefix

        return config


def _env(name: str) -> Optional[str]:
    return os.getenv(ENV_PREFIX + name) or None


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}") from e
