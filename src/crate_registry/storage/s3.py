# SPDX-License-Identifier: MIT
"""S3-compatible object storage blob store (AWS S3, MinIO, and friends)."""

import asyncio
import logging
from collections.abc import AsyncIterator

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..checksum import compute_sha256
from ..config import S3Config
from .base import (
    DEFAULT_CHUNK_SIZE,
    BlobNotFoundError,
    BlobStore,
    StorageUnavailableError,
    WriteFailedError,
    blob_key,
)

logger = logging.getLogger(__name__)

CRATE_CONTENT_TYPE = "application/x-tar"
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _is_not_found(error: ClientError) -> bool:
    return _error_code(error) in _NOT_FOUND_CODES


def _endpoint_url(config: S3Config) -> str | None:
    if not config.endpoint:
        return None
    if "://" in config.endpoint:
        return config.endpoint
    scheme = "https" if config.use_ssl else "http"
    return f"{scheme}://{config.endpoint}"


def create_s3_client(config: S3Config):
    """Build a boto3 S3 client honoring endpoint, credentials and addressing style."""
    client_config = Config(
        region_name=config.region,
        s3={"addressing_style": "path" if config.path_style else "virtual"},
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        endpoint_url=_endpoint_url(config),
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        use_ssl=config.use_ssl,
        config=client_config,
    )


class S3BlobStore(BlobStore):
    """Stores archives as objects under ``{prefix}crates/{name}/{name}-{version}.crate``.

    boto3 is synchronous; every call runs in a worker thread so the event
    loop is never blocked on network I/O.
    """

    def __init__(self, config: S3Config, client=None):
        self.config = config
        self.bucket = config.bucket
        self.prefix = f"{config.prefix.strip('/')}/" if config.prefix.strip("/") else ""
        self.client = client if client is not None else create_s3_client(config)

    def __repr__(self) -> str:
        return f"<S3BlobStore(bucket={self.bucket!r}, prefix={self.prefix!r})>"

    def object_key(self, name: str, version: str) -> str:
        """Return the object key of a crate archive."""
        return self.prefix + blob_key(name, version)

    async def check_connection(self) -> None:
        logger.info("Connecting to S3 bucket %s (region %s)", self.bucket, self.config.region)
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to connect to S3 bucket %s: %s", self.bucket, e)
            raise StorageUnavailableError(f"S3 bucket {self.bucket!r} is not reachable: {e}") from e
        logger.info("Connected to S3 bucket %s", self.bucket)

    async def store(self, name: str, version: str, data: bytes) -> str:
        key = self.object_key(name, version)
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=CRATE_CONTENT_TYPE,
                Metadata={"sha256": compute_sha256(data)},
            )
        except ClientError as e:
            raise WriteFailedError(f"Failed to upload {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"S3 unavailable while uploading {key}: {e}") from e
        logger.debug("Stored s3://%s/%s (%d bytes)", self.bucket, key, len(data))
        return key

    async def exists(self, name: str, version: str) -> bool:
        key = self.object_key(name, version)
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if not _is_not_found(e):
                logger.error("Ambiguous HEAD response for s3://%s/%s: %s", self.bucket, key, e)
            return False
        except BotoCoreError as e:
            raise StorageUnavailableError(f"S3 unavailable while checking {key}: {e}") from e
        return True

    async def _get_object(self, name: str, version: str) -> dict:
        key = self.object_key(name, version)
        try:
            return await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise BlobNotFoundError(name, version) from e
            raise StorageUnavailableError(f"Failed to fetch {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"S3 unavailable while fetching {key}: {e}") from e

    async def read(self, name: str, version: str) -> bytes:
        body = (await self._get_object(name, version))["Body"]
        try:
            return await asyncio.to_thread(body.read)
        except BotoCoreError as e:
            raise StorageUnavailableError(f"Failed to read {name} {version}: {e}") from e
        finally:
            body.close()

    async def size(self, name: str, version: str) -> int:
        key = self.object_key(name, version)
        try:
            head = await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise BlobNotFoundError(name, version) from e
            raise StorageUnavailableError(f"Failed to stat {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageUnavailableError(f"S3 unavailable while checking {key}: {e}") from e
        return int(head.get("ContentLength", 0))

    async def stream(
        self, name: str, version: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        body = (await self._get_object(name, version))["Body"]
        try:
            while chunk := await asyncio.to_thread(body.read, chunk_size):
                yield chunk
        finally:
            body.close()

    def download_url(self, name: str, version: str) -> str | None:
        key = self.object_key(name, version)
        if self.config.public_url:
            return f"{self.config.public_url.rstrip('/')}/{self.bucket}/{key}"
        endpoint = _endpoint_url(self.config)
        if endpoint:
            scheme, _, host = endpoint.partition("://")
            host = host.rstrip("/")
            if self.config.path_style:
                return f"{scheme}://{host}/{self.bucket}/{key}"
            return f"{scheme}://{self.bucket}.{host}/{key}"
        return f"https://{self.bucket}.s3.{self.config.region}.amazonaws.com/{key}"
