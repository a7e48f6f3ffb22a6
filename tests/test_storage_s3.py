# SPDX-License-Identifier: MIT
"""Tests for the S3-compatible blob store against a mocked boto3 client."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from crate_registry.checksum import compute_sha256
from crate_registry.config import S3Config
from crate_registry.storage import (
    BlobNotFoundError,
    StorageUnavailableError,
    WriteFailedError,
)
from crate_registry.storage.s3 import S3BlobStore, create_s3_client


def client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeBody:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        if size < 0:
            size = len(self.data) - self.pos
        chunk = self.data[self.pos : self.pos + size]
        self.pos += len(chunk)
        return chunk

    def close(self):
        self.closed = True


@pytest.fixture
def s3_config() -> S3Config:
    return S3Config(
        bucket="crates",
        endpoint="http://minio:9000",
        access_key="minio",
        secret_key="minio123",
        prefix="registry",
    )


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def store(s3_config, s3_client) -> S3BlobStore:
    return S3BlobStore(s3_config, client=s3_client)


class TestKeys:
    def test_object_key_carries_prefix(self, store):
        assert store.object_key("serde", "1.0.0") == "registry/crates/serde/serde-1.0.0.crate"

    def test_empty_prefix(self, s3_client):
        store = S3BlobStore(S3Config(bucket="crates"), client=s3_client)
        assert store.object_key("serde", "1.0.0") == "crates/serde/serde-1.0.0.crate"


@pytest.mark.asyncio
class TestS3BlobStore:
    async def test_check_connection(self, store, s3_client):
        await store.check_connection()
        s3_client.head_bucket.assert_called_once_with(Bucket="crates")

    async def test_check_connection_missing_bucket(self, store, s3_client):
        s3_client.head_bucket.side_effect = client_error("404", "HeadBucket")
        with pytest.raises(StorageUnavailableError):
            await store.check_connection()

    async def test_store(self, store, s3_client):
        location = await store.store("acme-widgets", "1.0.0", b"0123456789")

        assert location == "registry/crates/acme-widgets/acme-widgets-1.0.0.crate"
        s3_client.put_object.assert_called_once_with(
            Bucket="crates",
            Key=location,
            Body=b"0123456789",
            ContentType="application/x-tar",
            Metadata={"sha256": compute_sha256(b"0123456789")},
        )

    async def test_store_client_error(self, store, s3_client):
        s3_client.put_object.side_effect = client_error("InternalError", "PutObject")
        with pytest.raises(WriteFailedError):
            await store.store("acme", "1.0.0", b"data")

    async def test_store_unreachable(self, store, s3_client):
        s3_client.put_object.side_effect = EndpointConnectionError(endpoint_url="http://minio")
        with pytest.raises(StorageUnavailableError):
            await store.store("acme", "1.0.0", b"data")

    async def test_exists(self, store, s3_client):
        assert await store.exists("acme", "1.0.0") is True

    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    async def test_exists_not_found(self, store, s3_client, code):
        s3_client.head_object.side_effect = client_error(code)
        assert await store.exists("acme", "1.0.0") is False

    async def test_exists_ambiguous_failure_is_false(self, store, s3_client, caplog):
        s3_client.head_object.side_effect = client_error("403")
        assert await store.exists("acme", "1.0.0") is False
        assert "Ambiguous HEAD response" in caplog.text

    async def test_read(self, store, s3_client):
        body = FakeBody(b"archive")
        s3_client.get_object.return_value = {"Body": body}
        assert await store.read("acme", "1.0.0") == b"archive"
        assert body.closed

    async def test_read_missing(self, store, s3_client):
        s3_client.get_object.side_effect = client_error("NoSuchKey", "GetObject")
        with pytest.raises(BlobNotFoundError):
            await store.read("acme", "1.0.0")

    async def test_size_uses_head(self, store, s3_client):
        s3_client.head_object.return_value = {"ContentLength": 42}
        assert await store.size("acme", "1.0.0") == 42
        s3_client.get_object.assert_not_called()

    async def test_stream(self, store, s3_client):
        s3_client.get_object.return_value = {"Body": FakeBody(b"x" * 25)}
        chunks = [c async for c in store.stream("acme", "1.0.0", chunk_size=10)]
        assert chunks == [b"x" * 10, b"x" * 10, b"x" * 5]


class TestDownloadUrl:
    def test_path_style_endpoint(self, store):
        assert (
            store.download_url("acme", "1.0.0")
            == "http://minio:9000/crates/registry/crates/acme/acme-1.0.0.crate"
        )

    def test_virtual_host_endpoint(self, s3_client):
        config = S3Config(bucket="crates", endpoint="storage.example.com", path_style=False)
        store = S3BlobStore(config, client=s3_client)
        assert (
            store.download_url("acme", "1.0.0")
            == "https://crates.storage.example.com/crates/acme/acme-1.0.0.crate"
        )

    def test_public_url(self, s3_client):
        config = S3Config(bucket="crates", public_url="https://cdn.example.com/")
        store = S3BlobStore(config, client=s3_client)
        assert (
            store.download_url("acme", "1.0.0")
            == "https://cdn.example.com/crates/crates/acme/acme-1.0.0.crate"
        )

    def test_aws_default(self, s3_client):
        config = S3Config(bucket="crates", region="eu-west-1")
        store = S3BlobStore(config, client=s3_client)
        assert (
            store.download_url("acme", "1.0.0")
            == "https://crates.s3.eu-west-1.amazonaws.com/crates/acme/acme-1.0.0.crate"
        )


def test_create_client_addressing_style(s3_config):
    client = create_s3_client(s3_config)
    assert client.meta.endpoint_url == "http://minio:9000"
    assert client.meta.config.s3["addressing_style"] == "path"
