# SPDX-License-Identifier: MIT
"""Tests for publish, yank and unyank routes."""

import json

import pytest
from httpx import AsyncClient

from crate_registry.auth import issue_api_token
from crate_registry.checksum import compute_sha256


@pytest.mark.asyncio
class TestPublishRoute:
    async def test_publish_success(self, publish, alice_token, catalog):
        response = await publish(alice_token, "acme-widgets", "1.0.0", b"0123456789")

        assert response.status_code == 200
        assert response.json() == {
            "warnings": {"invalid_categories": [], "invalid_badges": [], "other": []}
        }
        package = await catalog.find_package_by_name("acme-widgets")
        assert package.owner_id == "alice"
        row = await catalog.get_version("acme-widgets", "1.0.0")
        assert row.checksum == compute_sha256(b"0123456789")

    async def test_publish_with_post(self, client: AsyncClient, alice_token, make_metadata):
        response = await client.post(
            "/api/v1/crates/new",
            data={"metadata": json.dumps(make_metadata("posted", "0.1.0"))},
            files={"crate": ("posted-0.1.0.crate", b"bytes", "application/octet-stream")},
            headers={"Authorization": f"Bearer {alice_token}"},
        )
        assert response.status_code == 200

    async def test_requires_token(self, publish):
        response = await publish(None, "acme", "1.0.0", b"data")
        assert response.status_code == 401
        body = response.json()
        assert body["error"]["code"] == "UNAUTHORIZED"
        assert body["errors"][0]["detail"]

    async def test_rejects_unknown_token(self, publish):
        response = await publish("crg_not-a-real-token", "acme", "1.0.0", b"data")
        assert response.status_code == 401

    async def test_requires_publish_scope(self, publish, test_session):
        token = await issue_api_token(test_session, "carol", scopes=["yank"])
        response = await publish(token, "acme", "1.0.0", b"data")
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    async def test_missing_crate_part(self, client: AsyncClient, alice_token, make_metadata):
        response = await client.put(
            "/api/v1/crates/new",
            data={"metadata": json.dumps(make_metadata("acme", "1.0.0"))},
            headers={"Authorization": alice_token},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MALFORMED_REQUEST"

    async def test_not_multipart(self, client: AsyncClient, alice_token):
        response = await client.put(
            "/api/v1/crates/new",
            content=b"\x00\x00\x00\x02{}",
            headers={"Authorization": alice_token, "Content-Type": "application/octet-stream"},
        )
        assert response.status_code == 400

    async def test_invalid_metadata(self, publish, alice_token):
        response = await publish(alice_token, "acme", "1.0.0", b"data", keywords="not-a-list")
        assert response.status_code == 400
        details = response.json()["error"]["details"]
        assert details[0]["field"] == "keywords"

    async def test_too_large(self, publish, alice_token, app):
        app.state.config.publish.max_upload_size = 16
        response = await publish(alice_token, "huge", "1.0.0", b"x" * 17)
        assert response.status_code == 413
        assert response.json()["error"]["code"] == "PAYLOAD_TOO_LARGE"

    async def test_non_semver_warning(self, publish, alice_token):
        response = await publish(alice_token, "acme", "2023.1", b"data")
        assert response.status_code == 200
        assert response.json()["warnings"]["other"] == [
            "version '2023.1' is not a valid semantic version"
        ]


@pytest.mark.asyncio
class TestAcmeWidgetsScenario:
    async def test_full_scenario(self, client: AsyncClient, publish, alice_token, bob_token, catalog):
        original = b"0123456789"

        response = await publish(alice_token, "acme-widgets", "1.0.0", original)
        assert response.status_code == 200
        package = await catalog.find_package_by_name("acme-widgets")
        assert package.owner_id == "alice"
        assert package.downloads == 0

        response = await publish(alice_token, "acme-widgets", "1.0.0", b"different!")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "VERSION_EXISTS"

        response = await publish(bob_token, "acme-widgets", "1.0.0", b"bobs bytes")
        assert response.status_code == 403

        response = await client.get("/api/v1/crates/acme-widgets/1.0.0/download")
        assert response.status_code == 200
        assert response.content == original
        assert (await catalog.find_package_by_name("acme-widgets")).downloads == 1

        response = await client.get("/api/v1/crates/acme-widgets/2.0.0/download")
        assert response.status_code == 404
        assert (await catalog.find_package_by_name("acme-widgets")).downloads == 1


@pytest.mark.asyncio
class TestYank:
    async def test_yank_and_unyank(self, client: AsyncClient, publish, alice_token, catalog):
        await publish(alice_token, "acme", "1.0.0", b"data")
        headers = {"Authorization": alice_token}

        response = await client.delete("/api/v1/crates/acme/1.0.0/yank", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert (await catalog.get_version("acme", "1.0.0")).yanked is True

        # Yanked versions stay downloadable by exact version
        response = await client.get("/api/v1/crates/acme/1.0.0/download")
        assert response.status_code == 200

        response = await client.put("/api/v1/crates/acme/1.0.0/unyank", headers=headers)
        assert response.status_code == 200
        assert (await catalog.get_version("acme", "1.0.0")).yanked is False

    async def test_yank_by_non_owner(self, client: AsyncClient, publish, alice_token, bob_token):
        await publish(alice_token, "acme", "1.0.0", b"data")
        response = await client.delete(
            "/api/v1/crates/acme/1.0.0/yank", headers={"Authorization": bob_token}
        )
        assert response.status_code == 403

    async def test_yank_unknown_crate(self, client: AsyncClient, alice_token):
        response = await client.delete(
            "/api/v1/crates/ghost/1.0.0/yank", headers={"Authorization": alice_token}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PACKAGE_NOT_FOUND"

    async def test_yank_unknown_version(self, client: AsyncClient, publish, alice_token):
        await publish(alice_token, "acme", "1.0.0", b"data")
        response = await client.delete(
            "/api/v1/crates/acme/9.9.9/yank", headers={"Authorization": alice_token}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "VERSION_NOT_FOUND"

    async def test_yank_requires_auth(self, client: AsyncClient):
        response = await client.delete("/api/v1/crates/acme/1.0.0/yank")
        assert response.status_code == 401


def multipart_body(boundary: str, metadata: dict, crate: bytes) -> bytes:
    """Build a multipart body whose crate part carries no filename."""
    return b"".join([
        f"--{boundary}\r\n".encode(),
        b'Content-Disposition: form-data; name="metadata"\r\n\r\n',
        json.dumps(metadata).encode(),
        f"\r\n--{boundary}\r\n".encode(),
        b'Content-Disposition: form-data; name="crate"\r\n\r\n',
        crate,
        f"\r\n--{boundary}--\r\n".encode(),
    ])


@pytest.mark.asyncio
class TestPublishInputValidation:
    async def test_lookalike_name_rejected(self, publish, alice_token, bob_token, catalog):
        await publish(alice_token, "acme-widgets", "1.0.0", b"alice bytes")

        response = await publish(bob_token, "acme-widgets\n", "1.0.0", b"bob bytes")

        assert response.status_code == 400
        assert response.json()["error"]["details"][0]["field"] == "name"
        assert await catalog.find_package_by_name("acme-widgets\n") is None
        _, total = await catalog.search("acme-widgets", limit=10, offset=0)
        assert total == 1

    async def test_version_with_newline_rejected(self, publish, alice_token, blob_store):
        response = await publish(alice_token, "acme", "1.0.0\n", b"data")

        assert response.status_code == 400
        assert response.json()["error"]["details"][0]["field"] == "vers"
        assert await blob_store.exists("acme", "1.0.0") is False

    async def test_crate_part_without_filename_rejected(
        self, client: AsyncClient, alice_token, make_metadata, catalog, blob_store
    ):
        boundary = "crate-registry-boundary"
        body = multipart_body(
            boundary, make_metadata("acme", "1.0.0"), b"\xff\xfe\x00\x81binary"
        )

        response = await client.put(
            "/api/v1/crates/new",
            content=body,
            headers={
                "Authorization": alice_token,
                "Content-Type": f"multipart/form-data; boundary={boundary}",
            },
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"][0]["field"] == "crate"
        assert await catalog.get_version("acme", "1.0.0") is None
        assert await blob_store.exists("acme", "1.0.0") is False

    async def test_binary_file_part_round_trips(self, client: AsyncClient, publish, alice_token):
        data = b"\xff\xfe\x00\x81binary"
        response = await publish(alice_token, "acme", "1.0.0", data)
        assert response.status_code == 200

        response = await client.get("/api/v1/crates/acme/1.0.0/download")
        assert response.content == data
        assert response.headers["x-checksum-sha256"] == compute_sha256(data)
