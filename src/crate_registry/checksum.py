# SPDX-License-Identifier: MIT
"""Content digests for crate archives."""

import hashlib
from collections.abc import AsyncIterable


def compute_sha256(data: bytes) -> str:
    """Compute the SHA-256 digest of an archive.

    Args:
        data: Archive bytes

    Returns:
        Lowercase hex-encoded digest (64 characters)
    """
    return hashlib.sha256(data).hexdigest()


async def compute_sha256_stream(chunks: AsyncIterable[bytes]) -> str:
    """Compute the SHA-256 digest of an async chunk stream.

    Used to re-verify stored blobs without reading them fully into memory.
    """
    digest = hashlib.sha256()
    async for chunk in chunks:
        digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(data: bytes, expected: str) -> bool:
    """Return True if ``data`` hashes to ``expected`` (case-insensitive hex)."""
    return compute_sha256(data) == expected.lower()


class ChecksumMismatchError(Exception):
    """Raised when stored bytes do not hash to the recorded checksum."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch: expected {expected}, got {actual}")
