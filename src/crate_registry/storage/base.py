# SPDX-License-Identifier: MIT
"""Blob store contract shared by every storage backend."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

CRATES_DIR = "crates"
CRATE_EXTENSION = ".crate"
DEFAULT_CHUNK_SIZE = 64 * 1024


class StorageError(Exception):
    """Base class for blob store failures."""


class StorageUnavailableError(StorageError):
    """The backend could not be reached."""


class WriteFailedError(StorageError):
    """A write reached the backend but did not complete."""


class BlobNotFoundError(StorageError):
    """No blob is stored under the requested key."""

    def __init__(self, name: str, version: str):
        self.name = name
        self.version = version
        super().__init__(f"No archive stored for {name} {version}")


def crate_filename(name: str, version: str) -> str:
    """Return the archive filename, ``{name}-{version}.crate``."""
    return f"{name}-{version}{CRATE_EXTENSION}"


def blob_key(name: str, version: str) -> str:
    """Return the backend-neutral key for a crate version.

    The key is a pure function of ``(name, version)``:
    ``crates/{name}/{name}-{version}.crate``.

    Raises:
        ValueError: If either part could escape its directory.
    """
    for part in (name, version):
        if not part or "/" in part or "\\" in part or part.startswith("."):
            raise ValueError(f"Unsafe blob key component: {part!r}")
    return f"{CRATES_DIR}/{name}/{crate_filename(name, version)}"


class BlobStore(ABC):
    """Byte-exact persistence of crate archives keyed by ``(name, version)``.

    Implementations are interchangeable; nothing above this layer branches
    on the backend type.
    """

    @abstractmethod
    async def check_connection(self) -> None:
        """Verify the backend is usable, creating containers if needed.

        Raises:
            StorageUnavailableError: If the backend cannot be reached.
        """

    @abstractmethod
    async def store(self, name: str, version: str, data: bytes) -> str:
        """Write ``data`` under the key for ``(name, version)``.

        Returns:
            The location token (backend key) the archive was written to.

        Raises:
            StorageUnavailableError: If the backend cannot be reached.
            WriteFailedError: If the write did not complete.
        """

    @abstractmethod
    async def exists(self, name: str, version: str) -> bool:
        """Return whether a blob is stored for ``(name, version)``.

        Never raises for a missing blob. Ambiguous backend answers are
        logged and reported as ``False``.
        """

    @abstractmethod
    async def read(self, name: str, version: str) -> bytes:
        """Return the stored bytes.

        Raises:
            BlobNotFoundError: If nothing is stored under the key.
            StorageUnavailableError: On backend failure.
        """

    @abstractmethod
    async def size(self, name: str, version: str) -> int:
        """Return the stored byte length without reading the blob."""

    @abstractmethod
    def stream(
        self, name: str, version: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Yield the stored bytes in chunks."""

    def download_url(self, name: str, version: str) -> str | None:
        """Return a direct link to the blob, if the backend exposes one."""
        return None
