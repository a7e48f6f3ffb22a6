# SPDX-License-Identifier: MIT
"""Local filesystem blob store."""

import asyncio
import logging
import os
import uuid
from collections.abc import AsyncIterator
from pathlib import Path

from .base import (
    CRATES_DIR,
    DEFAULT_CHUNK_SIZE,
    BlobNotFoundError,
    BlobStore,
    StorageUnavailableError,
    WriteFailedError,
    blob_key,
)

logger = logging.getLogger(__name__)


class LocalBlobStore(BlobStore):
    """Stores archives under ``{root}/crates/{name}/{name}-{version}.crate``.

    Writes go to a temporary file in the destination directory and are
    renamed into place, so readers see either nothing or the whole archive.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"<LocalBlobStore(root={str(self.root)!r})>"

    def path_for(self, name: str, version: str) -> Path:
        """Return the filesystem path of a crate archive."""
        return self.root / blob_key(name, version)

    async def check_connection(self) -> None:
        try:
            await asyncio.to_thread((self.root / CRATES_DIR).mkdir, parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Local storage root %s is not writable: %s", self.root, e)
            raise StorageUnavailableError(f"Cannot initialize storage at {self.root}: {e}") from e
        logger.info("Local storage initialized at %s", self.root)

    async def store(self, name: str, version: str, data: bytes) -> str:
        key = blob_key(name, version)
        await asyncio.to_thread(self._write, self.root / key, data)
        logger.debug("Stored %s (%d bytes)", key, len(data))
        return key

    def _write(self, path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create {path.parent}: {e}") from e

        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            with open(tmp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise WriteFailedError(f"Failed to write {path}: {e}") from e

    async def exists(self, name: str, version: str) -> bool:
        path = self.path_for(name, version)
        try:
            return await asyncio.to_thread(path.is_file)
        except OSError as e:
            logger.error("Could not check %s: %s", path, e)
            return False

    async def read(self, name: str, version: str) -> bytes:
        path = self.path_for(name, version)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise BlobNotFoundError(name, version) from e
        except OSError as e:
            raise StorageUnavailableError(f"Failed to read {path}: {e}") from e

    async def size(self, name: str, version: str) -> int:
        path = self.path_for(name, version)
        try:
            stat = await asyncio.to_thread(path.stat)
        except FileNotFoundError as e:
            raise BlobNotFoundError(name, version) from e
        except OSError as e:
            raise StorageUnavailableError(f"Failed to stat {path}: {e}") from e
        return stat.st_size

    async def stream(
        self, name: str, version: str, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        path = self.path_for(name, version)
        try:
            f = await asyncio.to_thread(open, path, "rb")
        except FileNotFoundError as e:
            raise BlobNotFoundError(name, version) from e
        except OSError as e:
            raise StorageUnavailableError(f"Failed to open {path}: {e}") from e

        try:
            while chunk := await asyncio.to_thread(f.read, chunk_size):
                yield chunk
        finally:
            f.close()
