# SPDX-License-Identifier: MIT
"""Publish pipeline: accept an upload, store its archive, register it.

The blob store and the catalog share no transaction, so consistency is
directional: a visible version row always has a stored, checksum-matching
archive behind it, while a stored archive may exist with no row (an orphan
left by a failed insert, never referenced and never cleaned up). A crate
row created by a publish whose blob write then fails also stays behind,
owned by that publisher and with no versions.

Ordering per request:

1. parse and validate the two multipart parts
2. enforce the upload size limit and compute the digest
3. resolve or create the crate and check ownership
4. under a per-key lock: reject an existing version, write the blob,
   insert the version row
"""

import asyncio
import json
import logging
import weakref
from dataclasses import dataclass, field

from pydantic import ValidationError

from .checksum import compute_sha256
from .db import Catalog, CatalogConflictError, CatalogError
from .db.models import Package, Version
from .middleware.errors import (
    CatalogFailureError,
    ErrorDetail,
    ForbiddenError,
    MalformedRequestError,
    PayloadTooLargeError,
    StorageFailureError,
    VersionExistsError,
)
from .models import PublishMetadata, PublishResponse, PublishWarnings, validate_semver
from .storage import BlobStore, StorageError, WriteFailedError, blob_key

logger = logging.getLogger(__name__)


def parse_publish_body(crate: bytes | None, metadata: str | bytes | None) -> PublishMetadata:
    """Validate the ``crate`` and ``metadata`` parts of a publish request.

    Raises:
        MalformedRequestError: If a part is missing, the metadata is not JSON,
            or the document fails schema validation.
    """
    missing = [
        part for part, value in (("crate", crate), ("metadata", metadata)) if value is None
    ]
    if missing:
        raise MalformedRequestError(
            f"Missing multipart field(s): {', '.join(missing)}",
            details=[ErrorDetail(field=part, error="Required part missing") for part in missing],
        )

    try:
        document = json.loads(metadata)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedRequestError(f"Metadata is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise MalformedRequestError("Metadata must be a JSON object")

    try:
        return PublishMetadata.model_validate(document)
    except ValidationError as e:
        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in err["loc"]) or "metadata",
                error=err["msg"],
            )
            for err in e.errors()
        ]
        fields = ", ".join(d.field for d in details)
        raise MalformedRequestError(f"Invalid publish metadata: {fields}", details=details) from e


class _KeyLocks:
    """Per-key asyncio locks, dropped once no request holds them."""

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


# Shared by every pipeline instance in the process
_publish_locks = _KeyLocks()


@dataclass
class PublishResult:
    """Outcome of an accepted publish."""

    package: Package
    version: Version
    location: str
    warnings: PublishWarnings = field(default_factory=PublishWarnings)

    def to_response(self) -> PublishResponse:
        return PublishResponse(warnings=self.warnings)


class PublishPipeline:
    """Orchestrates checksum, blob write and catalog registration."""

    def __init__(self, catalog: Catalog, blob_store: BlobStore, max_upload_size: int):
        self.catalog = catalog
        self.blob_store = blob_store
        self.max_upload_size = max_upload_size

    async def publish(self, metadata: PublishMetadata, data: bytes, owner_id: str) -> PublishResult:
        """Publish one crate version on behalf of ``owner_id``.

        Raises:
            PayloadTooLargeError: If ``data`` exceeds the upload limit.
            ForbiddenError: If the crate belongs to another principal.
            VersionExistsError: If the version is already registered.
            StorageFailureError: If the archive could not be written.
            CatalogFailureError: If the catalog failed for another reason.
        """
        if len(data) > self.max_upload_size:
            raise PayloadTooLargeError(len(data), self.max_upload_size)

        checksum = compute_sha256(data)
        package, created = await self._resolve_package(metadata, owner_id)

        key = blob_key(metadata.name, metadata.vers)
        async with _publish_locks.get(key):
            if await self._version_exists(metadata.name, metadata.vers):
                raise VersionExistsError(metadata.name, metadata.vers)

            try:
                location = await self.blob_store.store(metadata.name, metadata.vers, data)
            except StorageError as e:
                logger.error("Blob write failed for %s %s: %s", metadata.name, metadata.vers, e)
                if created:
                    logger.warning(
                        "Crate %s was registered by this publish and has no versions",
                        metadata.name,
                    )
                raise StorageFailureError(
                    f"Failed to store crate archive: {e}",
                    write_failed=isinstance(e, WriteFailedError),
                ) from e

            try:
                version = await self.catalog.create_version(
                    package.id, metadata, checksum, len(data)
                )
            except CatalogConflictError as e:
                logger.warning(
                    "Version %s %s registered concurrently; blob at %s left orphaned",
                    metadata.name,
                    metadata.vers,
                    location,
                )
                raise VersionExistsError(metadata.name, metadata.vers) from e
            except CatalogError as e:
                logger.warning(
                    "Catalog insert failed for %s %s; blob at %s left orphaned: %s",
                    metadata.name,
                    metadata.vers,
                    location,
                    e,
                )
                raise CatalogFailureError(f"Failed to register version: {e}") from e

        logger.info(
            "Published %s %s by %s (%d bytes, sha256 %s)",
            metadata.name,
            metadata.vers,
            owner_id,
            len(data),
            checksum,
        )
        return PublishResult(
            package=package,
            version=version,
            location=location,
            warnings=self._warnings(metadata),
        )

    async def _resolve_package(
        self, metadata: PublishMetadata, owner_id: str
    ) -> tuple[Package, bool]:
        """Find or create the crate, then check that ``owner_id`` owns it.

        Returns the crate and whether this call created it.
        """
        try:
            package = await self.catalog.find_package_by_name(metadata.name)
            if package is None:
                try:
                    package = await self.catalog.create_package(metadata, owner_id)
                    logger.info("Created crate %s owned by %s", metadata.name, owner_id)
                    return package, True
                except CatalogConflictError:
                    # Lost the first-publish race; the winner owns the name now
                    package = await self.catalog.find_package_by_name(metadata.name)
                    if package is None:
                        raise
        except CatalogError as e:
            raise CatalogFailureError(f"Could not resolve crate {metadata.name!r}: {e}") from e

        if package.owner_id != owner_id:
            logger.info(
                "Rejected publish of %s %s by %s: crate is owned by %s",
                metadata.name,
                metadata.vers,
                owner_id,
                package.owner_id,
            )
            raise ForbiddenError(f"You are not an owner of crate '{metadata.name}'")
        return package, False

    async def _version_exists(self, name: str, version: str) -> bool:
        try:
            return await self.catalog.get_version(name, version) is not None
        except CatalogError as e:
            raise CatalogFailureError(f"Could not check version {name} {version}: {e}") from e

    @staticmethod
    def _warnings(metadata: PublishMetadata) -> PublishWarnings:
        warnings = PublishWarnings()
        if not validate_semver(metadata.vers):
            warnings.other.append(
                f"version '{metadata.vers}' is not a valid semantic version"
            )
        return warnings
