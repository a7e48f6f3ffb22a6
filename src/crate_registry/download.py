# SPDX-License-Identifier: MIT
"""Download pipeline: resolve a crate version and stream its archive."""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from .db import Catalog, CatalogError
from .middleware.errors import VersionNotFoundError
from .models import is_valid_crate_name
from .models.publish import VERSION_PATTERN
from .storage import BlobStore, crate_filename

logger = logging.getLogger(__name__)

CRATE_MEDIA_TYPE = "application/x-tar"


@dataclass
class ResolvedDownload:
    """A crate version whose archive is known to be stored.

    Catalog fields are ``None`` when the bookkeeping lookup failed or found
    no row; the download proceeds regardless.
    """

    name: str
    version: str
    package_id: str | None = None
    checksum: str | None = None

    @property
    def filename(self) -> str:
        return crate_filename(self.name, self.version)

    def headers(self, attachment: bool = True) -> dict[str, str]:
        headers = {}
        if attachment:
            headers["Content-Disposition"] = f'attachment; filename="{self.filename}"'
        if self.checksum:
            headers["X-Checksum-SHA256"] = self.checksum
        return headers


class DownloadPipeline:
    """Resolves downloads against the blob store and counts them in the catalog.

    With ``redirect`` set, clients are sent to the backend's direct link
    instead of having the bytes proxied, when the backend has one.
    """

    def __init__(self, catalog: Catalog, blob_store: BlobStore, redirect: bool = False):
        self.catalog = catalog
        self.blob_store = blob_store
        self.redirect = redirect

    async def resolve(self, name: str, version: str) -> ResolvedDownload:
        """Resolve ``(name, version)`` to a stored archive.

        Existence is decided by the blob store alone; catalog lookups only
        enrich the result.

        Raises:
            VersionNotFoundError: If no archive is stored for the pair.
        """
        if not is_valid_crate_name(name) or not VERSION_PATTERN.fullmatch(version):
            raise VersionNotFoundError(name, version)
        if not await self.blob_store.exists(name, version):
            raise VersionNotFoundError(name, version)

        resolved = ResolvedDownload(name=name, version=version)
        try:
            package = await self.catalog.find_package_by_name(name)
            if package is not None:
                resolved.package_id = package.id
            row = await self.catalog.get_version(name, version)
            if row is not None:
                resolved.checksum = row.checksum
        except CatalogError as e:
            logger.warning("Catalog lookup failed for download of %s %s: %s", name, version, e)
        return resolved

    def redirect_url(self, resolved: ResolvedDownload) -> str | None:
        """Return the direct link to serve instead of the bytes, if any."""
        if not self.redirect:
            return None
        return self.blob_store.download_url(resolved.name, resolved.version)

    def stream(self, resolved: ResolvedDownload) -> AsyncIterator[bytes]:
        """Return the archive bytes as an async chunk iterator."""
        return self.blob_store.stream(resolved.name, resolved.version)

    async def record_download(self, resolved: ResolvedDownload) -> None:
        """Bump the download counter; failures are logged, never raised."""
        logger.info("Downloaded %s %s", resolved.name, resolved.version)
        if resolved.package_id is None:
            return
        try:
            await self.catalog.increment_downloads(resolved.package_id)
        except Exception as e:
            logger.warning(
                "Failed to record download of %s %s: %s", resolved.name, resolved.version, e
            )
