# SPDX-License-Identifier: MIT
"""Catalog operations over crates and crate versions.

Every operation opens its own short-lived session, so no caller ever holds
a transaction open across blob store I/O. Uniqueness of crate names and of
``(crate_id, version)`` is enforced by database constraints, not by
check-then-insert.
"""

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from .models import Package, Version, _utc_now

if TYPE_CHECKING:
    from ..models.publish import PublishMetadata


class CatalogError(Exception):
    """The catalog database failed."""


class CatalogConflictError(CatalogError):
    """A uniqueness constraint rejected the write."""


def latest_version(versions: Iterable[Version]) -> str | None:
    """Return the newest non-yanked version string, or None."""
    candidates = [v for v in versions if not v.yanked]
    if not candidates:
        return None
    return max(candidates, key=lambda v: v.created_at).version


def _search_filter(query: str):
    if not query:
        return None
    return or_(
        Package.name.icontains(query, autoescape=True),
        Package.description.icontains(query, autoescape=True),
    )


class Catalog:
    """Transactional bookkeeping of crate and version metadata."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_package_by_name(self, name: str) -> Package | None:
        """Exact, case-sensitive lookup of a crate by name."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Package).where(Package.name == name))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to look up crate {name!r}: {e}") from e

    async def get_package_with_versions(self, name: str) -> Package | None:
        """Look up a crate by name with its versions loaded."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Package)
                    .options(selectinload(Package.versions))
                    .where(Package.name == name)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to look up crate {name!r}: {e}") from e

    async def create_package(self, metadata: "PublishMetadata", owner_id: str) -> Package:
        """Insert a new crate owned by ``owner_id``.

        Raises:
            CatalogConflictError: If a crate with this name already exists,
                including one created concurrently by another request.
        """
        package = Package(
            name=metadata.name,
            description=metadata.description,
            homepage=metadata.homepage,
            documentation=metadata.documentation,
            repository=metadata.repository,
            license=metadata.license,
            keywords=json.dumps(metadata.keywords),
            categories=json.dumps(metadata.categories),
            owner_id=owner_id,
            downloads=0,
        )
        try:
            async with self._session_factory() as session:
                session.add(package)
                await session.commit()
        except IntegrityError as e:
            raise CatalogConflictError(f"Crate {metadata.name!r} already exists") from e
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to create crate {metadata.name!r}: {e}") from e
        return package

    async def create_version(
        self,
        package_id: str,
        metadata: "PublishMetadata",
        checksum: str,
        file_size: int,
    ) -> Version:
        """Insert a version row for an existing crate.

        Raises:
            CatalogConflictError: If ``(package_id, version)`` already exists.
        """
        version = Version(
            crate_id=package_id,
            version=metadata.vers,
            checksum=checksum,
            file_size=file_size,
            dependencies=json.dumps([d.model_dump() for d in metadata.deps]),
            features=json.dumps(metadata.features),
            yanked=False,
            license=metadata.license,
            readme=metadata.readme,
        )
        try:
            async with self._session_factory() as session:
                session.add(version)
                await session.execute(
                    update(Package)
                    .where(Package.id == package_id)
                    .values(updated_at=_utc_now())
                )
                await session.commit()
        except IntegrityError as e:
            raise CatalogConflictError(
                f"Version {metadata.vers!r} already exists for crate {package_id}"
            ) from e
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to create version {metadata.vers!r}: {e}") from e
        return version

    async def get_version(self, name: str, version: str) -> Version | None:
        """Look up one version of a crate by exact crate name and version string."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Version)
                    .join(Package, Version.crate_id == Package.id)
                    .where(Package.name == name, Version.version == version)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to look up {name} {version}: {e}") from e

    async def list_versions(self, package_id: str, include_yanked: bool = True) -> list[Version]:
        """List a crate's versions, newest first."""
        query = (
            select(Version)
            .where(Version.crate_id == package_id)
            .order_by(Version.created_at.desc())
        )
        if not include_yanked:
            query = query.where(Version.yanked == False)  # noqa: E712
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to list versions: {e}") from e

    async def set_yanked(self, package_id: str, version: str, yanked: bool) -> bool:
        """Set the yank flag on a version.

        Returns:
            False if the version does not exist.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Version)
                    .where(Version.crate_id == package_id, Version.version == version)
                    .values(yanked=yanked)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to update yank state of {version!r}: {e}") from e
        return result.rowcount > 0

    async def increment_downloads(self, package_id: str) -> None:
        """Atomically bump a crate's download counter in the database."""
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(Package)
                    .where(Package.id == package_id)
                    .values(downloads=Package.downloads + 1)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to increment downloads for {package_id}: {e}") from e

    async def search(self, query: str, limit: int, offset: int) -> tuple[list[Package], int]:
        """Substring search over crate name and description.

        Results are ordered by downloads descending, then name ascending.

        Returns:
            Tuple of (page of crates with versions loaded, total match count)
        """
        condition = _search_filter(query)

        count_query = select(func.count()).select_from(Package)
        page_query = (
            select(Package)
            .options(selectinload(Package.versions))
            .order_by(Package.downloads.desc(), Package.name.asc())
            .offset(offset)
            .limit(limit)
        )
        if condition is not None:
            count_query = count_query.where(condition)
            page_query = page_query.where(condition)

        try:
            async with self._session_factory() as session:
                total = (await session.execute(count_query)).scalar() or 0
                result = await session.execute(page_query)
                return list(result.scalars().all()), total
        except SQLAlchemyError as e:
            raise CatalogError(f"Search for {query!r} failed: {e}") from e

    async def stats(self) -> dict[str, int]:
        """Return crate, version and download totals."""
        try:
            async with self._session_factory() as session:
                crates = (await session.execute(select(func.count()).select_from(Package))).scalar()
                versions = (
                    await session.execute(select(func.count()).select_from(Version))
                ).scalar()
                downloads = (
                    await session.execute(select(func.coalesce(func.sum(Package.downloads), 0)))
                ).scalar()
        except SQLAlchemyError as e:
            raise CatalogError(f"Failed to compute catalog stats: {e}") from e
        return {
            "crates": crates or 0,
            "versions": versions or 0,
            "downloads": downloads or 0,
        }
