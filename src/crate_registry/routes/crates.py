# SPDX-License-Identifier: MIT
"""Crate search and metadata endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..config import APIConfig
from ..db import Catalog, CatalogError, get_catalog, latest_version
from ..db.models import Package, Version
from ..dependencies import get_config
from ..middleware.errors import CatalogFailureError, PackageNotFoundError
from ..models import (
    CrateDetailResponse,
    CrateSummary,
    SearchMeta,
    SearchResponse,
    VersionListResponse,
    VersionSummary,
)

router = APIRouter()


def _download_path(config: APIConfig, name: str, version: str) -> str:
    return f"{config.api_prefix}/crates/{name}/{version}/download"


def _version_summary(config: APIConfig, name: str, version: Version) -> VersionSummary:
    return VersionSummary(
        num=version.version,
        dl_path=_download_path(config, name, version.version),
        checksum=version.checksum,
        crate_size=version.file_size,
        yanked=version.yanked,
        license=version.license,
        features=version.feature_map,
        created_at=version.created_at,
    )


def _crate_summary(
    package: Package, versions: list[Version], query: str | None = None
) -> CrateSummary:
    return CrateSummary(
        id=package.name,
        name=package.name,
        description=package.description,
        homepage=package.homepage,
        documentation=package.documentation,
        repository=package.repository,
        license=package.license,
        keywords=package.keyword_list,
        categories=package.category_list,
        downloads=package.downloads,
        max_version=latest_version(versions),
        created_at=package.created_at,
        updated_at=package.updated_at,
        exact_match=query is not None and package.name == query,
    )


async def _load_package(catalog: Catalog, name: str) -> Package:
    try:
        package = await catalog.get_package_with_versions(name)
    except CatalogError as e:
        raise CatalogFailureError(f"Failed to load crate {name!r}: {e}") from e
    if package is None:
        raise PackageNotFoundError(name)
    return package


def _newest_first(versions: list[Version]) -> list[Version]:
    return sorted(versions, key=lambda v: v.created_at, reverse=True)


@router.get("/crates", response_model=SearchResponse)
async def search_crates(
    catalog: Annotated[Catalog, Depends(get_catalog)],
    q: str = Query("", description="Substring matched against name and description"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(10, ge=1, le=100, description="Items per page"),
) -> SearchResponse:
    """Search crates.

    Results are ordered by downloads (most first), then name. The total
    counts every match, not just the returned page.
    """
    try:
        packages, total = await catalog.search(q, limit=per_page, offset=(page - 1) * per_page)
    except CatalogError as e:
        raise CatalogFailureError(f"Search failed: {e}") from e

    return SearchResponse(
        crates=[_crate_summary(p, p.versions, q) for p in packages],
        meta=SearchMeta(total=total),
    )


@router.get("/crates/{name}", response_model=CrateDetailResponse)
async def get_crate(
    name: str,
    catalog: Annotated[Catalog, Depends(get_catalog)],
    config: Annotated[APIConfig, Depends(get_config)],
) -> CrateDetailResponse:
    """Get crate metadata with every published version."""
    package = await _load_package(catalog, name)
    versions = _newest_first(package.versions)
    return CrateDetailResponse(
        crate=_crate_summary(package, versions),
        versions=[_version_summary(config, package.name, v) for v in versions],
    )


@router.get("/crates/{name}/versions", response_model=VersionListResponse)
async def list_crate_versions(
    name: str,
    catalog: Annotated[Catalog, Depends(get_catalog)],
    config: Annotated[APIConfig, Depends(get_config)],
) -> VersionListResponse:
    """List versions of a crate, newest first, yanked ones included."""
    package = await _load_package(catalog, name)
    return VersionListResponse(
        versions=[_version_summary(config, package.name, v) for v in _newest_first(package.versions)]
    )
