# SPDX-License-Identifier: MIT
"""Pydantic models for registry API responses."""

from datetime import datetime

from pydantic import BaseModel, Field


class PublishWarnings(BaseModel):
    """Non-fatal notes about an accepted publish."""

    invalid_categories: list[str] = Field(default_factory=list)
    invalid_badges: list[str] = Field(default_factory=list)
    other: list[str] = Field(default_factory=list)


class PublishResponse(BaseModel):
    """Response for a successful publish."""

    warnings: PublishWarnings = Field(default_factory=PublishWarnings)


class VersionSummary(BaseModel):
    """One published version as listed by the API."""

    num: str
    dl_path: str
    checksum: str
    crate_size: int
    yanked: bool
    license: str | None = None
    features: dict[str, list[str]] = Field(default_factory=dict)
    created_at: datetime


class CrateSummary(BaseModel):
    """Crate information shared by search and detail responses."""

    id: str
    name: str
    description: str | None = None
    homepage: str | None = None
    documentation: str | None = None
    repository: str | None = None
    license: str | None = None
    keywords: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    downloads: int
    max_version: str | None = Field(
        default=None, description="Newest non-yanked version, if any"
    )
    created_at: datetime
    updated_at: datetime
    exact_match: bool = False


class SearchMeta(BaseModel):
    """Search metadata."""

    total: int = Field(ge=0, description="Total number of matching crates")


class SearchResponse(BaseModel):
    """Response for the search endpoint."""

    crates: list[CrateSummary]
    meta: SearchMeta


class CrateDetailResponse(BaseModel):
    """Response for the crate detail endpoint."""

    crate: CrateSummary
    versions: list[VersionSummary]


class VersionListResponse(BaseModel):
    """Response for the version listing endpoint."""

    versions: list[VersionSummary]


class OkResponse(BaseModel):
    """Acknowledgement used by yank and unyank."""

    ok: bool = True


class HealthResponse(BaseModel):
    """Liveness report with catalog totals."""

    status: str
    version: str
    storage: str
    crates: int | None = None
    versions: int | None = None
    downloads: int | None = None
