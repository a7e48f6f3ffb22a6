# SPDX-License-Identifier: MIT
"""Pydantic models for API requests and responses."""

from .publish import (
    PublishDependency,
    PublishMetadata,
    is_valid_crate_name,
    validate_semver,
)
from .responses import (
    CrateDetailResponse,
    CrateSummary,
    HealthResponse,
    OkResponse,
    PublishResponse,
    PublishWarnings,
    SearchMeta,
    SearchResponse,
    VersionListResponse,
    VersionSummary,
)

__all__ = [
    # Publish metadata
    "PublishDependency",
    "PublishMetadata",
    "is_valid_crate_name",
    "validate_semver",
    # Responses
    "CrateDetailResponse",
    "CrateSummary",
    "HealthResponse",
    "OkResponse",
    "PublishResponse",
    "PublishWarnings",
    "SearchMeta",
    "SearchResponse",
    "VersionListResponse",
    "VersionSummary",
]
