# SPDX-License-Identifier: MIT
"""Pydantic models for the cargo publish metadata document."""

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Crate names follow cargo's rules: ASCII alphanumerics, '-' and '_',
# starting with a letter.
CRATE_NAME_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9_-]{0,63}")

SEMVER_PATTERN = re.compile(
    r"(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
)

VERSION_PATTERN = re.compile(r"[0-9A-Za-z][0-9A-Za-z.+\-]{0,99}")


def is_valid_crate_name(name: str) -> bool:
    """Check a crate name against cargo's naming rules."""
    return bool(CRATE_NAME_PATTERN.fullmatch(name))


def validate_semver(version: str) -> bool:
    """Validate that a version string follows semver format."""
    return bool(SEMVER_PATTERN.fullmatch(version))


class PublishDependency(BaseModel):
    """One entry of ``deps[]`` in the publish metadata."""

    model_config = ConfigDict(extra="ignore")

    name: str
    version_req: str
    features: list[str] = Field(default_factory=list)
    optional: bool = False
    default_features: bool = True
    target: str | None = None
    kind: Literal["normal", "dev", "build"] = "normal"
    registry: str | None = None
    explicit_name_in_toml: str | None = None


class PublishMetadata(BaseModel):
    """The JSON metadata document cargo sends alongside the archive.

    Only ``name`` and ``vers`` are required; everything else defaults to
    empty so older or minimal clients are accepted.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    vers: str
    deps: list[PublishDependency] = Field(default_factory=list)
    features: dict[str, list[str]] = Field(default_factory=dict)
    authors: list[str] = Field(default_factory=list)
    description: str | None = None
    homepage: str | None = None
    documentation: str | None = None
    readme: str | None = None
    readme_file: str | None = None
    keywords: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    license: str | None = None
    license_file: str | None = None
    repository: str | None = None
    badges: dict[str, Any] = Field(default_factory=dict)
    links: str | None = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not is_valid_crate_name(value):
            raise ValueError(
                "must start with a letter and contain only letters, digits, '-' or '_' "
                "(at most 64 characters)"
            )
        return value

    @field_validator("vers")
    @classmethod
    def _check_vers(cls, value: str) -> str:
        if not VERSION_PATTERN.fullmatch(value):
            raise ValueError("must be a non-empty version string without path separators")
        return value

    @field_validator("keywords", "categories")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        # Ordered set semantics: keep first occurrence
        return list(dict.fromkeys(value))
