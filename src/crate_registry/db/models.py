# SPDX-License-Identifier: MIT
"""SQLAlchemy models for the crate catalog."""

import json
import uuid
from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def _load_json(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        return default


class Package(Base):
    """A crate: the unit of ownership, identified by its exact name."""

    __tablename__ = "crates"
    __table_args__ = (Index("ix_crates_downloads", "downloads"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    homepage: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    documentation: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    repository: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    license: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    keywords: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list
    categories: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    downloads: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    versions: Mapped[list["Version"]] = relationship(
        "Version", back_populates="package", cascade="all, delete-orphan"
    )

    @property
    def keyword_list(self) -> list[str]:
        return _load_json(self.keywords, [])

    @property
    def category_list(self) -> list[str]:
        return _load_json(self.categories, [])

    def __repr__(self) -> str:
        return f"<Package(name={self.name!r}, owner_id={self.owner_id!r})>"


class Version(Base):
    """One immutable published revision of a crate.

    Rows are never deleted, only yanked.
    """

    __tablename__ = "crate_versions"
    __table_args__ = (UniqueConstraint("crate_id", "version", name="uq_crate_version"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    crate_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("crates.id", ondelete="CASCADE"), index=True
    )
    version: Mapped[str] = mapped_column(String(100))
    checksum: Mapped[str] = mapped_column(String(64))
    file_size: Mapped[int] = mapped_column(Integer)
    dependencies: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list
    features: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON object
    yanked: Mapped[bool] = mapped_column(Boolean, default=False)
    license: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    readme: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    package: Mapped["Package"] = relationship("Package", back_populates="versions")

    @property
    def dependency_list(self) -> list[dict]:
        return _load_json(self.dependencies, [])

    @property
    def feature_map(self) -> dict[str, list[str]]:
        return _load_json(self.features, {})

    def __repr__(self) -> str:
        return f"<Version(crate_id={self.crate_id!r}, version={self.version!r})>"


class APIToken(Base):
    """API token used by cargo to authenticate publishes and yanks.

    Only the SHA-256 hash of the token is stored.
    """

    __tablename__ = "api_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    scopes: Mapped[str] = mapped_column(String(255), default="publish,yank")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revoked: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"<APIToken(user_id={self.user_id!r}, name={self.name!r})>"
