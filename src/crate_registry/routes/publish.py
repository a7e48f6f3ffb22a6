# SPDX-License-Identifier: MIT
"""Publish, yank and unyank endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from ..auth import AuthenticatedUser, require_scope
from ..db import Catalog, CatalogError, get_catalog
from ..dependencies import get_publish_pipeline
from ..middleware.errors import (
    CatalogFailureError,
    ErrorDetail,
    ForbiddenError,
    MalformedRequestError,
    PackageNotFoundError,
    PayloadTooLargeError,
    VersionNotFoundError,
)
from ..models import OkResponse, PublishResponse
from ..publish import PublishPipeline, parse_publish_body

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_part(value) -> bytes | str | None:
    if value is None:
        return None
    if isinstance(value, UploadFile):
        return await value.read()
    return value


@router.api_route("/crates/new", methods=["PUT", "POST"], response_model=PublishResponse)
async def publish_crate(
    request: Request,
    user: Annotated[AuthenticatedUser, Depends(require_scope("publish"))],
    pipeline: Annotated[PublishPipeline, Depends(get_publish_pipeline)],
) -> PublishResponse:
    """Publish a new crate version.

    Expects a multipart body with a binary ``crate`` part and a JSON
    ``metadata`` part. Requires a token with the ``publish`` scope; the
    first publisher of a name becomes its owner.
    """
    try:
        form = await request.form()
    except (HTTPException, MultiPartException) as e:
        raise MalformedRequestError(f"Could not parse multipart body: {e}") from e

    try:
        upload = form.get("crate")
        if isinstance(upload, UploadFile) and (upload.size or 0) > pipeline.max_upload_size:
            raise PayloadTooLargeError(upload.size, pipeline.max_upload_size)
        if upload is not None and not isinstance(upload, UploadFile):
            # Text fields are charset-decoded by the form parser, so the
            # original archive bytes cannot be recovered from them
            raise MalformedRequestError(
                "The crate part must be sent as a file",
                details=[ErrorDetail(field="crate", error="Expected a file part")],
            )
        crate = await _read_part(upload)
        metadata = await _read_part(form.get("metadata"))
    finally:
        await form.close()

    parsed = parse_publish_body(crate, metadata)
    result = await pipeline.publish(parsed, crate, user.user_id)
    return result.to_response()


async def _set_yanked(
    catalog: Catalog, user: AuthenticatedUser, name: str, version: str, yanked: bool
) -> OkResponse:
    try:
        package = await catalog.find_package_by_name(name)
        if package is None:
            raise PackageNotFoundError(name)
        if package.owner_id != user.user_id:
            logger.info("Rejected yank change on %s %s by %s", name, version, user.user_id)
            raise ForbiddenError(f"You are not an owner of crate '{name}'")
        if not await catalog.set_yanked(package.id, version, yanked):
            raise VersionNotFoundError(name, version)
    except CatalogError as e:
        raise CatalogFailureError(f"Failed to update {name} {version}: {e}") from e

    logger.info("%s %s %s by %s", "Yanked" if yanked else "Unyanked", name, version, user.user_id)
    return OkResponse()


@router.delete("/crates/{name}/{version}/yank", response_model=OkResponse)
async def yank_version(
    name: str,
    version: str,
    user: Annotated[AuthenticatedUser, Depends(require_scope("yank"))],
    catalog: Annotated[Catalog, Depends(get_catalog)],
) -> OkResponse:
    """Yank a version.

    The version stays downloadable by exact version but no longer counts
    as the crate's latest.
    """
    return await _set_yanked(catalog, user, name, version, True)


@router.put("/crates/{name}/{version}/unyank", response_model=OkResponse)
async def unyank_version(
    name: str,
    version: str,
    user: Annotated[AuthenticatedUser, Depends(require_scope("yank"))],
    catalog: Annotated[Catalog, Depends(get_catalog)],
) -> OkResponse:
    """Restore a yanked version."""
    return await _set_yanked(catalog, user, name, version, False)
