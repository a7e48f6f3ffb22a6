# SPDX-License-Identifier: MIT
"""Crate download endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from ..dependencies import get_download_pipeline
from ..download import CRATE_MEDIA_TYPE, DownloadPipeline

router = APIRouter()


@router.get("/crates/{name}/{version}/download")
async def download_crate(
    name: str,
    version: str,
    pipeline: Annotated[DownloadPipeline, Depends(get_download_pipeline)],
) -> Response:
    """Download a crate archive.

    Streams the archive as an attachment named ``{name}-{version}.crate``
    with its SHA256 checksum in X-Checksum-SHA256 when known. Yanked
    versions remain downloadable. When download redirects are enabled and
    the storage backend has a direct link, responds with a 302 to it.

    The download count is incremented after the response is sent; a
    failure to count never fails the download.
    """
    resolved = await pipeline.resolve(name, version)
    background = BackgroundTask(pipeline.record_download, resolved)

    if url := pipeline.redirect_url(resolved):
        return RedirectResponse(
            url,
            status_code=302,
            headers=resolved.headers(attachment=False),
            background=background,
        )

    return StreamingResponse(
        pipeline.stream(resolved),
        media_type=CRATE_MEDIA_TYPE,
        headers=resolved.headers(),
        background=background,
    )
