# SPDX-License-Identifier: MIT
"""Error handling middleware and exception classes."""

import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..db.catalog import CatalogConflictError, CatalogError
from ..storage import BlobNotFoundError, StorageError, WriteFailedError

logger = logging.getLogger(__name__)


class ErrorCode:
    """Standard API error codes."""

    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    VERSION_EXISTS = "VERSION_EXISTS"
    CONFLICT = "CONFLICT"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    WRITE_FAILED = "WRITE_FAILED"
    CATALOG_ERROR = "CATALOG_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_STATUS_CODES = {
    ErrorCode.MALFORMED_REQUEST: 400,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.VERSION_EXISTS: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.PACKAGE_NOT_FOUND: 404,
    ErrorCode.VERSION_NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.STORAGE_UNAVAILABLE: 503,
    ErrorCode.WRITE_FAILED: 503,
    ErrorCode.CATALOG_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


@dataclass
class ErrorDetail:
    """Detailed error information for a specific field or issue."""

    field: str
    error: str
    value: Any = None


@dataclass
class APIError(Exception):
    """Base API exception with structured error response.

    Attributes:
        code: Error code from ErrorCode class
        message: Human-readable error message
        details: List of detailed error information
    """

    code: str
    message: str
    details: list[ErrorDetail] = field(default_factory=list)

    def __str__(self) -> str:
        return self.message

    @property
    def status_code(self) -> int:
        """Get HTTP status code for this error."""
        return ERROR_STATUS_CODES.get(self.code, 500)

    def to_response(self) -> dict:
        """Convert to API response format.

        ``errors[].detail`` is what cargo prints to the user; ``error``
        carries the machine-readable code.
        """
        response: dict[str, Any] = {
            "errors": [{"detail": self.message}],
            "error": {
                "code": self.code,
                "message": self.message,
            },
        }
        if self.details:
            response["error"]["details"] = [
                {"field": d.field, "error": d.error} for d in self.details
            ]
        return response


class MalformedRequestError(APIError):
    """Publish body could not be parsed or failed validation."""

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(
            code=ErrorCode.MALFORMED_REQUEST,
            message=message,
            details=details or [],
        )


class PayloadTooLargeError(APIError):
    """Uploaded archive exceeds the configured size limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            code=ErrorCode.PAYLOAD_TOO_LARGE,
            message=f"Upload of {size} bytes exceeds the maximum of {limit} bytes",
        )
        self.size = size
        self.limit = limit


class VersionExistsError(APIError):
    """Version already exists (immutability violation)."""

    def __init__(self, package_name: str, version: str):
        super().__init__(
            code=ErrorCode.VERSION_EXISTS,
            message=f"Crate '{package_name}' version '{version}' is already uploaded",
        )


class PackageNotFoundError(APIError):
    """Crate does not exist."""

    def __init__(self, package_name: str):
        super().__init__(
            code=ErrorCode.PACKAGE_NOT_FOUND,
            message=f"Crate '{package_name}' not found",
        )


class VersionNotFoundError(APIError):
    """Version does not exist."""

    def __init__(self, package_name: str, version: str):
        super().__init__(
            code=ErrorCode.VERSION_NOT_FOUND,
            message=f"Crate '{package_name}' version '{version}' not found",
        )


class UnauthorizedError(APIError):
    """Authentication required."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=message,
        )


class ForbiddenError(APIError):
    """Not authorized for this operation."""

    def __init__(self, message: str = "Not authorized for this operation"):
        super().__init__(
            code=ErrorCode.FORBIDDEN,
            message=message,
        )


class StorageFailureError(APIError):
    """Blob backend failed; the client may retry the whole request."""

    def __init__(self, message: str, write_failed: bool = False):
        super().__init__(
            code=ErrorCode.WRITE_FAILED if write_failed else ErrorCode.STORAGE_UNAVAILABLE,
            message=message,
        )


class CatalogFailureError(APIError):
    """Catalog database failed for a reason other than a uniqueness conflict."""

    def __init__(self, message: str = "Catalog operation failed"):
        super().__init__(
            code=ErrorCode.CATALOG_ERROR,
            message=message,
        )


class RateLimitedError(APIError):
    """Too many requests."""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            code=ErrorCode.RATE_LIMITED,
            message=f"Rate limit exceeded. Retry after {retry_after} seconds",
        )
        self.retry_after = retry_after


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions."""
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(),
        headers=headers,
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Map blob store failures that escaped a route to an API error."""
    if isinstance(exc, BlobNotFoundError):
        error: APIError = VersionNotFoundError(exc.name, exc.version)
    else:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        error = StorageFailureError(str(exc), write_failed=isinstance(exc, WriteFailedError))
    return JSONResponse(status_code=error.status_code, content=error.to_response())


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    """Map catalog failures that escaped a route to an API error."""
    if isinstance(exc, CatalogConflictError):
        error: APIError = APIError(code=ErrorCode.CONFLICT, message=str(exc))
    else:
        logger.error("Catalog failure on %s %s: %s", request.method, request.url.path, exc)
        error = CatalogFailureError()
    return JSONResponse(status_code=error.status_code, content=error.to_response())


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=APIError(
            code=ErrorCode.INTERNAL_ERROR,
            message="An unexpected error occurred",
        ).to_response(),
    )


def add_error_handlers(app: FastAPI, catch_all: bool = True) -> None:
    """Register error handlers with the FastAPI application."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(CatalogError, catalog_error_handler)
    if catch_all:
        app.add_exception_handler(Exception, generic_error_handler)
