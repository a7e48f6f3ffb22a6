# SPDX-License-Identifier: MIT
"""Per-client token bucket rate limiting."""

import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from .errors import RateLimitedError

EXEMPT_PATHS = frozenset({"/health", "/config.json"})


@dataclass
class Bucket:
    """Remaining tokens for one client."""

    tokens: float
    last_refill: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Token bucket rate limiting with burst support.

    Every response carries ``X-RateLimit-*`` headers; rejected requests get
    a 429 in the registry error format plus ``Retry-After``.
    """

    def __init__(
        self,
        app: Callable,
        requests_per_minute: int = 100,
        burst_size: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.refill_rate = requests_per_minute / 60.0
        self._clock = clock
        self._buckets: dict[str, Bucket] = defaultdict(
            lambda: Bucket(tokens=burst_size, last_refill=self._clock())
        )

    @staticmethod
    def client_id(request: Request) -> str:
        """Identify the caller, honoring ``X-Forwarded-For`` behind a proxy."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def take(self, client: str) -> tuple[bool, int, int]:
        """Consume one token for ``client``.

        Returns:
            Tuple of (allowed, remaining, reset_seconds)
        """
        now = self._clock()
        bucket = self._buckets[client]
        bucket.tokens = min(
            self.burst_size, bucket.tokens + (now - bucket.last_refill) * self.refill_rate
        )
        bucket.last_refill = now

        if bucket.tokens >= 1:
            bucket.tokens -= 1
            return True, int(bucket.tokens), 60

        return False, 0, int((1 - bucket.tokens) / self.refill_rate) + 1

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        allowed, remaining, reset = self.take(self.client_id(request))
        headers = {
            "X-RateLimit-Limit": str(self.requests_per_minute),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset),
        }

        if not allowed:
            error = RateLimitedError(retry_after=reset)
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response(),
                headers={**headers, "Retry-After": str(reset)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
