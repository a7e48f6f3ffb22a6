# SPDX-License-Identifier: MIT
"""API middleware components."""

from .errors import APIError, add_error_handlers
from .ratelimit import RateLimitMiddleware

__all__ = ["APIError", "add_error_handlers", "RateLimitMiddleware"]
