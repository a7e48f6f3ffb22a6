# SPDX-License-Identifier: MIT
"""Authentication handlers."""

from .tokens import (
    DEFAULT_SCOPES,
    AuthenticatedUser,
    generate_api_token,
    get_current_user,
    hash_token,
    issue_api_token,
    parse_authorization_header,
    require_scope,
    validate_api_token,
)

__all__ = [
    "DEFAULT_SCOPES",
    "AuthenticatedUser",
    "generate_api_token",
    "get_current_user",
    "hash_token",
    "issue_api_token",
    "parse_authorization_header",
    "require_scope",
    "validate_api_token",
]
