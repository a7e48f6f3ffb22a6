# SPDX-License-Identifier: MIT
"""API token authentication for cargo clients."""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..db.models import APIToken
from ..middleware.errors import ForbiddenError, UnauthorizedError

DEFAULT_SCOPES = ("publish", "yank")


@dataclass
class AuthenticatedUser:
    """The principal behind an authenticated request."""

    user_id: str
    scopes: list[str]

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes or "*" in self.scopes


def hash_token(token: str) -> str:
    """Hash a token for comparison with stored hash."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_api_token(prefix: str = "crg_") -> tuple[str, str]:
    """Generate a new API token.

    Returns:
        Tuple of (token, token_hash). Only the hash is ever stored; the
        plaintext is shown to the user once.
    """
    token = f"{prefix}{secrets.token_urlsafe(32)}"
    return token, hash_token(token)


def parse_authorization_header(auth_header: str | None) -> str | None:
    """Extract the token from an Authorization header.

    Supports ``Bearer <token>``, ``Token <token>`` and the bare token that
    cargo sends.
    """
    if not auth_header:
        return None

    auth_header = auth_header.strip()
    scheme, _, rest = auth_header.partition(" ")
    if rest:
        if scheme.lower() in ("bearer", "token"):
            return rest.strip() or None
        return None
    return auth_header or None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=UTC)


async def issue_api_token(
    session: AsyncSession,
    user_id: str,
    name: str | None = None,
    scopes: list[str] | None = None,
    prefix: str = "crg_",
    expires_at: datetime | None = None,
) -> str:
    """Create and persist a token for ``user_id`` and return its plaintext."""
    token, token_hash = generate_api_token(prefix)
    session.add(
        APIToken(
            token_hash=token_hash,
            user_id=user_id,
            name=name,
            scopes=",".join(scopes or DEFAULT_SCOPES),
            expires_at=expires_at,
        )
    )
    await session.commit()
    return token


async def validate_api_token(token: str, session: AsyncSession) -> AuthenticatedUser | None:
    """Validate an API token against the database.

    Returns:
        The authenticated user, or None for unknown, revoked or expired tokens.
    """
    result = await session.execute(
        select(APIToken).where(
            APIToken.token_hash == hash_token(token),
            APIToken.revoked == False,  # noqa: E712
        )
    )
    db_token = result.scalar_one_or_none()
    if db_token is None:
        return None

    now = datetime.now(UTC)
    if db_token.expires_at and _as_utc(db_token.expires_at) < now:
        return None

    db_token.last_used_at = now
    await session.commit()

    return AuthenticatedUser(
        user_id=db_token.user_id,
        scopes=[s.strip() for s in db_token.scopes.split(",") if s.strip()],
    )


async def get_current_user(
    session: Annotated[AsyncSession, Depends(get_session)],
    authorization: Annotated[str | None, Header()] = None,
) -> AuthenticatedUser:
    """FastAPI dependency resolving the authenticated principal.

    Raises:
        UnauthorizedError: If no valid token is provided
    """
    token = parse_authorization_header(authorization)
    if token is None:
        raise UnauthorizedError("Authentication required: pass an API token")

    user = await validate_api_token(token, session)
    if user is None:
        raise UnauthorizedError("Invalid or expired API token")
    return user


def require_scope(required_scope: str):
    """Create a dependency that requires a specific token scope.

    Usage:
        @router.put("/crates/new")
        async def publish(user: Annotated[AuthenticatedUser, Depends(require_scope("publish"))]):
            ...
    """

    async def check_scope(
        user: Annotated[AuthenticatedUser, Depends(get_current_user)],
    ) -> AuthenticatedUser:
        if not user.has_scope(required_scope):
            raise ForbiddenError(f"Token is missing the required scope: {required_scope}")
        return user

    return check_scope
