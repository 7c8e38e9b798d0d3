"""Session token verification.

Tokens are issued by the external auth service; this module only checks
the signature and extracts the user identity from the claims.
"""

from __future__ import annotations

from dataclasses import dataclass

import jwt

from flixdex.core.config import settings
from flixdex.core.logging import get_logger

logger = get_logger(__name__)


class InvalidTokenError(Exception):
    """Raised when a session token cannot be verified."""

    pass


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the authenticated caller."""

    id: str
    email: str | None = None


def decode_session_token(token: str) -> CurrentUser:
    """Verify a session JWT and return the user it identifies.

    Args:
        token: Encoded JWT (without the ``Bearer`` prefix).

    Returns:
        CurrentUser built from the ``sub`` and ``email`` claims.

    Raises:
        InvalidTokenError: If the token is malformed, expired, has a bad
            signature, or carries no subject.
    """
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=settings.jwt_algorithms,
            options={"require": ["sub"]},
        )
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e)) from e

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise InvalidTokenError("Token subject missing")

    return CurrentUser(id=subject, email=claims.get("email"))


def extract_bearer_token(authorization: str | None) -> str | None:
    """Pull the token out of an ``Authorization: Bearer ...`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
