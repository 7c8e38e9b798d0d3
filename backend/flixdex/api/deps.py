"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Header, HTTPException

from flixdex.core.logging import get_logger
from flixdex.core.security import (
    CurrentUser,
    InvalidTokenError,
    decode_session_token,
    extract_bearer_token,
)
from flixdex.workers.scan_runner import ScanRunner, get_scan_runner

logger = get_logger(__name__)


async def get_current_user(
    authorization: str | None = Header(None),
) -> CurrentUser:
    """Resolve the caller from the session bearer token.

    Raises:
        HTTPException: 401 if the header is missing or the token is invalid.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_session_token(token)
    except InvalidTokenError as e:
        logger.info("session_token_rejected", reason=str(e))
        raise HTTPException(
            status_code=401,
            detail="Invalid session token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_runner() -> ScanRunner:
    """Dependency for the process-wide scan runner."""
    return get_scan_runner()
