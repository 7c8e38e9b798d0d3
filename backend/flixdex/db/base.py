"""Declarative base and column defaults shared by the catalog models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utc_now() -> datetime:
    """Current time as an aware UTC datetime.

    SQLite drops the offset on the way back, so values read from the
    database are naive UTC.
    """
    return datetime.now(timezone.utc)


def new_id() -> str:
    """String UUID primary key for catalog rows."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for Flixdex catalog models."""

    pass
