"""Database package for Flixdex."""

from flixdex.db.base import Base
from flixdex.db.session import async_session_maker, engine, get_db

__all__ = [
    "Base",
    "async_session_maker",
    "engine",
    "get_db",
]
