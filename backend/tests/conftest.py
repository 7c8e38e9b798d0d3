"""Pytest configuration and fixtures."""

import os
import tempfile
from pathlib import Path

import jwt
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Create a temporary directory for the application database
_test_tmp_dir = tempfile.mkdtemp(prefix="flixdex_test_")

TEST_JWT_SECRET = "test-secret-for-flixdex-session-tokens"

# Set config BEFORE importing app modules
os.environ["FLIXDEX_CONFIG_PATH"] = _test_tmp_dir
os.environ["FLIXDEX_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["FLIXDEX_GRAPH_REQUEST_DELAY"] = "0"

from flixdex.db import models  # noqa: E402,F401
from flixdex.db.base import Base  # noqa: E402


@pytest.fixture
async def db_engine(tmp_path: Path):
    """Create a file-backed test database engine.

    A file database gives every session its own connection, the same as
    the application engine, so a scan and its bookkeeping do not share a
    transaction.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test_flixdex.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_auth_headers():
    """Build Authorization headers carrying a signed session token."""

    def _make(user_id: str = "user-1", **claims) -> dict[str, str]:
        token = jwt.encode({"sub": user_id, **claims}, TEST_JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _make


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp directories after test session."""
    import shutil

    if Path(_test_tmp_dir).exists():
        shutil.rmtree(_test_tmp_dir, ignore_errors=True)
