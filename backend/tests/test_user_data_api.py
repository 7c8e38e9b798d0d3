"""Tests for the user settings document endpoints."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from flixdex.db import get_db
from flixdex.main import app


@pytest.fixture
async def client(session_factory):
    """Create a test client with overridden database dependency."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


class TestUserData:
    """Tests for GET and POST /api/v1/user/data."""

    async def test_empty_document(self, client, make_auth_headers):
        response = await client.get("/api/v1/user/data", headers=make_auth_headers())
        assert response.status_code == 200
        assert response.json() == {}

    async def test_save_and_load(self, client, make_auth_headers):
        headers = make_auth_headers()
        document = {"watched": {"item-1": 1200}, "theme": "dark"}

        saved = await client.post("/api/v1/user/data", json=document, headers=headers)
        loaded = await client.get("/api/v1/user/data", headers=headers)

        assert saved.status_code == 200
        assert saved.json() == {"success": True}
        assert loaded.json() == document

    async def test_save_replaces_document(self, client, make_auth_headers):
        headers = make_auth_headers()
        await client.post("/api/v1/user/data", json={"theme": "dark"}, headers=headers)
        await client.post("/api/v1/user/data", json={"volume": 0.5}, headers=headers)

        loaded = await client.get("/api/v1/user/data", headers=headers)

        assert loaded.json() == {"volume": 0.5}

    async def test_documents_are_per_user(self, client, make_auth_headers):
        await client.post(
            "/api/v1/user/data", json={"theme": "dark"}, headers=make_auth_headers("user-1")
        )

        other = await client.get("/api/v1/user/data", headers=make_auth_headers("user-2"))

        assert other.json() == {}

    async def test_requires_session(self, client):
        response = await client.get("/api/v1/user/data")
        assert response.status_code == 401

    async def test_rejects_non_object(self, client, make_auth_headers):
        response = await client.post(
            "/api/v1/user/data", json=["not", "an", "object"], headers=make_auth_headers()
        )
        assert response.status_code == 422
