"""Integration tests for authentication endpoints.

Tests cover:
- POST /auth/login
- POST /auth/logout
"""

import pytest
from httpx import AsyncClient

from tests.factories import create_local_user


class TestLoginEndpoint:
    """Integration tests for POST /auth/login."""

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, db_session):
        """Successful login returns the user and sets a session cookie."""
        create_local_user(db_session, username="testuser", password="test-password-123")
        db_session.commit()

        response = await client.post(
            "/auth/login",
            json={"username": "testuser", "password": "test-password-123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["user"]["username"] == "testuser"
        assert "session" in response.cookies

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, db_session):
        create_local_user(db_session, username="testuser", password="correct-password")
        db_session.commit()

        response = await client.post(
            "/auth/login",
            json={"username": "testuser", "password": "wrong-password"},
        )

        assert response.status_code == 401
        assert "session" not in response.cookies

    @pytest.mark.asyncio
    async def test_login_nonexistent_user(self, client: AsyncClient):
        response = await client.post(
            "/auth/login",
            json={"username": "nonexistent", "password": "password"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_missing_username(self, client: AsyncClient):
        response = await client.post("/auth/login", json={"password": "password"})

        assert response.status_code == 422


class TestSessionEndpoints:
    """Integration tests for /auth/logout."""

    @pytest.mark.asyncio
    async def test_logout_invalidates_session(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post("/auth/logout")

        assert response.status_code == 200
        assert response.json()["success"] is True

        # The old cookie no longer opens report endpoints
        response = await authenticated_client.get("/reports/1")
        assert response.status_code == 401
