"""Integration tests for the report API endpoints.

Tests cover:
- POST /reports (create, validation, auth, rate limit)
- GET /reports/{id}
- GET /reports/{id}/activity
"""

import pytest
from httpx import AsyncClient

from replyscope_core.domain.models import LocalUser, Report, ReportStatus
from replyscope_core.domain.services.activity import ActivityLogger
from replyscope_core.domain.services.events import REPORT_CREATED
from tests.factories import create_local_user, create_report


class TestCreateReport:
    """Tests for POST /reports."""

    @pytest.mark.asyncio
    async def test_create_report(
        self, authenticated_client: AsyncClient, db_session, mock_event_bus, sample_report_data
    ):
        response = await authenticated_client.post("/reports", json=sample_report_data)

        assert response.status_code == 201
        report_id = response.json()["id"]

        mock_event_bus.emit.assert_called_once_with(
            REPORT_CREATED,
            {"report_id": report_id, "conversation_id": "1790000000000000000"},
        )
        report = db_session.get(Report, report_id)
        assert report.user_id == authenticated_client.user_id
        assert report.status == ReportStatus.SETTING_UP
        assert report.reply_threshold == 50
        assert report.min_length == 10
        assert report.persona == "Product manager"

    @pytest.mark.asyncio
    async def test_settings_normalized(self, authenticated_client, db_session):
        response = await authenticated_client.post(
            "/reports",
            json={
                "url": "https://twitter.com/someone/status/123",
                "goal": "  Learn things  ",
                "preset": "unknown",
                "reply_threshold": "9999",
                "min_length": "abc",
                "min_followers": -5,
            },
        )

        assert response.status_code == 201
        report = db_session.get(Report, response.json()["id"])
        assert report.goal == "Learn things"
        assert report.reply_threshold == 250
        assert report.min_length == 0
        assert report.min_followers is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/someone/status/123",
            "https://x.com/someone",
            "not a url",
        ],
    )
    async def test_invalid_url(self, authenticated_client, mock_event_bus, url):
        response = await authenticated_client.post("/reports", json={"url": url, "goal": "g"})

        assert response.status_code == 400
        mock_event_bus.emit.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_goal(self, authenticated_client, sample_report_data):
        sample_report_data["goal"] = "   "

        response = await authenticated_client.post("/reports", json=sample_report_data)

        assert response.status_code == 400
        assert response.json()["detail"] == "Goal is required"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client, mock_event_bus, sample_report_data):
        response = await client.post("/reports", json=sample_report_data)

        assert response.status_code == 401
        mock_event_bus.emit.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_url_checked_before_authentication(self, client):
        response = await client.post("/reports", json={"url": "nope", "goal": "g"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rate_limited(self, authenticated_client, sample_report_data):
        for _ in range(3):
            response = await authenticated_client.post("/reports", json=sample_report_data)
            assert response.status_code == 201

        response = await authenticated_client.post("/reports", json=sample_report_data)

        assert response.status_code == 429
        assert 1 <= int(response.headers["Retry-After"]) <= 60
        assert "retry_after" in response.json()["detail"]


class TestGetReport:
    """Tests for GET /reports/{id} and its activity feed."""

    @pytest.mark.asyncio
    async def test_get_own_report(self, authenticated_client, db_session):
        user = db_session.get(LocalUser, authenticated_client.user_id)
        report_id = create_report(db_session, user, title="Launch Feedback").id
        db_session.commit()

        response = await authenticated_client.get(f"/reports/{report_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == report_id
        assert data["title"] == "Launch Feedback"
        assert data["status"] == ReportStatus.SETTING_UP
        assert data["useful_count"] == 0

    @pytest.mark.asyncio
    async def test_other_users_report_not_found(self, authenticated_client, db_session):
        other = create_local_user(db_session, username="other")
        report_id = create_report(db_session, other).id
        db_session.commit()

        response = await authenticated_client.get(f"/reports/{report_id}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_report(self, authenticated_client):
        response = await authenticated_client.get("/reports/999999")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client):
        response = await client.get("/reports/1")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_activity_feed(self, authenticated_client, db_session):
        user = db_session.get(LocalUser, authenticated_client.user_id)
        report_id = create_report(db_session, user).id
        activity = ActivityLogger(db_session)
        activity.append(report_id, "setup", "Preparing your report")
        activity.append(report_id, "scrape", "Looking up initial posts")
        db_session.commit()

        response = await authenticated_client.get(f"/reports/{report_id}/activity")

        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["message"] for e in entries] == [
            "Preparing your report",
            "Looking up initial posts",
        ]
        assert entries[0]["key"] == "setup"

    @pytest.mark.asyncio
    async def test_activity_limit(self, authenticated_client, db_session):
        user = db_session.get(LocalUser, authenticated_client.user_id)
        report_id = create_report(db_session, user).id
        activity = ActivityLogger(db_session)
        for i in range(5):
            activity.append(report_id, "scrape", f"entry {i}")
        db_session.commit()

        response = await authenticated_client.get(
            f"/reports/{report_id}/activity", params={"limit": 2}
        )

        assert len(response.json()["entries"]) == 2
