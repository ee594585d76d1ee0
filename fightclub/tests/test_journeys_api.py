"""Tests for fightclub.api.journeys — journey endpoints for the current user."""

import httpx
import pytest
from httpx import ASGITransport

from fightclub.api.deps import get_auth_service, get_journey_service
from fightclub.domain.journey import JourneyConfig
from fightclub.hooks.auth import FakeAuthService
from fightclub.hooks.journeys import InMemoryUserJourneyRepository
from fightclub.main import app
from fightclub.services.journeys import UserJourneyService

_AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def client() -> httpx.AsyncClient:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.fixture
def journeys() -> UserJourneyService:
    """Fresh journey service per test, acting for user-1."""
    service = UserJourneyService(InMemoryUserJourneyRepository(), JourneyConfig())
    app.dependency_overrides[get_journey_service] = lambda: service
    app.dependency_overrides[get_auth_service] = lambda: FakeAuthService(user_id="user-1")
    yield service
    app.dependency_overrides.clear()


class TestRecordEvent:
    @pytest.mark.asyncio
    async def test_records_event_and_returns_state(self, client, journeys) -> None:
        async with client:
            resp = await client.post(
                "/api/v1/journey/events",
                json={
                    "event_type": "challenge_completed",
                    "event_data": {"score": 84, "evaluation_id": "ev-1"},
                    "challenge_id": "c1",
                    "timestamp": "2026-03-01T09:00:00Z",
                },
                headers=_AUTH,
            )

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["event"]["user_id"] == "user-1"
        assert data["event"]["event_type"] == "challenge_completed"
        assert data["event"]["event_data"] == {"score": 84.0, "evaluation_id": "ev-1"}
        assert data["journey"]["metrics"]["total_challenges"] == 1
        assert data["journey"]["metrics"]["average_score"] == 84.0
        assert data["journey"]["session_count"] == 1
        assert data["journey"]["version"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("event_type", "event_data"),
        [
            ("challenge_completed", {"score": 101}),
            ("challenge_completed", {}),
            ("login", {"unexpected": True}),
            ("teleported", {}),
        ],
    )
    async def test_invalid_event_400(self, client, journeys, event_type, event_data) -> None:
        async with client:
            resp = await client.post(
                "/api/v1/journey/events",
                json={"event_type": event_type, "event_data": event_data},
                headers=_AUTH,
            )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_FAILED"
        assert await journeys.get_user_events("user-1") == []

    @pytest.mark.asyncio
    async def test_requires_auth(self, client, journeys) -> None:
        async with client:
            resp = await client.post("/api/v1/journey/events", json={"event_type": "login"})
        assert resp.status_code == 401


class TestReadEndpoints:
    @pytest.mark.asyncio
    async def test_state_for_new_user(self, client, journeys) -> None:
        async with client:
            resp = await client.get("/api/v1/journey/state", headers=_AUTH)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user_id"] == "user-1"
        assert data["phase"] == "onboarding"
        assert data["engagement_level"] == "new"

    @pytest.mark.asyncio
    async def test_events_with_filter_and_counts(self, client, journeys) -> None:
        await journeys.record_event("user-1", "login")
        await journeys.record_event("user-1", "focus_area_selected", {"focus_area": "logic"})
        await journeys.record_event("user-2", "login")

        async with client:
            resp = await client.get("/api/v1/journey/events?event_type=login", headers=_AUTH)

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [e["event_type"] for e in data["events"]] == ["login"]
        assert data["counts"] == {"login": 1, "focus_area_selected": 1}

    @pytest.mark.asyncio
    async def test_unknown_event_type_filter_400(self, client, journeys) -> None:
        async with client:
            resp = await client.get("/api/v1/journey/events?event_type=nope", headers=_AUTH)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_limit_bounds(self, client, journeys) -> None:
        async with client:
            resp = await client.get("/api/v1/journey/events?limit=501", headers=_AUTH)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_insights(self, client, journeys) -> None:
        await journeys.record_event("user-1", "onboarding_completed")
        async with client:
            resp = await client.get("/api/v1/journey/insights", headers=_AUTH)
        data = resp.json()["data"]
        assert data["phase"] == "beginner"
        assert data["engagement_level"] == "active"
        assert len(data["insights"]) == 2
        assert len(data["recommendations"]) == 2
