"""Fixtures for contract tests — one parameterized fixture per hook interface.

Each fixture yields a fresh implementation instance. "stub" is the
in-memory implementation; "supabase" is the Supabase implementation wired
to an httpx.MockTransport that emulates the PostgREST subset it uses, so
both implementations are held to the same behaviour.

TEAM: To test another implementation against the contracts:
    1. Add your param string to the params list.
    2. Add an elif branch that yields your implementation instance.
    3. Run: python -m pytest fightclub/tests/contracts/ -v

Uses @pytest_asyncio.fixture (not @pytest.fixture) for async fixture
support in strict mode.
"""

import json
from typing import Any

import httpx
import pytest_asyncio

from fightclub.hooks.auth import FakeAuthService
from fightclub.hooks.conversations import InMemoryConversationStateStore
from fightclub.hooks.evaluations import InMemoryChallengeStore, InMemoryEvaluationStore
from fightclub.hooks.journeys import InMemoryUserJourneyRepository
from fightclub.hooks.postgrest import PostgrestClient
from fightclub.hooks.supabase import (
    SupabaseChallengeRepository,
    SupabaseConversationStateStore,
    SupabaseEvaluationRepository,
    SupabaseUserJourneyRepository,
)


# ---------------------------------------------------------------------------
# Fake PostgREST
# ---------------------------------------------------------------------------


class FakePostgrest:
    """Just enough PostgREST for the Supabase hooks: eq filters, order,
    limit, insert, upsert and PATCH, plus the two unique constraints the
    schema defines (one active conversation state per context, one journey
    per user).
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        table = request.url.path.rsplit("/", 1)[-1]
        rows = self.tables.setdefault(table, [])
        params = dict(request.url.params)
        filters = {
            key: value[len("eq."):]
            for key, value in params.items()
            if value.startswith("eq.")
        }

        if request.method == "GET":
            result = [row for row in rows if _matches(row, filters)]
            order = params.get("order")
            if order:
                column, _, direction = order.partition(".")
                result.sort(key=lambda r: str(r.get(column)), reverse=direction == "desc")
            if "limit" in params:
                result = result[: int(params["limit"])]
            return httpx.Response(200, json=result)

        body = json.loads(request.content)
        if request.method == "POST":
            prefer = request.headers.get("prefer", "")
            if "merge-duplicates" in prefer:
                key = params.get("on_conflict", "id")
                rows[:] = [r for r in rows if r.get(key) != body.get(key)]
            elif self._violates_unique(table, rows, body):
                return httpx.Response(409, json={"message": "duplicate key value"})
            rows.append(body)
            return httpx.Response(201, json=[body])

        if request.method == "PATCH":
            updated = []
            for row in rows:
                if _matches(row, filters):
                    row.update(body)
                    updated.append(row)
            return httpx.Response(200, json=updated)

        return httpx.Response(405)

    @staticmethod
    def _violates_unique(table: str, rows: list[dict], body: dict) -> bool:
        if table == "conversation_states" and body.get("status") == "active":
            key = ("user_id", "context_type", "context_id")
            return any(
                r.get("status") == "active" and all(r.get(k) == body.get(k) for k in key)
                for r in rows
            )
        if table == "user_journeys":
            return any(r.get("user_id") == body.get("user_id") for r in rows)
        return any(r.get("id") == body.get("id") for r in rows)


def _matches(row: dict[str, Any], filters: dict[str, str]) -> bool:
    return all(str(row.get(key)) == value for key, value in filters.items())


@pytest_asyncio.fixture
async def postgrest_client():
    fake = FakePostgrest()
    client = PostgrestClient("http://supabase.test", "service-key", transport=fake.transport())
    yield client
    await client.aclose()


# ---------------------------------------------------------------------------
# Interface fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(params=["stub"])
async def auth_service(request):
    """Yields an AuthService implementation."""
    if request.param == "stub":
        yield FakeAuthService()


@pytest_asyncio.fixture(params=["stub", "supabase"])
async def conversation_store(request, postgrest_client):
    """Yields a ConversationStateStore implementation."""
    if request.param == "stub":
        yield InMemoryConversationStateStore()
    elif request.param == "supabase":
        yield SupabaseConversationStateStore(postgrest_client)


@pytest_asyncio.fixture(params=["stub", "supabase"])
async def journey_repository(request, postgrest_client):
    """Yields a UserJourneyRepository implementation."""
    if request.param == "stub":
        yield InMemoryUserJourneyRepository()
    elif request.param == "supabase":
        yield SupabaseUserJourneyRepository(postgrest_client)


@pytest_asyncio.fixture(params=["stub", "supabase"])
async def evaluation_repository(request, postgrest_client):
    """Yields an EvaluationRepository implementation."""
    if request.param == "stub":
        yield InMemoryEvaluationStore()
    elif request.param == "supabase":
        yield SupabaseEvaluationRepository(postgrest_client)


@pytest_asyncio.fixture(params=["stub", "supabase"])
async def challenge_repository(request, postgrest_client):
    """Yields a ChallengeRepository implementation."""
    if request.param == "stub":
        yield InMemoryChallengeStore()
    elif request.param == "supabase":
        yield SupabaseChallengeRepository(postgrest_client)
