"""Supabase implementations of the hook interfaces.

Selected at startup when STORAGE_BACKEND=supabase. All repositories share
one PostgrestClient. Rows use the entities' snake_case field names as
column names; JSON columns (metadata, metrics, event_data, ...) are
serialised with ``model_dump(mode="json")`` and validated back through the
pydantic models on read.

Concurrency guarantees rely on the schema:

- conversation_states: partial unique index on
  (user_id, context_type, context_id) WHERE status = 'active'.
  insert_if_absent() inserts and, on 409, reads back the winner.
- user_journeys: unique user_id plus an integer ``version`` column.
  save() PATCHes with ``version=eq.<loaded version>``; zero rows updated
  means another writer won. An integer ``event_count`` column records how
  many rows of user_journey_events the snapshot folds.
"""

import logging
from collections import Counter
from typing import Any

import httpx

from fightclub.domain.conversation import ConversationState
from fightclub.domain.evaluation import Challenge, Evaluation
from fightclub.domain.events import EventType, UserJourneyEvent
from fightclub.domain.journey import UserJourney
from fightclub.errors import ConflictError, RepositoryError
from fightclub.hooks.interfaces import (
    AuthService,
    ChallengeRepository,
    ConversationStateStore,
    EvaluationRepository,
    UserJourneyRepository,
)
from fightclub.hooks.postgrest import PostgrestClient
from fightclub.schemas import User

logger = logging.getLogger(__name__)

CONVERSATION_STATES = "conversation_states"
USER_JOURNEYS = "user_journeys"
USER_JOURNEY_EVENTS = "user_journey_events"
EVALUATIONS = "evaluations"
CHALLENGES = "challenges"


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class SupabaseConversationStateStore(ConversationStateStore):
    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def get_active(
        self, user_id: str, context_type: str, context_id: str
    ) -> ConversationState | None:
        rows = await self._client.select(
            CONVERSATION_STATES,
            filters={
                "user_id": user_id,
                "context_type": context_type,
                "context_id": context_id,
                "status": "active",
            },
            limit=1,
        )
        return ConversationState.model_validate(rows[0]) if rows else None

    async def insert_if_absent(self, state: ConversationState) -> ConversationState:
        try:
            row = await self._client.insert(
                CONVERSATION_STATES, state.model_dump(mode="json")
            )
        except ConflictError:
            existing = await self.get_active(
                state.user_id, state.context_type, state.context_id
            )
            if existing is None:
                raise RepositoryError(
                    "Conversation state conflict but no active state found",
                    user_id=state.user_id,
                    context_key=state.context_key,
                )
            logger.debug(
                "Concurrent create for %s resolved to existing thread %s",
                state.context_key,
                existing.thread_id,
            )
            return existing
        return ConversationState.model_validate(row)

    async def get_by_thread(self, thread_id: str) -> ConversationState | None:
        rows = await self._client.select(
            CONVERSATION_STATES, filters={"thread_id": thread_id}, limit=1
        )
        return ConversationState.model_validate(rows[0]) if rows else None

    async def update(self, state: ConversationState) -> ConversationState | None:
        rows = await self._client.update(
            CONVERSATION_STATES,
            state.model_dump(mode="json", exclude={"id", "created_at"}),
            filters={"thread_id": state.thread_id},
        )
        return ConversationState.model_validate(rows[0]) if rows else None

    async def list_for_user(
        self, user_id: str, status: str | None = None
    ) -> list[ConversationState]:
        filters = {"user_id": user_id}
        if status is not None:
            filters["status"] = status
        rows = await self._client.select(
            CONVERSATION_STATES, filters=filters, order="last_activity.desc"
        )
        return [ConversationState.model_validate(row) for row in rows]


# ---------------------------------------------------------------------------
# User journeys
# ---------------------------------------------------------------------------


class SupabaseUserJourneyRepository(UserJourneyRepository):
    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def get_by_user(self, user_id: str) -> UserJourney | None:
        rows = await self._client.select(
            USER_JOURNEYS, filters={"user_id": user_id}, limit=1
        )
        return UserJourney.from_snapshot(rows[0]) if rows else None

    async def save(self, journey: UserJourney) -> UserJourney:
        values = journey.model_dump(mode="json")
        values["version"] = journey.version + 1

        if journey.version == 0:
            try:
                await self._client.insert(USER_JOURNEYS, values)
            except ConflictError as exc:
                raise ConflictError(
                    "Journey was created concurrently", user_id=journey.user_id
                ) from exc
        else:
            rows = await self._client.update(
                USER_JOURNEYS,
                values,
                filters={"id": journey.id, "version": journey.version},
            )
            if not rows:
                raise ConflictError(
                    "Journey was modified concurrently",
                    user_id=journey.user_id,
                    expected_version=journey.version,
                )

        journey.version += 1
        return journey

    async def append_event(self, event: UserJourneyEvent) -> UserJourneyEvent:
        await self._client.insert(USER_JOURNEY_EVENTS, event.model_dump(mode="json"))
        return event

    async def list_events(
        self,
        user_id: str,
        event_type: EventType | None = None,
        limit: int | None = None,
    ) -> list[UserJourneyEvent]:
        filters: dict[str, Any] = {"user_id": user_id}
        if event_type is not None:
            filters["event_type"] = event_type.value
        if limit is None:
            rows = await self._client.select(
                USER_JOURNEY_EVENTS, filters=filters, order="timestamp.asc"
            )
        else:
            rows = await self._client.select(
                USER_JOURNEY_EVENTS, filters=filters, order="timestamp.desc", limit=limit
            )
            rows.reverse()
        return [UserJourneyEvent.model_validate(row) for row in rows]

    async def count_events_by_type(self, user_id: str) -> dict[str, int]:
        rows = await self._client.select(
            USER_JOURNEY_EVENTS, filters={"user_id": user_id}, columns="event_type"
        )
        return dict(Counter(row["event_type"] for row in rows))


# ---------------------------------------------------------------------------
# Evaluations and challenges
# ---------------------------------------------------------------------------


class SupabaseEvaluationRepository(EvaluationRepository):
    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def save(self, evaluation: Evaluation) -> Evaluation:
        row = await self._client.upsert(EVALUATIONS, evaluation.model_dump(mode="json"))
        return Evaluation.model_validate(row)

    async def get(self, evaluation_id: str) -> Evaluation | None:
        rows = await self._client.select(
            EVALUATIONS, filters={"id": evaluation_id}, limit=1
        )
        return Evaluation.model_validate(rows[0]) if rows else None

    async def list_by_user(
        self, user_id: str, limit: int | None = None
    ) -> list[Evaluation]:
        rows = await self._client.select(
            EVALUATIONS,
            filters={"user_id": user_id},
            order="created_at.desc",
            limit=limit,
        )
        return [Evaluation.model_validate(row) for row in rows]

    async def list_by_challenge(self, challenge_id: str) -> list[Evaluation]:
        rows = await self._client.select(
            EVALUATIONS, filters={"challenge_id": challenge_id}, order="created_at.desc"
        )
        return [Evaluation.model_validate(row) for row in rows]


class SupabaseChallengeRepository(ChallengeRepository):
    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def get(self, challenge_id: str) -> Challenge | None:
        rows = await self._client.select(
            CHALLENGES, filters={"id": challenge_id}, limit=1
        )
        return Challenge.model_validate(rows[0]) if rows else None

    async def save(self, challenge: Challenge) -> Challenge:
        row = await self._client.upsert(CHALLENGES, challenge.model_dump(mode="json"))
        return Challenge.model_validate(row)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class SupabaseAuthService(AuthService):
    """Validates Supabase access tokens against the GoTrue auth API.

    Args:
        base_url: Supabase project URL.
        api_key: Service role key (needed for admin user lookups).
        transport: Optional httpx transport for tests.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/auth/v1",
            headers={"apikey": api_key},
            timeout=timeout,
            transport=transport,
        )

    async def validate_token(self, token: str) -> User | None:
        if not token:
            return None
        response = await self._get("/user", token)
        if response.status_code in (401, 403):
            return None
        return self._to_user(response)

    async def get_user(self, user_id: str) -> User | None:
        if not user_id:
            return None
        response = await self._get(f"/admin/users/{user_id}", self._api_key)
        if response.status_code == 404:
            return None
        return self._to_user(response)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, bearer: str) -> httpx.Response:
        try:
            return await self._client.get(
                path, headers={"Authorization": f"Bearer {bearer}"}
            )
        except httpx.HTTPError as exc:
            raise RepositoryError("Supabase auth request failed", path=path) from exc

    @staticmethod
    def _to_user(response: httpx.Response) -> User:
        if response.is_error:
            raise RepositoryError(
                "Supabase auth request failed", status_code=response.status_code
            )
        body = response.json()
        metadata = body.get("user_metadata") or {}
        role = "admin" if (body.get("app_metadata") or {}).get("role") == "admin" else "user"
        return User(
            id=body["id"],
            email=body.get("email") or "",
            name=metadata.get("full_name") or metadata.get("name") or "",
            role=role,
        )
