"""Shared test fixtures.

Factory-pattern fixtures that return callables accepting **overrides.

Fixtures:
    mock_provider: Factory for MockProvider instances
    make_challenge: Factory for valid Challenge instances
    make_event: Factory for UserJourneyEvent instances
    journey_config: Default JourneyConfig (30-minute sessions)
    evaluation_stack: Factory wiring EvaluationService over in-memory hooks
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from fightclub.ai.evaluator import ChallengeEvaluationService
from fightclub.ai.prompts import EvaluationPromptBuilder, PromptLoader
from fightclub.ai.providers.mock import MockProvider
from fightclub.ai.state_manager import AIStateManager
from fightclub.domain.evaluation import Challenge
from fightclub.domain.events import EventType, UserJourneyEvent
from fightclub.domain.journey import JourneyConfig
from fightclub.hooks.conversations import InMemoryConversationStateStore
from fightclub.hooks.evaluations import InMemoryChallengeStore, InMemoryEvaluationStore
from fightclub.hooks.journeys import InMemoryUserJourneyRepository
from fightclub.models import ModelConfig
from fightclub.services.evaluations import EvaluationService
from fightclub.services.journeys import UserJourneyService

PROMPTS_DIR = Path(__file__).resolve().parents[2] / "prompts"
TEST_MODEL = ModelConfig(provider="mock", model_id="mock-model", temperature=0.7)


# ---------------------------------------------------------------------------
# MockProvider factory
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_provider():
    """Returns a factory function for creating MockProvider instances."""

    def _make(**kwargs) -> MockProvider:
        return MockProvider(**kwargs)

    return _make


# ---------------------------------------------------------------------------
# Challenge factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_challenge():
    """Returns a factory function for creating valid Challenge instances.

    Defaults produce an owned critical-thinking challenge with one question.
    Override any field via kwargs.
    """

    def _make(**overrides) -> Challenge:
        defaults = {
            "id": f"challenge-{uuid4().hex[:8]}",
            "user_id": "user-1",
            "title": "Spot the fallacy",
            "content": "Everyone I know uses this app, so it must be the best one.",
            "questions": [{"id": "q1", "text": "Which fallacy is this?"}],
            "challenge_type": "critical-analysis",
            "format_type": "open-ended",
            "focus_area": "logical reasoning",
            "difficulty": "intermediate",
            "type_metadata": {"name": "Critical Analysis"},
            "format_metadata": {"name": "Open Ended"},
        }
        defaults.update(overrides)
        return Challenge(**defaults)

    return _make


# ---------------------------------------------------------------------------
# Journey event factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_event():
    """Returns a factory function for creating UserJourneyEvent instances.

    Usage:
        make_event("challenge_completed", {"score": 80}, at=datetime(...))
    """

    def _make(
        event_type: EventType | str = EventType.LOGIN,
        event_data: dict | None = None,
        *,
        at: datetime | None = None,
        user_id: str = "user-1",
        **overrides,
    ) -> UserJourneyEvent:
        values = {
            "user_id": user_id,
            "event_type": event_type,
            "event_data": event_data or {},
            "timestamp": at or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
        }
        values.update(overrides)
        return UserJourneyEvent.model_validate(values)

    return _make


@pytest.fixture
def journey_config() -> JourneyConfig:
    return JourneyConfig(session_timeout_minutes=30)


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@dataclass
class EvaluationStack:
    """Every collaborator of one EvaluationService, exposed for assertions."""

    provider: MockProvider
    conversations: InMemoryConversationStateStore
    state_manager: AIStateManager
    evaluator: ChallengeEvaluationService
    evaluations: InMemoryEvaluationStore
    challenges: InMemoryChallengeStore
    journey_repository: InMemoryUserJourneyRepository
    journeys: UserJourneyService
    service: EvaluationService


@pytest.fixture
def evaluation_stack():
    """Returns a factory building an EvaluationService over in-memory hooks.

    Args (to the factory):
        provider: MockProvider to use. Defaults to MockProvider().
        challenges: Challenges to seed.
    """

    def _make(
        provider: MockProvider | None = None,
        challenges: list[Challenge] | None = None,
    ) -> EvaluationStack:
        provider = provider or MockProvider()
        conversations = InMemoryConversationStateStore()
        state_manager = AIStateManager(conversations)
        evaluator = ChallengeEvaluationService(
            provider,
            state_manager,
            EvaluationPromptBuilder(PromptLoader(PROMPTS_DIR)),
            TEST_MODEL,
        )
        evaluations = InMemoryEvaluationStore()
        challenge_store = InMemoryChallengeStore(challenges)
        journey_repository = InMemoryUserJourneyRepository()
        journeys = UserJourneyService(journey_repository, JourneyConfig())
        service = EvaluationService(evaluator, evaluations, challenge_store, journeys)
        return EvaluationStack(
            provider=provider,
            conversations=conversations,
            state_manager=state_manager,
            evaluator=evaluator,
            evaluations=evaluations,
            challenges=challenge_store,
            journey_repository=journey_repository,
            journeys=journeys,
            service=service,
        )

    return _make
