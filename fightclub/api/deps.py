"""Shared FastAPI dependencies — auth, repositories, services, monitor.

Module-level singletons for each hook. Route handlers reach them through
FastAPI's Depends() system, never by importing the stubs directly.
main.py replaces the in-memory defaults with Supabase implementations when
STORAGE_BACKEND=supabase, and builds the services on top of whichever
hooks are active.

TEAM: To wire another backend, assign it to the singleton here (or in
main._init_services). The get_* functions and every route handler stay
unchanged.

Usage:
    from fightclub.api.deps import get_current_user, get_journey_service

    @router.get("/something")
    async def do_thing(
        user: User = Depends(get_current_user),
        journeys: UserJourneyService = Depends(get_journey_service),
    ): ...
"""

import logging

from fastapi import Depends, Header, HTTPException, Request

from fightclub.ai.providers.base import AIProvider
from fightclub.ai.state_manager import AIStateManager
from fightclub.config import Settings
from fightclub.hooks.auth import FakeAuthService
from fightclub.hooks.conversations import InMemoryConversationStateStore
from fightclub.hooks.evaluations import InMemoryChallengeStore, InMemoryEvaluationStore
from fightclub.hooks.interfaces import (
    AuthService,
    ChallengeRepository,
    ConversationStateStore,
    EvaluationRepository,
    UserJourneyRepository,
)
from fightclub.hooks.journeys import InMemoryUserJourneyRepository
from fightclub.monitoring import MemoryMonitor
from fightclub.schemas import ApiResponse, User
from fightclub.services.evaluations import EvaluationService
from fightclub.services.journeys import UserJourneyService

logger = logging.getLogger("fightclub")

# ---------------------------------------------------------------------------
# Hook singletons: the swap point
# ---------------------------------------------------------------------------

# TEAM: In-memory defaults. main._init_services() swaps these for the
# Supabase implementations when STORAGE_BACKEND=supabase.
_auth_service: AuthService = FakeAuthService()
_conversation_store: ConversationStateStore = InMemoryConversationStateStore()
_journey_repository: UserJourneyRepository = InMemoryUserJourneyRepository()
_evaluation_repository: EvaluationRepository = InMemoryEvaluationStore()
_challenge_repository: ChallengeRepository = InMemoryChallengeStore()

# Service singletons: set by _init_services() in main.py at startup
_state_manager: AIStateManager | None = None
_journey_service: UserJourneyService | None = None
_evaluation_service: EvaluationService | None = None


def _unavailable(what: str) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail=ApiResponse.failure(
            "SERVICE_UNAVAILABLE", f"{what} is not available."
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Dependency providers
# ---------------------------------------------------------------------------


def get_auth_service() -> AuthService:
    return _auth_service


def get_challenge_repository() -> ChallengeRepository:
    return _challenge_repository


def get_state_manager() -> AIStateManager:
    """Raises HTTPException(503) before startup has built the state manager."""
    if _state_manager is None:
        raise _unavailable("Conversation state manager")
    return _state_manager


def get_journey_service() -> UserJourneyService:
    """Raises HTTPException(503) before startup has built the service."""
    if _journey_service is None:
        raise _unavailable("Journey service")
    return _journey_service


def get_evaluation_service() -> EvaluationService:
    """Returns the evaluation service singleton.

    Raises HTTPException(503) when no AI provider could be configured at
    startup; journeys keep working without it.
    """
    if _evaluation_service is None:
        raise _unavailable("Evaluation service")
    return _evaluation_service


def get_memory_monitor(request: Request) -> MemoryMonitor:
    """Returns the monitor create_app() stored on app.state."""
    monitor = getattr(request.app.state, "memory_monitor", None)
    if monitor is None:
        raise _unavailable("Memory monitor")
    return monitor


# ---------------------------------------------------------------------------
# AI provider factory
# ---------------------------------------------------------------------------


def create_provider(settings: Settings) -> AIProvider:
    """Builds the provider selected by AI_BACKEND.

    Raises:
        ValueError: Unknown backend, or OPENAI_API_KEY missing for "openai".
    """
    # Local imports so the SDK is only loaded when actually used.
    if settings.ai_backend == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required when AI_BACKEND=openai")
        from fightclub.ai.providers.openai import OpenAIProvider

        return OpenAIProvider(
            api_key=settings.openai_api_key,
            timeout=settings.openai_timeout_seconds,
        )

    if settings.ai_backend == "mock":
        from fightclub.ai.providers.mock import MockProvider

        return MockProvider()

    raise ValueError(
        f"Unknown AI backend: {settings.ai_backend!r}. Expected 'openai' or 'mock'."
    )


# ---------------------------------------------------------------------------
# Auth dependency: used by route handlers
# ---------------------------------------------------------------------------


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=ApiResponse.failure("UNAUTHORIZED", message).model_dump(),
    )


async def get_current_user(
    authorization: str | None = Header(default=None),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Extracts and validates a Bearer token from the Authorization header.

    Raises:
        HTTPException: 401 with ApiResponse envelope on auth failure.
    """
    if not authorization:
        raise _unauthorized("Missing authorization header.")

    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Invalid authorization header format.")

    user = await auth_service.validate_token(token)
    if user is None:
        raise _unauthorized("Invalid or expired token.")
    return user
