"""FastAPI application — entry point, middleware, and health endpoint.

Creates the Fight Club backend API with:
- API versioning via router prefix (/api/v1/)
- CORS middleware (origins from settings)
- Request logging middleware (raw ASGI — no response body buffering)
- Exception handlers mapping DomainError subclasses to the ApiResponse
  envelope, plus HTTPException, validation and catch-all handlers
- A MemoryMonitor on app.state, started and stopped by the lifespan
- Health endpoint

Run with: uvicorn fightclub.main:app --reload
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fightclub.config import Settings, get_settings
from fightclub.errors import DomainError
from fightclub.monitoring import MemoryMonitor
from fightclub.schemas import ApiResponse

logger = logging.getLogger("fightclub")

Closer = Callable[[], Awaitable[None]]


# ---------------------------------------------------------------------------
# Request logging middleware (raw ASGI: streaming-safe)
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware:
    """Logs method, path, status code, and duration for every request.

    Raw ASGI so SSE responses are not buffered. Bodies, query strings and
    auth headers are never logged.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "?")
        path = scope.get("path", "?")
        start = time.monotonic()
        status_code = 0

        async def logging_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, receive, logging_send)
        finally:
            duration_ms = (time.monotonic() - start) * 1000
            logger.info("%s %s %d %.1fms", method, path, status_code, duration_ms)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_body(code: str, message: str) -> dict[str, Any]:
    return ApiResponse.failure(code, message).model_dump()


def _domain_error_response(request: Request, exc: DomainError) -> JSONResponse:
    """Maps a DomainError to its status code and error code.

    Server-side failures are logged with the full context and traceback;
    client errors get one INFO line.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
    else:
        logger.info(
            "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc
        )
    return JSONResponse(
        status_code=exc.status_code, content=_error_body(exc.code, exc.message)
    )


def _http_exception_response(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wraps HTTPException in the ApiResponse envelope.

    If the detail is already an ApiResponse dict (from deps.py), returns it
    as-is.
    """
    if isinstance(exc.detail, dict) and "ok" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail)
    return JSONResponse(
        status_code=exc.status_code, content=_error_body("HTTP_ERROR", str(exc.detail))
    )


def _validation_error_response(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Summarises the first request validation error as a 400.

    Malformed bodies and parameters are the same failure as a domain
    ValidationError, so both share status 400 and VALIDATION_FAILED.
    """
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = " -> ".join(str(part) for part in first.get("loc", []))
        msg = first.get("msg", "Validation error")
        detail = f"{loc}: {msg}" if loc else msg
    else:
        detail = "Request validation failed."
    return JSONResponse(status_code=400, content=_error_body("VALIDATION_FAILED", detail))


def _unhandled_exception_response(request: Request, exc: Exception) -> JSONResponse:
    """Logs the traceback server-side and returns a generic 500."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body("INTERNAL_ERROR", "An unexpected error occurred."),
    )


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def _init_storage(settings: Settings) -> list[Closer]:
    """Swaps the deps hook singletons for Supabase when configured.

    Returns the close callbacks for any HTTP clients created.
    """
    from fightclub.api import deps

    if settings.storage_backend != "supabase":
        logger.info("Storage backend: in-memory (data is lost on restart)")
        return []

    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY are required when STORAGE_BACKEND=supabase")

    from fightclub.hooks.postgrest import PostgrestClient
    from fightclub.hooks.supabase import (
        SupabaseAuthService,
        SupabaseChallengeRepository,
        SupabaseConversationStateStore,
        SupabaseEvaluationRepository,
        SupabaseUserJourneyRepository,
    )

    client = PostgrestClient(settings.supabase_url, settings.supabase_key)
    auth = SupabaseAuthService(settings.supabase_url, settings.supabase_key)
    deps._conversation_store = SupabaseConversationStateStore(client)
    deps._journey_repository = SupabaseUserJourneyRepository(client)
    deps._evaluation_repository = SupabaseEvaluationRepository(client)
    deps._challenge_repository = SupabaseChallengeRepository(client)
    deps._auth_service = auth
    logger.info("Storage backend: Supabase at %s", settings.supabase_url)
    return [client.aclose, auth.aclose]


def _init_services(settings: Settings) -> list[Closer]:
    """Builds the service singletons on top of the active hooks.

    The journey service and state manager always come up. The evaluation
    service needs an AI provider; if one can't be created the failure is
    logged and evaluation endpoints answer 503.
    """
    from fightclub.ai.evaluator import ChallengeEvaluationService
    from fightclub.ai.prompts import EvaluationPromptBuilder, PromptLoader
    from fightclub.ai.state_manager import AIStateManager
    from fightclub.api import deps
    from fightclub.config import PROJECT_ROOT
    from fightclub.domain.journey import JourneyConfig
    from fightclub.models import EVALUATION_TEMPERATURE, ModelConfig
    from fightclub.services.evaluations import EvaluationService
    from fightclub.services.journeys import UserJourneyService

    closers = _init_storage(settings)

    deps._state_manager = AIStateManager(
        deps._conversation_store, cache_ttl_seconds=settings.state_cache_ttl_seconds
    )
    deps._journey_service = UserJourneyService(
        deps._journey_repository,
        JourneyConfig(session_timeout_minutes=settings.session_timeout_minutes),
    )

    prompt_loader = PromptLoader(PROJECT_ROOT / "prompts")
    for error in prompt_loader.validate():
        logger.error("Prompt check: %s", error)

    try:
        provider = deps.create_provider(settings)
    except ValueError as exc:
        logger.warning("AI provider unavailable (%s). Evaluation endpoints will return 503.", exc)
        deps._evaluation_service = None
        return closers

    model_config = ModelConfig(
        provider=settings.ai_backend,
        model_id=settings.evaluator_model,
        temperature=EVALUATION_TEMPERATURE,
    )
    evaluator = ChallengeEvaluationService(
        provider,
        deps._state_manager,
        EvaluationPromptBuilder(prompt_loader),
        model_config,
    )
    deps._evaluation_service = EvaluationService(
        evaluator,
        deps._evaluation_repository,
        deps._challenge_repository,
        deps._journey_service,
    )
    logger.info(
        "AI services initialized: backend=%s, model=%s",
        settings.ai_backend,
        settings.evaluator_model,
    )
    return closers


# ---------------------------------------------------------------------------
# App creation
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Creates and configures the FastAPI application."""
    settings = get_settings()

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    closers = _init_services(settings)
    monitor = MemoryMonitor(
        threshold_mb=settings.memory_threshold_mb,
        interval_seconds=settings.memory_check_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        monitor.start()
        try:
            yield
        finally:
            await monitor.stop()
            for close in closers:
                await close()

    application = FastAPI(
        title="AI Fight Club",
        description="Challenge evaluation and user journey tracking",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.memory_monitor = monitor

    # -- Middleware (last added = first executed) --
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    # -- Exception handlers --
    application.add_exception_handler(DomainError, _domain_error_response)
    application.add_exception_handler(StarletteHTTPException, _http_exception_response)
    application.add_exception_handler(RequestValidationError, _validation_error_response)
    application.add_exception_handler(Exception, _unhandled_exception_response)

    _register_routes(application)
    return application


def _register_routes(application: FastAPI) -> None:
    """Registers all API routers on the application."""
    from fightclub.api.deps import get_memory_monitor
    from fightclub.api.evaluations import router as evaluations_router
    from fightclub.api.journeys import router as journeys_router

    v1 = APIRouter(prefix="/api/v1")

    @v1.get("/health")
    async def health(monitor: MemoryMonitor = Depends(get_memory_monitor)) -> dict[str, Any]:
        return ApiResponse(
            ok=True, data={"status": "healthy", "memory": monitor.status()}
        ).model_dump()

    v1.include_router(evaluations_router, tags=["evaluations"])
    v1.include_router(journeys_router, tags=["journey"])

    application.include_router(v1)


app = create_app()
