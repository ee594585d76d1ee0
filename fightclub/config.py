"""App configuration — environment variable loading with typed defaults.

Loads settings from .env file (via python-dotenv) and os.environ.
Real environment variables take precedence over .env file values.

Model name env vars (e.g. EVALUATOR_MODEL=GPT_4O) are resolved to
actual API model IDs at load time via MODEL_MAP from fightclub.models.

Usage:
    from fightclub.config import get_settings
    settings = get_settings()
    print(settings.evaluator_model)  # "gpt-4o"
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from fightclub.models import MODEL_MAP

# Only load .env from the project root: don't traverse parent directories.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DOTENV_PATH = PROJECT_ROOT / ".env"

_AI_BACKENDS = ("openai", "mock")
_STORAGE_BACKENDS = ("memory", "supabase")


@dataclass(frozen=True)
class Settings:
    """Typed configuration for the Fight Club backend.

    All fields have sensible defaults for local development.
    Model fields store resolved API model IDs (not family names).
    """

    # App
    app_env: str
    app_port: int
    log_level: str
    cors_origins: list[str]

    # AI
    ai_backend: str
    evaluator_model: str
    openai_api_key: str
    openai_timeout_seconds: float
    stream_timeout_seconds: float

    # Storage
    storage_backend: str
    supabase_url: str
    supabase_key: str

    # Conversation state and journeys
    session_timeout_minutes: int
    state_cache_ttl_seconds: int

    # Memory monitor
    memory_check_interval_seconds: float
    memory_threshold_mb: int


def _resolve_model(env_var: str, value: str) -> str:
    """Resolves a family-name string to an actual model ID via MODEL_MAP.

    Args:
        env_var: Name of the environment variable (for error messages).
        value: The family-name value from the environment (e.g. "GPT_4O").

    Returns:
        The resolved model ID string.

    Raises:
        ValueError: If the value doesn't match any key in MODEL_MAP.
    """
    if value in MODEL_MAP:
        return MODEL_MAP[value]
    valid = ", ".join(sorted(MODEL_MAP.keys()))
    raise ValueError(
        f"Invalid value for {env_var}: {value!r}. "
        f"Valid options: {valid}"
    )


def _choice(env_var: str, value: str, options: tuple[str, ...]) -> str:
    """Validates that an enumerated setting is one of the allowed options."""
    if value in options:
        return value
    raise ValueError(
        f"Invalid value for {env_var}: {value!r}. "
        f"Valid options: {', '.join(options)}"
    )


def _split_csv(value: str) -> list[str]:
    """Splits a comma-separated string into a list of stripped, non-empty values."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_settings() -> Settings:
    """Loads configuration from .env file and environment variables.

    Returns:
        A fully resolved Settings instance.
    """
    load_dotenv(_DOTENV_PATH)

    return Settings(
        # App
        app_env=os.environ.get("APP_ENV", "development"),
        app_port=int(os.environ.get("APP_PORT", "8000")),
        log_level=os.environ.get("LOG_LEVEL", "info"),
        cors_origins=_split_csv(
            os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
        ),
        # AI
        ai_backend=_choice(
            "AI_BACKEND", os.environ.get("AI_BACKEND", "openai"), _AI_BACKENDS
        ),
        evaluator_model=_resolve_model(
            "EVALUATOR_MODEL",
            os.environ.get("EVALUATOR_MODEL", "GPT_4O"),
        ),
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        openai_timeout_seconds=float(os.environ.get("OPENAI_TIMEOUT_SECONDS", "60")),
        stream_timeout_seconds=float(os.environ.get("STREAM_TIMEOUT_SECONDS", "60")),
        # Storage
        storage_backend=_choice(
            "STORAGE_BACKEND",
            os.environ.get("STORAGE_BACKEND", "memory"),
            _STORAGE_BACKENDS,
        ),
        supabase_url=os.environ.get("SUPABASE_URL", ""),
        supabase_key=os.environ.get("SUPABASE_KEY", ""),
        # Conversation state and journeys
        session_timeout_minutes=int(os.environ.get("SESSION_TIMEOUT_MINUTES", "30")),
        state_cache_ttl_seconds=int(os.environ.get("STATE_CACHE_TTL_SECONDS", "3600")),
        # Memory monitor
        memory_check_interval_seconds=float(
            os.environ.get("MEMORY_CHECK_INTERVAL_SECONDS", "60")
        ),
        memory_threshold_mb=int(os.environ.get("MEMORY_THRESHOLD_MB", "1000")),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Returns the singleton Settings instance. Loads .env on first call."""
    global _settings
    if _settings is None:
        _settings = _load_settings()
    return _settings
