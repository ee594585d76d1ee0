"""Shared API types — identity, response envelope and SSE events.

Leaf module: imports only from pydantic and the stdlib. Domain entities
live in fightclub.domain; this module holds the types the HTTP layer and
the hooks share.

Usage:
    from fightclub.schemas import User, ApiResponse, ChunkEvent
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class User(BaseModel):
    """Identity model returned by the auth layer.

    Frozen — users are identity objects, no mutation after creation.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: str = ""
    name: str = ""
    role: Literal["user", "admin"] = "user"


# ---------------------------------------------------------------------------
# API envelope
# ---------------------------------------------------------------------------


class ApiError(BaseModel):
    """Error detail inside ApiResponse.error.

    code is an uppercase string like "NOT_FOUND", "VALIDATION_FAILED",
    "PROCESSING_ERROR". Not an enum — error codes grow with the API.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ApiResponse(BaseModel):
    """Response envelope shared by every JSON endpoint.

    ``status`` and ``message`` repeat the outcome at the top level so
    clients that only read ``{status, message}`` still see errors.
    """

    model_config = ConfigDict(frozen=True)

    ok: bool
    status: Literal["success", "error"] = "success"
    message: str | None = None
    data: Any | None = None
    error: ApiError | None = None

    @classmethod
    def failure(cls, code: str, message: str) -> "ApiResponse":
        return cls(
            ok=False,
            status="error",
            message=message,
            error=ApiError(code=code, message=message),
        )


# ---------------------------------------------------------------------------
# SSE events (evaluation streaming)
# ---------------------------------------------------------------------------


class ChunkEvent(BaseModel):
    """Incremental evaluation text from the LLM."""

    model_config = ConfigDict(frozen=True)

    type: Literal["chunk"] = "chunk"
    content: str


class CompleteEvent(BaseModel):
    """Stream completion: the persisted evaluation id, score and payload."""

    model_config = ConfigDict(frozen=True)

    type: Literal["complete"] = "complete"
    evaluation_id: str
    score: float
    data: dict[str, Any] = Field(default_factory=dict)


class ErrorEvent(BaseModel):
    """Stream error with partial text recovery. Terminates the stream."""

    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    code: str
    message: str
    partial_text: str = ""
