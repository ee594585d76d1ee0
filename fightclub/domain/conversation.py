"""Conversation state — the persisted binding of (user, purpose) to an LLM thread.

A ConversationState records the last continuity token (the LLM provider's
response id) for one user and one context, so a multi-turn exchange can
resume across independent HTTP requests. Only AIStateManager mutates these.

Context keys arrive from callers as flat strings ("evaluation_<threadId>",
"evaluation_stream_<threadId>"). split_context_key() turns them into the
(context_type, context_id) pair the uniqueness invariant is defined over.
"""

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

# Longest prefix wins: "evaluation_stream_x" must not split as
# ("evaluation", "stream_x").
KNOWN_CONTEXT_TYPES: tuple[str, ...] = (
    "evaluation_stream",
    "evaluation",
    "rival_challenge",
    "challenge_generation",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def split_context_key(context_key: str) -> tuple[str, str]:
    """Splits a flat context key into (context_type, context_id).

    Matches the longest known context-type prefix followed by "_".
    Unknown keys become (context_key, "").

    Args:
        context_key: e.g. "evaluation_eval_42_1700000000000".

    Returns:
        Tuple of (context_type, context_id).
    """
    for context_type in sorted(KNOWN_CONTEXT_TYPES, key=len, reverse=True):
        prefix = f"{context_type}_"
        if context_key.startswith(prefix):
            return context_type, context_key[len(prefix):]
    return context_key, ""


class ConversationState(BaseModel):
    """One user's LLM thread for one context.

    At most one active state exists per (user_id, context_type, context_id).
    Archived states are kept for history and never reactivated.

    Mutable: AIStateManager updates it after every LLM call.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    thread_id: str = Field(default_factory=lambda: f"thread_{uuid4().hex}")
    context_type: str
    context_id: str = ""
    last_response_id: str | None = None
    message_count: int = 0
    run_count: int = 0
    status: Literal["active", "archived"] = "active"
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_activity: datetime = Field(default_factory=_utcnow)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def context_key(self) -> str:
        """The flat key this state was requested under."""
        if not self.context_id:
            return self.context_type
        return f"{self.context_type}_{self.context_id}"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def record_response(self, response_id: str, now: datetime | None = None) -> None:
        """Stores a new continuity token and counts one completed run.

        Each run is one user turn and one model turn.
        """
        now = now or _utcnow()
        self.last_response_id = response_id
        self.run_count += 1
        self.message_count += 2
        self.last_activity = now
        self.updated_at = now

    def archive(self, now: datetime | None = None) -> None:
        """Marks the state archived. The next lookup for this context starts fresh."""
        now = now or _utcnow()
        self.status = "archived"
        self.updated_at = now
