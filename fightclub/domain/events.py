"""User journey events — immutable facts about tracked user actions.

Each event kind carries its own payload model. The payload is selected by
event_type and validated on construction, so a challenge_completed event
without a score in 0–100 cannot exist. Unknown payload keys are rejected.

Events are append-only: created by application services, never updated
or deleted. Rows from storage go through the same validation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class EventType(str, Enum):
    """Tracked user actions."""

    LOGIN = "login"
    LOGOUT = "logout"
    ONBOARDING_COMPLETED = "onboarding_completed"
    CHALLENGE_STARTED = "challenge_started"
    CHALLENGE_COMPLETED = "challenge_completed"
    EVALUATION_VIEWED = "evaluation_viewed"
    FOCUS_AREA_SELECTED = "focus_area_selected"


# ---------------------------------------------------------------------------
# Payloads (one per event kind)
# ---------------------------------------------------------------------------


class _EventData(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class EmptyEventData(_EventData):
    """Payload for events that carry no data."""


class LoginData(_EventData):
    method: str | None = None


class OnboardingCompletedData(_EventData):
    focus_area: str | None = None


class ChallengeStartedData(_EventData):
    challenge_type: str | None = None
    format_type: str | None = None


class ChallengeCompletedData(_EventData):
    """Score is required: every completion feeds the journey averages."""

    score: float = Field(ge=0, le=100)
    evaluation_id: str | None = None


class EvaluationViewedData(_EventData):
    evaluation_id: str


class FocusAreaSelectedData(_EventData):
    focus_area: str


EventData = (
    EmptyEventData
    | LoginData
    | OnboardingCompletedData
    | ChallengeStartedData
    | ChallengeCompletedData
    | EvaluationViewedData
    | FocusAreaSelectedData
)

EVENT_DATA_MODELS: dict[EventType, type[_EventData]] = {
    EventType.LOGIN: LoginData,
    EventType.LOGOUT: EmptyEventData,
    EventType.ONBOARDING_COMPLETED: OnboardingCompletedData,
    EventType.CHALLENGE_STARTED: ChallengeStartedData,
    EventType.CHALLENGE_COMPLETED: ChallengeCompletedData,
    EventType.EVALUATION_VIEWED: EvaluationViewedData,
    EventType.FOCUS_AREA_SELECTED: FocusAreaSelectedData,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------


class UserJourneyEvent(BaseModel):
    """One immutable fact about a user action.

    Frozen. Timestamps are normalised to timezone-aware UTC so day
    arithmetic (streaks) is unambiguous.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    event_type: EventType
    event_data: EventData = Field(default_factory=EmptyEventData)
    challenge_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    session_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def _select_payload_model(cls, values: Any) -> Any:
        """Validates event_data against the model registered for event_type."""
        if not isinstance(values, dict) or "event_type" not in values:
            return values
        event_type = EventType(values["event_type"])
        payload_model = EVENT_DATA_MODELS[event_type]
        raw = values.get("event_data")
        if raw is None:
            raw = {}
        if isinstance(raw, BaseModel):
            if not isinstance(raw, payload_model):
                raise ValueError(
                    f"event_data for {event_type.value!r} must be "
                    f"{payload_model.__name__}, got {type(raw).__name__}"
                )
            return values
        return {**values, "event_data": payload_model.model_validate(raw)}

    @field_validator("timestamp", "created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def is_challenge_completion(self) -> bool:
        return self.event_type is EventType.CHALLENGE_COMPLETED

    @property
    def score(self) -> float | None:
        """The completion score, or None for other event kinds."""
        if isinstance(self.event_data, ChallengeCompletedData):
            return self.event_data.score
        return None
