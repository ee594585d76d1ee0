"""UserJourney aggregate — engagement, phase and metrics derived from events.

One journey per user, created lazily on the first event. Every derived
field (session count, engagement level, phase, metrics) is a pure function
of the ordered event history, the session timeout and "now". Two paths
compute it:

- add_event(): incremental, O(1) per event. Used on the hot path.
- _recalculate_state_from_events(): full replay over the loaded history.

Both must agree for every event sequence; the test suite uses replay as
the oracle for the incremental path. An event older than the journey's
last activity cannot be applied incrementally, so add_event() inserts it
in order and replays.

Boundaries use strict less-than: exactly 2 days idle is ENGAGED, exactly
30 days idle is INACTIVE, exactly 5 challenges is EXPLORER.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr

from fightclub.domain.events import EventType, UserJourneyEvent
from fightclub.errors import ValidationError

_SECONDS_PER_DAY = 86400


class EngagementLevel(str, Enum):
    NEW = "new"
    ACTIVE = "active"
    ENGAGED = "engaged"
    CASUAL = "casual"
    INACTIVE = "inactive"


class JourneyPhase(str, Enum):
    ONBOARDING = "onboarding"
    BEGINNER = "beginner"
    EXPLORER = "explorer"
    PRACTITIONER = "practitioner"
    ADVANCED = "advanced"
    MASTER = "master"


# (upper bound in days, level); first match wins.
_ENGAGEMENT_THRESHOLDS: tuple[tuple[float, EngagementLevel], ...] = (
    (2, EngagementLevel.ACTIVE),
    (7, EngagementLevel.ENGAGED),
    (30, EngagementLevel.CASUAL),
)

# (upper bound on completed challenges, phase); first match wins.
_PHASE_THRESHOLDS: tuple[tuple[int, JourneyPhase], ...] = (
    (5, JourneyPhase.BEGINNER),
    (20, JourneyPhase.EXPLORER),
    (50, JourneyPhase.PRACTITIONER),
    (100, JourneyPhase.ADVANCED),
)


def derive_engagement_level(
    last_activity: datetime | None, now: datetime
) -> EngagementLevel:
    """Classifies recency of activity. See module docstring for boundaries."""
    if last_activity is None:
        return EngagementLevel.NEW
    days_since = (now - last_activity).total_seconds() / _SECONDS_PER_DAY
    for upper_bound, level in _ENGAGEMENT_THRESHOLDS:
        if days_since < upper_bound:
            return level
    return EngagementLevel.INACTIVE


def derive_phase(onboarding_completed: bool, total_challenges: int) -> JourneyPhase:
    """Classifies depth of product usage."""
    if not onboarding_completed:
        return JourneyPhase.ONBOARDING
    for upper_bound, phase in _PHASE_THRESHOLDS:
        if total_challenges < upper_bound:
            return phase
    return JourneyPhase.MASTER


def _utc_day(moment: datetime) -> date:
    return moment.astimezone(timezone.utc).date()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JourneyConfig:
    """Tunables for session bookkeeping."""

    session_timeout_minutes: int = 30

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_timeout_minutes)


@dataclass(frozen=True)
class JourneyUpdated:
    """Record of one journey mutation, pulled by the service after save."""

    journey_id: str
    user_id: str
    event_id: str
    event_type: str
    occurred_at: datetime


class JourneyMetrics(BaseModel):
    """Rolling challenge metrics.

    score_total and last_challenge_day exist so the incremental path can
    keep the mean and the trailing streak exact without rescanning.
    """

    total_challenges: int = 0
    average_score: float = 0.0
    streak_days: int = 0
    last_challenge: datetime | None = None
    score_total: float = 0.0
    last_challenge_day: date | None = None

    def record_completion(self, score: float, timestamp: datetime) -> None:
        """Folds one in-order challenge completion into the metrics."""
        day = _utc_day(timestamp)
        self.total_challenges += 1
        self.score_total += score
        self.average_score = round(self.score_total / self.total_challenges, 2)
        if self.last_challenge_day is None:
            self.streak_days = 1
        elif day == self.last_challenge_day + timedelta(days=1):
            self.streak_days += 1
        elif day != self.last_challenge_day:
            self.streak_days = 1
        self.last_challenge_day = day
        self.last_challenge = timestamp

    @classmethod
    def from_completions(
        cls, completions: list[tuple[float, datetime]]
    ) -> JourneyMetrics:
        """Computes metrics by scanning completions ordered by timestamp."""
        if not completions:
            return cls()
        score_total = 0.0
        for score, _ in completions:
            score_total += score
        total = len(completions)

        days = sorted({_utc_day(timestamp) for _, timestamp in completions})
        streak = 1
        for later, earlier in zip(reversed(days), reversed(days[:-1])):
            if later - earlier != timedelta(days=1):
                break
            streak += 1

        return cls(
            total_challenges=total,
            average_score=round(score_total / total, 2),
            streak_days=streak,
            last_challenge=completions[-1][1],
            score_total=score_total,
            last_challenge_day=days[-1],
        )


# ---------------------------------------------------------------------------
# Insights lookup
# ---------------------------------------------------------------------------

# phase → (insight, recommendation)
_PHASE_GUIDANCE: dict[JourneyPhase, tuple[str, str]] = {
    JourneyPhase.ONBOARDING: (
        "You are just getting set up",
        "Finish onboarding to unlock personalized challenges",
    ),
    JourneyPhase.BEGINNER: (
        "You are building your foundations",
        "Try a few different challenge types to find your strengths",
    ),
    JourneyPhase.EXPLORER: (
        "You are exploring a range of challenges",
        "Pick a focus area and go deeper on it",
    ),
    JourneyPhase.PRACTITIONER: (
        "You have a solid practice record",
        "Take on harder difficulty levels to keep growing",
    ),
    JourneyPhase.ADVANCED: (
        "You are among the most practiced users",
        "Work on your weakest categories to round out your skills",
    ),
    JourneyPhase.MASTER: (
        "You have mastered the core challenge set",
        "Challenge a rival or mentor others to sharpen your thinking",
    ),
}

# engagement level → (insight, recommendation)
_ENGAGEMENT_GUIDANCE: dict[EngagementLevel, tuple[str, str]] = {
    EngagementLevel.NEW: (
        "You have not recorded any activity yet",
        "Complete your first challenge to start tracking progress",
    ),
    EngagementLevel.ACTIVE: (
        "You are regularly engaged with learning",
        "Keep up the momentum with daily challenges",
    ),
    EngagementLevel.ENGAGED: (
        "You are maintaining consistent engagement",
        "Consider setting a schedule for more regular practice",
    ),
    EngagementLevel.CASUAL: (
        "Your engagement is occasional",
        "Try to establish a more consistent learning routine",
    ),
    EngagementLevel.INACTIVE: (
        "It has been a while since your last activity",
        "Start with a simple challenge to get back into practice",
    ),
}


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


class UserJourney(BaseModel):
    """Aggregate root for one user's behavioral history.

    ``events`` holds the loaded history in timestamp order and is not part
    of the persisted snapshot. ``events_loaded`` is False for snapshots read
    from storage until the service attaches the history; replay refuses to
    run over a partial list.

    ``version`` is the optimistic-concurrency counter: repositories accept
    a save only if the stored version still equals this one.

    ``event_count`` is how many logged events the snapshot folds. A snapshot
    whose count differs from the log is stale and is rebuilt from the log.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    events: list[UserJourneyEvent] = Field(default_factory=list, exclude=True)
    events_loaded: bool = Field(default=True, exclude=True)
    last_activity: datetime | None = None
    session_count: int = 0
    current_session_started_at: datetime | None = None
    engagement_level: EngagementLevel = EngagementLevel.NEW
    current_phase: JourneyPhase = JourneyPhase.ONBOARDING
    onboarding_completed: bool = False
    metrics: JourneyMetrics = Field(default_factory=JourneyMetrics)
    metadata: dict[str, Any] = Field(default_factory=dict)
    event_count: int = 0
    version: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    _pending: list[JourneyUpdated] = PrivateAttr(default_factory=list)

    # -- History ------------------------------------------------------------

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> UserJourney:
        """Builds a journey from a stored snapshot. History is not loaded."""
        journey = cls.model_validate(data)
        journey.events = []
        journey.events_loaded = False
        return journey

    def attach_history(self, events: list[UserJourneyEvent]) -> None:
        """Attaches the full event log loaded from storage."""
        self.events = sorted(events, key=lambda e: e.timestamp)
        self.events_loaded = True

    def rebuild(
        self,
        history: list[UserJourneyEvent],
        config: JourneyConfig,
        now: datetime | None = None,
    ) -> None:
        """Replaces every derived field with a replay of ``history``."""
        self.attach_history(history)
        self._recalculate_state_from_events(config, now=now)

    # -- Mutation -----------------------------------------------------------

    def add_event(
        self,
        event: UserJourneyEvent,
        config: JourneyConfig,
        now: datetime | None = None,
    ) -> None:
        """Applies one event and emits a JourneyUpdated notification.

        Args:
            event: The event to apply. Must belong to this journey's user.
            config: Session timeout configuration.
            now: Reference time for engagement. Defaults to the current time.

        Raises:
            ValidationError: Wrong user, or an out-of-order event while the
                history is not loaded.
        """
        if event.user_id != self.user_id:
            raise ValidationError(
                "Event user does not match journey user",
                journey_user_id=self.user_id,
                event_user_id=event.user_id,
            )
        now = now or _utcnow()

        out_of_order = (
            self.last_activity is not None and event.timestamp < self.last_activity
        )
        if out_of_order:
            if not self.events_loaded:
                raise ValidationError(
                    "Out-of-order event requires the loaded history",
                    journey_id=self.id,
                    event_id=event.id,
                )
            self._insert_in_order(event)
            self._recalculate_state_from_events(config, now=now)
        else:
            if self.events_loaded:
                self.events.append(event)
            self._apply(event, config)
            self.event_count += 1
            self._refresh_classifications(now)

        self.updated_at = now
        self._pending.append(
            JourneyUpdated(
                journey_id=self.id,
                user_id=self.user_id,
                event_id=event.id,
                event_type=event.event_type.value,
                occurred_at=now,
            )
        )

    def _recalculate_state_from_events(
        self, config: JourneyConfig, now: datetime | None = None
    ) -> None:
        """Recomputes every derived field from the loaded history.

        Sessions are counted by the same timeout rule as add_event().
        Metrics are computed by scanning, not by folding, so this path is
        an independent check on the incremental one.

        Raises:
            ValidationError: If the history is not loaded.
        """
        if not self.events_loaded:
            raise ValidationError(
                "Cannot replay a journey without its event history",
                journey_id=self.id,
            )
        now = now or _utcnow()
        ordered = sorted(self.events, key=lambda e: e.timestamp)

        self.last_activity = None
        self.session_count = 0
        self.current_session_started_at = None
        for event in ordered:
            self.last_activity = event.timestamp
            self._track_session(event.timestamp, config)

        self.onboarding_completed = any(
            e.event_type is EventType.ONBOARDING_COMPLETED for e in ordered
        )
        completions = [
            (e.score, e.timestamp)
            for e in ordered
            if e.is_challenge_completion and e.score is not None
        ]
        self.metrics = JourneyMetrics.from_completions(completions)
        self.event_count = len(ordered)
        self._refresh_classifications(now)

    def refresh_engagement(self, now: datetime | None = None) -> None:
        """Re-derives the engagement level against a new reference time."""
        self._refresh_classifications(now or _utcnow())

    def pull_domain_events(self) -> list[JourneyUpdated]:
        """Returns and clears the pending JourneyUpdated notifications."""
        pending, self._pending = self._pending, []
        return pending

    # -- Read side ----------------------------------------------------------

    def generate_insights_and_recommendations(self) -> dict[str, list[str]]:
        """Maps (phase, engagement level) to fixed guidance strings."""
        phase_insight, phase_recommendation = _PHASE_GUIDANCE[self.current_phase]
        engagement_insight, engagement_recommendation = _ENGAGEMENT_GUIDANCE[
            self.engagement_level
        ]
        return {
            "insights": [phase_insight, engagement_insight],
            "recommendations": [phase_recommendation, engagement_recommendation],
        }

    # -- Internals ----------------------------------------------------------

    def _insert_in_order(self, event: UserJourneyEvent) -> None:
        keys = [e.timestamp for e in self.events]
        self.events.insert(bisect.bisect_right(keys, event.timestamp), event)

    def _apply(self, event: UserJourneyEvent, config: JourneyConfig) -> None:
        self.last_activity = event.timestamp
        self._track_session(event.timestamp, config)
        if event.event_type is EventType.ONBOARDING_COMPLETED:
            self.onboarding_completed = True
        if event.is_challenge_completion and event.score is not None:
            self.metrics.record_completion(event.score, event.timestamp)

    def _track_session(self, timestamp: datetime, config: JourneyConfig) -> None:
        started = self.current_session_started_at
        if started is None or timestamp - started > config.session_timeout:
            self.session_count += 1
            self.current_session_started_at = timestamp

    def _refresh_classifications(self, now: datetime) -> None:
        self.engagement_level = derive_engagement_level(self.last_activity, now)
        self.current_phase = derive_phase(
            self.onboarding_completed, self.metrics.total_challenges
        )
