"""UserJourneyService — records journey events and serves journey read models.

record_event() is load → mutate → compare-and-swap save, retried on
ConflictError with a fresh load each time, so two concurrent events for
one user can't overwrite each other. The event is appended to the log
only after the snapshot save succeeds, so a retried attempt never sees
its own event in the history. If the append fails, the previous snapshot
is saved back before the error propagates.

The log is authoritative. Every load compares the snapshot's event_count
with the number of logged events and rebuilds the journey from the log
when they differ, so a snapshot left ahead of or behind the log (a crash
between the two writes, a failed restore) is repaired on the next read
or write.

JourneyUpdated notifications pulled from the aggregate are logged on the
``fightclub.journey`` logger after each successful save.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import pydantic

from fightclub.domain.events import EventType, UserJourneyEvent
from fightclub.domain.journey import JourneyConfig, UserJourney
from fightclub.errors import ConflictError, RepositoryError, ValidationError
from fightclub.hooks.interfaces import UserJourneyRepository

logger = logging.getLogger(__name__)
journey_events_logger = logging.getLogger("fightclub.journey")

_MAX_SAVE_ATTEMPTS = 3


def journey_state_view(journey: UserJourney) -> dict[str, Any]:
    """Read model of a journey: phase, engagement, metrics and sessions."""
    return {
        "user_id": journey.user_id,
        "phase": journey.current_phase.value,
        "engagement_level": journey.engagement_level.value,
        "onboarding_completed": journey.onboarding_completed,
        "metrics": {
            "total_challenges": journey.metrics.total_challenges,
            "average_score": journey.metrics.average_score,
            "streak_days": journey.metrics.streak_days,
            "last_challenge": journey.metrics.last_challenge,
        },
        "session_count": journey.session_count,
        "current_session_started_at": journey.current_session_started_at,
        "last_activity": journey.last_activity,
        "version": journey.version,
    }


def build_event(
    user_id: str,
    event_type: EventType | str,
    event_data: dict[str, Any] | None = None,
    *,
    challenge_id: str | None = None,
    session_id: str | None = None,
    timestamp: datetime | None = None,
) -> UserJourneyEvent:
    """Builds a validated event, translating schema errors to ValidationError."""
    if not user_id:
        raise ValidationError("user_id is required for journey events")
    values: dict[str, Any] = {
        "user_id": user_id,
        "event_type": event_type,
        "event_data": event_data or {},
        "challenge_id": challenge_id,
        "session_id": session_id,
    }
    if timestamp is not None:
        values["timestamp"] = timestamp
    try:
        return UserJourneyEvent.model_validate(values)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid journey event", event_type=str(event_type), errors=exc.error_count()
        ) from exc


class UserJourneyService:
    """Application service over the UserJourney aggregate.

    Args:
        repository: Journey snapshots and event log.
        config: Session timeout configuration.
    """

    def __init__(
        self, repository: UserJourneyRepository, config: JourneyConfig
    ) -> None:
        self._repository = repository
        self._config = config

    async def record_event(
        self,
        user_id: str,
        event_type: EventType | str,
        event_data: dict[str, Any] | None = None,
        *,
        challenge_id: str | None = None,
        session_id: str | None = None,
        timestamp: datetime | None = None,
        now: datetime | None = None,
    ) -> tuple[UserJourneyEvent, UserJourney]:
        """Applies one event to the user's journey and persists both.

        Returns:
            The stored event and the saved journey.

        Raises:
            ValidationError: Invalid event payload.
            ConflictError: Lost the save race on every attempt.
            RepositoryError: Storage failed. A failed append restores the
                previous snapshot first.
        """
        event = build_event(
            user_id,
            event_type,
            event_data,
            challenge_id=challenge_id,
            session_id=session_id,
            timestamp=timestamp,
        )

        for attempt in range(1, _MAX_SAVE_ATTEMPTS + 1):
            journey = await self._load_for_event(event, now)
            previous = journey.model_copy(deep=True)
            journey.add_event(event, self._config, now=now)
            try:
                saved = await self._repository.save(journey)
            except ConflictError:
                if attempt == _MAX_SAVE_ATTEMPTS:
                    raise
                logger.warning(
                    "Journey save conflict for user %s, retry %d/%d",
                    user_id,
                    attempt,
                    _MAX_SAVE_ATTEMPTS - 1,
                )
                continue
            break

        try:
            await self._repository.append_event(event)
        except RepositoryError:
            await self._restore(previous, saved.version)
            raise

        for notification in saved.pull_domain_events():
            journey_events_logger.info(
                "UserJourneyUpdated: user=%s journey=%s event=%s",
                notification.user_id,
                notification.journey_id,
                notification.event_type,
                extra={
                    "user_id": notification.user_id,
                    "journey_id": notification.journey_id,
                    "last_event_type": notification.event_type,
                },
            )
        return event, saved

    async def get_user_events(
        self,
        user_id: str,
        event_type: EventType | str | None = None,
        limit: int | None = None,
    ) -> list[UserJourneyEvent]:
        kind = None
        if event_type is not None:
            try:
                kind = EventType(event_type)
            except ValueError as exc:
                raise ValidationError(
                    "Unknown event type", event_type=str(event_type)
                ) from exc
        return await self._repository.list_events(user_id, kind, limit)

    async def get_event_counts_by_type(self, user_id: str) -> dict[str, int]:
        return await self._repository.count_events_by_type(user_id)

    async def get_journey(
        self, user_id: str, now: datetime | None = None
    ) -> UserJourney:
        """Returns the journey with engagement re-derived against ``now``.

        Users with no events get a fresh, unsaved journey (engagement NEW).
        """
        journey = await self._repository.get_by_user(user_id)
        if journey is None:
            journey = UserJourney(user_id=user_id)
        if not await self._reconcile(journey, now):
            journey.refresh_engagement(now)
        return journey

    async def get_journey_state(
        self, user_id: str, now: datetime | None = None
    ) -> dict[str, Any]:
        """Phase, engagement, metrics and session data for one user."""
        return journey_state_view(await self.get_journey(user_id, now))

    async def get_insights(
        self, user_id: str, now: datetime | None = None
    ) -> dict[str, Any]:
        journey = await self.get_journey(user_id, now)
        return {
            "phase": journey.current_phase.value,
            "engagement_level": journey.engagement_level.value,
            **journey.generate_insights_and_recommendations(),
        }

    async def _load_for_event(
        self, event: UserJourneyEvent, now: datetime | None
    ) -> UserJourney:
        journey = await self._repository.get_by_user(event.user_id)
        if journey is None:
            journey = UserJourney(user_id=event.user_id, created_at=_utcnow())
        if await self._reconcile(journey, now):
            return journey
        if journey.last_activity is not None and event.timestamp < journey.last_activity:
            history = await self._repository.list_events(event.user_id)
            journey.attach_history(history)
        return journey

    async def _reconcile(self, journey: UserJourney, now: datetime | None) -> bool:
        """Rebuilds ``journey`` from the log if its snapshot is stale.

        Returns True when a rebuild happened; the history is then loaded.
        """
        counts = await self._repository.count_events_by_type(journey.user_id)
        logged = sum(counts.values())
        if logged == journey.event_count:
            return False
        logger.warning(
            "Journey snapshot for user %s folds %d events but the log holds %d, rebuilding",
            journey.user_id,
            journey.event_count,
            logged,
        )
        history = await self._repository.list_events(journey.user_id)
        journey.rebuild(history, self._config, now=now)
        journey.pull_domain_events()
        return True

    async def _restore(self, previous: UserJourney, saved_version: int) -> None:
        previous.version = saved_version
        try:
            await self._repository.save(previous)
        except (ConflictError, RepositoryError) as exc:
            logger.warning(
                "Could not restore journey for user %s after a failed append (%s), "
                "it is rebuilt from the log on next load",
                previous.user_id,
                exc,
            )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
