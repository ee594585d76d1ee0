"""In-memory user journey repository — development stub for UserJourneyRepository.

Snapshots are keyed by user_id; events live in one list per user. save()
performs the same version compare-and-swap a database would, so the
service's conflict-retry loop is exercised without Supabase.

Usage:
    from fightclub.hooks.journeys import InMemoryUserJourneyRepository

    repo = InMemoryUserJourneyRepository()
    journey = await repo.save(UserJourney(user_id="u1"))  # version 0 → 1
"""

from collections import Counter

from fightclub.domain.events import EventType, UserJourneyEvent
from fightclub.domain.journey import UserJourney
from fightclub.errors import ConflictError
from fightclub.hooks.interfaces import UserJourneyRepository


class InMemoryUserJourneyRepository(UserJourneyRepository):
    """STUB — dict-backed storage, loses data on restart.

    Snapshots are stored without their event history, the same as a
    database row would be.
    """

    def __init__(self) -> None:
        self._journeys: dict[str, dict] = {}
        self._events: dict[str, list[UserJourneyEvent]] = {}

    async def get_by_user(self, user_id: str) -> UserJourney | None:
        snapshot = self._journeys.get(user_id)
        if snapshot is None:
            return None
        return UserJourney.from_snapshot(snapshot)

    async def save(self, journey: UserJourney) -> UserJourney:
        stored = self._journeys.get(journey.user_id)
        stored_version = stored["version"] if stored is not None else 0
        if stored_version != journey.version:
            raise ConflictError(
                "Journey was modified concurrently",
                user_id=journey.user_id,
                expected_version=journey.version,
                stored_version=stored_version,
            )
        journey.version += 1
        self._journeys[journey.user_id] = journey.model_dump()
        return journey

    async def append_event(self, event: UserJourneyEvent) -> UserJourneyEvent:
        self._events.setdefault(event.user_id, []).append(event)
        return event

    async def list_events(
        self,
        user_id: str,
        event_type: EventType | None = None,
        limit: int | None = None,
    ) -> list[UserJourneyEvent]:
        events = sorted(self._events.get(user_id, []), key=lambda e: e.timestamp)
        if event_type is not None:
            events = [e for e in events if e.event_type is event_type]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    async def count_events_by_type(self, user_id: str) -> dict[str, int]:
        counts = Counter(e.event_type.value for e in self._events.get(user_id, []))
        return dict(counts)
