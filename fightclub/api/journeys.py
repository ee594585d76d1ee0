"""Journey API routes — record events and read the caller's journey.

- POST /journey/events: record one event (201), returns the event and the
  updated journey state
- GET /journey/state: phase, engagement, metrics, sessions
- GET /journey/events: the event log (optionally filtered) plus counts by type
- GET /journey/insights: guidance for the current phase and engagement

Every endpoint acts on the authenticated user.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from fightclub.api.deps import get_current_user, get_journey_service
from fightclub.schemas import ApiResponse, User
from fightclub.services.journeys import UserJourneyService, journey_state_view

router = APIRouter()


class RecordEventRequest(BaseModel):
    """Request body for POST /journey/events."""

    event_type: str = Field(min_length=1)
    event_data: dict[str, Any] = Field(default_factory=dict)
    challenge_id: str | None = None
    session_id: str | None = None
    timestamp: datetime | None = None


@router.post("/journey/events", status_code=201)
async def record_event(
    body: RecordEventRequest,
    user: User = Depends(get_current_user),
    journeys: UserJourneyService = Depends(get_journey_service),
) -> dict:
    event, journey = await journeys.record_event(
        user.id,
        body.event_type,
        body.event_data,
        challenge_id=body.challenge_id,
        session_id=body.session_id,
        timestamp=body.timestamp,
    )
    return ApiResponse(
        ok=True,
        data={
            "event": event.model_dump(mode="json"),
            "journey": journey_state_view(journey),
        },
    ).model_dump(mode="json")


@router.get("/journey/state")
async def journey_state(
    user: User = Depends(get_current_user),
    journeys: UserJourneyService = Depends(get_journey_service),
) -> dict:
    state = await journeys.get_journey_state(user.id)
    return ApiResponse(ok=True, data=state).model_dump(mode="json")


@router.get("/journey/events")
async def journey_events(
    event_type: str | None = None,
    limit: int | None = Query(default=None, ge=1, le=500),
    user: User = Depends(get_current_user),
    journeys: UserJourneyService = Depends(get_journey_service),
) -> dict:
    """Lists events in timestamp order; with a limit, the most recent ones."""
    events = await journeys.get_user_events(user.id, event_type, limit)
    counts = await journeys.get_event_counts_by_type(user.id)
    return ApiResponse(
        ok=True,
        data={
            "events": [e.model_dump(mode="json") for e in events],
            "counts": counts,
        },
    ).model_dump(mode="json")


@router.get("/journey/insights")
async def journey_insights(
    user: User = Depends(get_current_user),
    journeys: UserJourneyService = Depends(get_journey_service),
) -> dict:
    insights = await journeys.get_insights(user.id)
    return ApiResponse(ok=True, data=insights).model_dump()
