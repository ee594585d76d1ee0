"""Evaluation API routes — create, stream, read and list evaluations.

Five endpoints:
- POST /evaluations: evaluate responses to a challenge (201)
- POST /evaluations/stream: same, delivered as SSE chunk/complete/error frames
- GET /evaluations/{evaluation_id}: one evaluation, owner only
- GET /users/{user_id}/evaluations: a user's history, newest first
- GET /challenges/{challenge_id}/evaluations: the caller's evaluations of
  one challenge

All JSON responses use the ApiResponse envelope. Domain errors raised by
the service are mapped to status codes by the handlers in main.py.
"""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from fightclub.api.deps import get_current_user, get_evaluation_service
from fightclub.config import get_settings
from fightclub.domain.evaluation import ChallengeResponse, Evaluation
from fightclub.errors import ForbiddenError
from fightclub.schemas import ApiResponse, CompleteEvent, User
from fightclub.services.evaluations import EvaluationService, new_thread_id
from fightclub.streaming import OnChunk, OnError, create_sse_response, stream_evaluation_events

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class CreateEvaluationRequest(BaseModel):
    """Request body for POST /evaluations and POST /evaluations/stream."""

    challenge_id: str = Field(min_length=1)
    responses: list[ChallengeResponse] = Field(min_length=1)
    thread_id: str | None = None


def _evaluation_data(evaluation: Evaluation) -> dict:
    data = evaluation.model_dump(mode="json")
    data["performance_level"] = evaluation.performance_level
    return data


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/evaluations", status_code=201)
async def create_evaluation(
    body: CreateEvaluationRequest,
    user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
) -> dict:
    """Evaluates the submitted responses and returns the stored evaluation."""
    evaluation = await service.create_evaluation(
        user.id, body.challenge_id, body.responses, thread_id=body.thread_id
    )
    return ApiResponse(ok=True, data=_evaluation_data(evaluation)).model_dump()


@router.post("/evaluations/stream")
async def stream_evaluation(
    body: CreateEvaluationRequest,
    user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
):
    """Streams an evaluation via SSE.

    The challenge lookup happens before streaming begins, so an unknown
    challenge is still a 404. Once SSE starts, HTTP status is locked at
    200 and failures arrive as an error frame.
    """
    challenge = await service.get_challenge_for_user(body.challenge_id, user.id)
    thread_id = body.thread_id or new_thread_id(challenge.id)

    async def start(on_chunk: OnChunk, on_error: OnError) -> None:
        await service.evaluator.stream_evaluation(
            challenge,
            body.responses,
            thread_id=thread_id,
            on_chunk=on_chunk,
            on_error=on_error,
        )

    async def finalize(text: str) -> CompleteEvent:
        evaluation = await service.process_streamed_evaluation(
            user.id, challenge.id, text, thread_id=thread_id
        )
        return CompleteEvent(
            evaluation_id=evaluation.id,
            score=evaluation.score,
            data=_evaluation_data(evaluation),
        )

    generator = stream_evaluation_events(
        start, finalize, timeout_seconds=get_settings().stream_timeout_seconds
    )
    return create_sse_response(generator)


@router.get("/evaluations/{evaluation_id}")
async def get_evaluation(
    evaluation_id: str,
    user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
) -> dict:
    evaluation = await service.get_evaluation(evaluation_id, user.id)
    return ApiResponse(ok=True, data=_evaluation_data(evaluation)).model_dump()


@router.get("/users/{user_id}/evaluations")
async def list_user_evaluations(
    user_id: str,
    limit: int | None = Query(default=None, ge=1, le=100),
    user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
) -> dict:
    """Lists a user's evaluations. Users see their own; admins see anyone's."""
    if user.id != user_id and user.role != "admin":
        raise ForbiddenError(
            "You do not have access to this user's evaluations", user_id=user_id
        )
    evaluations = await service.list_for_user(user_id, limit)
    return ApiResponse(
        ok=True, data=[_evaluation_data(e) for e in evaluations]
    ).model_dump()


@router.get("/challenges/{challenge_id}/evaluations")
async def list_challenge_evaluations(
    challenge_id: str,
    user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
) -> dict:
    evaluations = await service.list_for_challenge(challenge_id, user.id)
    return ApiResponse(
        ok=True, data=[_evaluation_data(e) for e in evaluations]
    ).model_dump()
