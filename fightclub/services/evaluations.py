"""EvaluationService — the evaluation workflow behind the HTTP API.

create_evaluation(): challenge lookup → LLM evaluation with continuity →
Evaluation entity (with growth against the previous one) → persist →
challenge_completed journey event.

The journey event is a side channel: if recording it fails, the error is
logged and the persisted evaluation is still returned.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fightclub.ai.evaluator import (
    ChallengeEvaluationService,
    EvaluationOutcome,
    parse_evaluation_json,
)
from fightclub.domain.evaluation import Challenge, ChallengeResponse, Evaluation
from fightclub.domain.events import EventType
from fightclub.errors import (
    DomainError,
    ForbiddenError,
    NotFoundError,
    ProcessingError,
    ValidationError,
)
from fightclub.hooks.interfaces import ChallengeRepository, EvaluationRepository
from fightclub.services.journeys import UserJourneyService

logger = logging.getLogger(__name__)


def new_thread_id(challenge_id: str) -> str:
    """Thread id for a client that didn't supply one."""
    return f"eval_{challenge_id}_{int(time.time() * 1000)}"


class EvaluationService:
    """Creates, persists and serves evaluations.

    Args:
        evaluator: LLM evaluation orchestration.
        evaluations: Evaluation persistence.
        challenges: Challenge lookup.
        journeys: Journey event recording.
    """

    def __init__(
        self,
        evaluator: ChallengeEvaluationService,
        evaluations: EvaluationRepository,
        challenges: ChallengeRepository,
        journeys: UserJourneyService,
    ) -> None:
        self._evaluator = evaluator
        self._evaluations = evaluations
        self._challenges = challenges
        self._journeys = journeys

    @property
    def evaluator(self) -> ChallengeEvaluationService:
        return self._evaluator

    async def get_challenge_for_user(self, challenge_id: str, user_id: str) -> Challenge:
        """Loads a challenge and binds it to the requesting user.

        Raises:
            NotFoundError: Unknown challenge.
            ForbiddenError: The challenge belongs to another user.
        """
        challenge = await self._challenges.get(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found", challenge_id=challenge_id)
        if challenge.user_id is not None and challenge.user_id != user_id:
            raise ForbiddenError(
                "You do not have access to this challenge", challenge_id=challenge_id
            )
        return challenge.model_copy(update={"user_id": user_id})

    async def create_evaluation(
        self,
        user_id: str,
        challenge_id: str,
        responses: list[ChallengeResponse],
        *,
        thread_id: str | None = None,
    ) -> Evaluation:
        """Evaluates responses to a challenge and persists the result."""
        if not challenge_id or not challenge_id.strip():
            raise ValidationError("challenge_id is required")
        challenge = await self.get_challenge_for_user(challenge_id, user_id)
        thread_id = thread_id or new_thread_id(challenge_id)

        outcome = await self._evaluator.evaluate_responses(
            challenge, responses, thread_id=thread_id
        )
        evaluation = self._build_evaluation(
            outcome.payload,
            user_id=user_id,
            challenge=challenge,
            thread_id=thread_id,
            response_id=outcome.response_id,
            metadata=_outcome_metadata(outcome),
        )
        return await self._persist(evaluation)

    async def process_streamed_evaluation(
        self,
        user_id: str,
        challenge_id: str,
        text: str,
        *,
        thread_id: str,
    ) -> Evaluation:
        """Turns the accumulated streamed text into a persisted Evaluation.

        Raises:
            NotFoundError: Unknown challenge.
            ProcessingError: The text is not a valid evaluation object.
        """
        challenge = await self.get_challenge_for_user(challenge_id, user_id)
        payload = parse_evaluation_json(text)
        evaluation = self._build_evaluation(
            payload,
            user_id=user_id,
            challenge=challenge,
            thread_id=thread_id,
            response_id=None,
            metadata={
                "streamed": True,
                "challenge_type_name": challenge.type_name,
                "format_type_name": challenge.format_name,
            },
        )
        return await self._persist(evaluation)

    async def get_evaluation(self, evaluation_id: str, user_id: str) -> Evaluation:
        """Raises NotFoundError if absent, ForbiddenError if not the owner."""
        evaluation = await self._evaluations.get(evaluation_id)
        if evaluation is None:
            raise NotFoundError("Evaluation not found", evaluation_id=evaluation_id)
        if evaluation.user_id != user_id:
            raise ForbiddenError(
                "You do not have access to this evaluation",
                evaluation_id=evaluation_id,
            )
        return evaluation

    async def list_for_user(
        self, user_id: str, limit: int | None = None
    ) -> list[Evaluation]:
        return await self._evaluations.list_by_user(user_id, limit)

    async def list_for_challenge(
        self, challenge_id: str, user_id: str
    ) -> list[Evaluation]:
        """The requesting user's evaluations for one challenge."""
        evaluations = await self._evaluations.list_by_challenge(challenge_id)
        return [e for e in evaluations if e.user_id == user_id]

    # -- Internals ----------------------------------------------------------

    def _build_evaluation(
        self,
        payload: dict[str, Any],
        *,
        user_id: str,
        challenge: Challenge,
        thread_id: str,
        response_id: str | None,
        metadata: dict[str, Any],
    ) -> Evaluation:
        try:
            evaluation = Evaluation.from_llm_payload(
                payload,
                user_id=user_id,
                challenge_id=challenge.id,
                thread_id=thread_id,
                response_id=response_id,
            )
        except ValidationError as exc:
            raise ProcessingError(
                "LLM evaluation payload is invalid",
                challenge_id=challenge.id,
                reason=exc.message,
            ) from exc
        evaluation.metadata.update(metadata)
        return evaluation

    async def _persist(self, evaluation: Evaluation) -> Evaluation:
        previous = await self._evaluations.list_by_user(evaluation.user_id, limit=1)
        evaluation.apply_growth(previous[0] if previous else None)
        saved = await self._evaluations.save(evaluation)
        logger.info(
            "Evaluation %s saved: user=%s challenge=%s score=%.1f",
            saved.id,
            saved.user_id,
            saved.challenge_id,
            saved.score,
        )
        await self._record_completion(saved)
        return saved

    async def _record_completion(self, evaluation: Evaluation) -> None:
        try:
            await self._journeys.record_event(
                evaluation.user_id,
                EventType.CHALLENGE_COMPLETED,
                {"score": evaluation.score, "evaluation_id": evaluation.id},
                challenge_id=evaluation.challenge_id,
            )
        except DomainError as exc:
            logger.warning(
                "Could not record journey event for evaluation %s: %s",
                evaluation.id,
                exc,
            )


def _outcome_metadata(outcome: EvaluationOutcome) -> dict[str, Any]:
    return {
        "evaluated_at": outcome.evaluated_at.isoformat(),
        "conversation_thread_id": outcome.conversation_thread_id,
        "challenge_type_name": outcome.challenge_type_name,
        "format_type_name": outcome.format_type_name,
    }
