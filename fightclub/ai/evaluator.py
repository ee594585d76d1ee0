"""ChallengeEvaluationService — LLM evaluation of challenge responses.

Orchestrates one evaluation call:

1. Validate inputs (before any I/O).
2. Resolve the conversation state for (user, "evaluation_<threadId>").
3. Read the continuity token so the model sees earlier evaluations.
4. Build the prompt from the challenge, its type metadata and responses.
5. Call the provider in JSON mode with the token attached.
6. Persist the new token. Best effort: a failure here is logged and does
   not void the evaluation.
7. Parse the JSON and enrich it with timestamps and thread info.

stream_evaluation() follows the same contract but delivers text through
callbacks. Callbacks may be plain functions or coroutines.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fightclub.ai.prompts import EvaluationPromptBuilder
from fightclub.ai.providers.base import AIProvider, ResponseCompleted, TextChunk
from fightclub.ai.state_manager import AIStateManager
from fightclub.ai.usage import log_ai_call
from fightclub.domain.evaluation import Challenge, ChallengeResponse
from fightclub.errors import DomainError, ProcessingError, ValidationError
from fightclub.models import ModelConfig

logger = logging.getLogger(__name__)

EVALUATION_CONTEXT = "evaluation"
EVALUATION_STREAM_CONTEXT = "evaluation_stream"

ChunkCallback = Callable[[str], Awaitable[None] | None]
CompleteCallback = Callable[[str], Awaitable[None] | None]
ErrorCallback = Callable[[Exception], Awaitable[None] | None]


@dataclass(frozen=True)
class EvaluationOutcome:
    """Parsed LLM evaluation plus the bookkeeping added by the service."""

    payload: dict[str, Any]
    evaluated_at: datetime
    thread_id: str
    conversation_thread_id: str
    response_id: str
    challenge_type_name: str
    format_type_name: str

    def as_dict(self) -> dict[str, Any]:
        return {
            **self.payload,
            "evaluated_at": self.evaluated_at.isoformat(),
            "evaluation_thread_id": self.thread_id,
            "conversation_thread_id": self.conversation_thread_id,
            "response_id": self.response_id,
            "challenge_type_name": self.challenge_type_name,
            "format_type_name": self.format_type_name,
        }


def parse_evaluation_json(text: str) -> dict[str, Any]:
    """Parses the model's JSON object.

    Tolerates a Markdown code fence around the object.

    Raises:
        ProcessingError: Not valid JSON, or not a JSON object.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.startswith("json"):
            cleaned = cleaned[len("json"):]
        cleaned = cleaned.strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ProcessingError(
            "LLM returned malformed evaluation JSON", preview=text[:120]
        ) from exc
    if not isinstance(data, dict):
        raise ProcessingError(
            "LLM evaluation JSON is not an object", type=type(data).__name__
        )
    return data


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _validate_request(
    challenge: Challenge | None,
    responses: list[ChallengeResponse] | None,
    thread_id: str | None,
) -> None:
    """Checks preconditions. Order matches the error a client sees first."""
    if challenge is None:
        raise ValidationError("Challenge is required for evaluation")
    if not isinstance(responses, list) or not responses:
        raise ValidationError("Responses must be a non-empty list")
    if not thread_id:
        raise ValidationError("thread_id is required for evaluation")
    if not challenge.user_id:
        raise ValidationError(
            "Challenge must have a user_id", challenge_id=challenge.id
        )


class ChallengeEvaluationService:
    """Evaluates challenge responses with conversational continuity.

    Args:
        provider: LLM provider.
        state_manager: Owner of conversation states.
        prompt_builder: Assembles instructions and input.
        model_config: Model and temperature for evaluation calls.
    """

    def __init__(
        self,
        provider: AIProvider,
        state_manager: AIStateManager,
        prompt_builder: EvaluationPromptBuilder,
        model_config: ModelConfig,
    ) -> None:
        self._provider = provider
        self._state_manager = state_manager
        self._prompt_builder = prompt_builder
        self._model_config = model_config

    async def evaluate_responses(
        self,
        challenge: Challenge,
        responses: list[ChallengeResponse],
        *,
        thread_id: str,
    ) -> EvaluationOutcome:
        """Evaluates responses and returns the enriched payload.

        Raises:
            ValidationError: Missing challenge, user, responses or thread id.
            ProcessingError: Provider failure or malformed JSON.
            RepositoryError: Conversation state could not be resolved.
        """
        _validate_request(challenge, responses, thread_id)
        user_id = challenge.user_id

        state = await self._state_manager.find_or_create_conversation_state(
            user_id,
            f"{EVALUATION_CONTEXT}_{thread_id}",
            {"challenge_id": challenge.id},
        )
        previous_response_id = await self._state_manager.get_last_response_id(
            state.thread_id
        )
        prompt = self._prompt_builder.build(challenge, responses)

        start = time.monotonic()
        try:
            result = await self._provider.complete(
                instructions=prompt.instructions,
                input=prompt.input,
                model_config=self._model_config,
                previous_response_id=previous_response_id,
                json_mode=True,
            )
        except DomainError:
            raise
        except Exception as exc:
            raise ProcessingError(
                "Evaluation LLM call failed",
                challenge_id=challenge.id,
                thread_id=state.thread_id,
            ) from exc
        latency_ms = (time.monotonic() - start) * 1000

        log_ai_call(
            call_type="evaluation",
            model_id=self._model_config.model_id,
            usage=result.usage,
            latency_ms=latency_ms,
            user_id=user_id,
            challenge_id=challenge.id,
            thread_id=state.thread_id,
            response_id=result.response_id,
            previous_response_id=previous_response_id,
        )

        await self._record_continuity(state.thread_id, result.response_id)
        payload = parse_evaluation_json(result.text)

        return EvaluationOutcome(
            payload=payload,
            evaluated_at=datetime.now(timezone.utc),
            thread_id=thread_id,
            conversation_thread_id=state.thread_id,
            response_id=result.response_id,
            challenge_type_name=challenge.type_name,
            format_type_name=challenge.format_name,
        )

    async def stream_evaluation(
        self,
        challenge: Challenge,
        responses: list[ChallengeResponse],
        *,
        thread_id: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Streams an evaluation through callbacks.

        on_chunk gets each text delta, on_complete the accumulated text.
        On a provider failure on_error gets a ProcessingError; without
        on_error the ProcessingError is raised instead.

        Raises:
            ValidationError: Same preconditions as evaluate_responses, plus
                a callable on_chunk. Raised before any I/O, never routed
                to on_error.
        """
        _validate_request(challenge, responses, thread_id)
        if not callable(on_chunk):
            raise ValidationError("on_chunk callback is required for streaming")
        user_id = challenge.user_id

        state = await self._state_manager.find_or_create_conversation_state(
            user_id,
            f"{EVALUATION_STREAM_CONTEXT}_{thread_id}",
            {"challenge_id": challenge.id},
        )
        previous_response_id = await self._state_manager.get_last_response_id(
            state.thread_id
        )
        prompt = self._prompt_builder.build(challenge, responses)

        accumulated: list[str] = []
        completed: ResponseCompleted | None = None
        start = time.monotonic()
        try:
            async for event in self._provider.stream(
                instructions=prompt.instructions,
                input=prompt.input,
                model_config=self._model_config,
                previous_response_id=previous_response_id,
            ):
                if isinstance(event, TextChunk):
                    accumulated.append(event.text)
                    await _invoke(on_chunk, event.text)
                elif isinstance(event, ResponseCompleted):
                    completed = event
        except Exception as exc:
            logger.warning(
                "Evaluation stream failed after %d chunks: %s", len(accumulated), exc
            )
            if isinstance(exc, ProcessingError):
                error = exc
            else:
                error = ProcessingError(
                    "Evaluation stream failed",
                    challenge_id=challenge.id,
                    thread_id=state.thread_id,
                )
                error.__cause__ = exc
            if on_error is None:
                raise error
            await _invoke(on_error, error)
            return

        if completed is not None:
            log_ai_call(
                call_type="evaluation_stream",
                model_id=self._model_config.model_id,
                usage=completed.usage,
                latency_ms=(time.monotonic() - start) * 1000,
                user_id=user_id,
                challenge_id=challenge.id,
                thread_id=state.thread_id,
                response_id=completed.response_id,
                previous_response_id=previous_response_id,
            )
            await self._record_continuity(state.thread_id, completed.response_id)

        await _invoke(on_complete, "".join(accumulated))

    async def _record_continuity(self, thread_id: str, response_id: str) -> None:
        """Persists the continuity token. Failures are logged, not raised."""
        try:
            await self._state_manager.update_last_response_id(thread_id, response_id)
        except DomainError as exc:
            logger.warning(
                "Could not update continuity token for thread %s: %s", thread_id, exc
            )
