"""OpenAI provider using the Responses API of the openai SDK.

Implements the AIProvider contract. Conversational continuity uses
``previous_response_id``: OpenAI stores the prior turns server-side, so
each call sends only the new instructions and input.

Retries transient errors (429, 5xx, connection failures) with
exponential backoff. The SDK's own retries are disabled so attempts and
backoff are logged here. Streaming retries only cover opening the stream;
once text has been yielded, a failure propagates to the caller.

Also exposes poll_until_complete() for responses created with
``background=True``: it polls until a terminal status or a timeout.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import openai

from fightclub.ai.providers.base import (
    AIProvider,
    CompletionResult,
    ModelConfig,
    ResponseCompleted,
    StreamEvent,
    TextChunk,
    UsageInfo,
)
from fightclub.errors import ProcessingError

logger = logging.getLogger(__name__)

_MAX_RETRIES = 2  # 3 total attempts
_BACKOFF_BASE = 1.0  # seconds, doubles each retry

_POLL_INTERVAL = 1.0
_POLL_TIMEOUT = 60.0
TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled", "incomplete"})


def _is_retryable(exc: Exception) -> bool:
    """Checks whether an SDK error is transient and worth retrying.

    Retries on:
    - RateLimitError (429)
    - InternalServerError (500+)
    - APIConnectionError (network failures and timeouts)

    All other API errors (400, 401, 403, 404) propagate immediately.
    """
    return isinstance(
        exc,
        (openai.RateLimitError, openai.InternalServerError, openai.APIConnectionError),
    )


def _usage_from(response: Any) -> UsageInfo:
    usage = getattr(response, "usage", None)
    if usage is None:
        return UsageInfo(prompt_tokens=0, completion_tokens=0)
    return UsageInfo(
        prompt_tokens=usage.input_tokens,
        completion_tokens=usage.output_tokens,
    )


class OpenAIProvider(AIProvider):
    """OpenAI provider for the Responses API.

    Args:
        api_key: OpenAI API key.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, api_key: str, timeout: float = 60.0) -> None:
        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            max_retries=0,
            timeout=timeout,
        )

    async def complete(
        self,
        *,
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Returns the full response text, its id and usage (non-streaming).

        Retries on transient errors (429, 5xx) with exponential backoff.
        """
        kwargs = self._build_kwargs(
            instructions, input, model_config, previous_response_id, json_mode
        )
        response = await self._create_with_retry("complete", kwargs)
        return CompletionResult(
            text=response.output_text,
            response_id=response.id,
            usage=_usage_from(response),
        )

    async def stream(
        self,
        *,
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Streams text deltas, then one ResponseCompleted.

        Raises:
            ProcessingError: If the stream reports a failed response.
        """
        kwargs = self._build_kwargs(
            instructions, input, model_config, previous_response_id, json_mode=False
        )
        kwargs["stream"] = True
        stream = await self._create_with_retry("stream", kwargs)

        async for event in stream:
            if event.type == "response.output_text.delta":
                yield TextChunk(text=event.delta)
            elif event.type == "response.completed":
                yield ResponseCompleted(
                    response_id=event.response.id,
                    usage=_usage_from(event.response),
                )
            elif event.type == "response.failed":
                error = getattr(event.response, "error", None)
                raise ProcessingError(
                    "OpenAI response failed",
                    response_id=event.response.id,
                    detail=getattr(error, "message", None),
                )
            elif event.type == "error":
                raise ProcessingError(
                    "OpenAI stream error", detail=getattr(event, "message", None)
                )

    async def poll_until_complete(
        self,
        response_id: str,
        *,
        interval: float = _POLL_INTERVAL,
        timeout: float = _POLL_TIMEOUT,
    ) -> Any:
        """Polls a background response until it reaches a terminal status.

        Args:
            response_id: Id of a response created with background=True.
            interval: Seconds between polls.
            timeout: Maximum wall-clock seconds to wait.

        Returns:
            The SDK Response object in a terminal status.

        Raises:
            ProcessingError: If the timeout elapses first.
        """
        try:
            async with asyncio.timeout(timeout):
                while True:
                    response = await self._client.responses.retrieve(response_id)
                    if response.status in TERMINAL_STATUSES:
                        return response
                    logger.debug(
                        "Response %s status=%s, polling again in %.1fs",
                        response_id,
                        response.status,
                        interval,
                    )
                    await asyncio.sleep(interval)
        except TimeoutError as exc:
            raise ProcessingError(
                "Response polling timed out", response_id=response_id, timeout=timeout
            ) from exc

    @staticmethod
    def _build_kwargs(
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None,
        json_mode: bool,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model_config.model_id,
            "instructions": instructions,
            "input": input,
            "temperature": model_config.temperature,
        }
        if previous_response_id is not None:
            kwargs["previous_response_id"] = previous_response_id
        if json_mode:
            kwargs["text"] = {"format": {"type": "json_object"}}
        return kwargs

    async def _create_with_retry(self, call_type: str, kwargs: dict[str, Any]) -> Any:
        for attempt in range(_MAX_RETRIES + 1):
            if attempt > 0:
                backoff = _BACKOFF_BASE * (2 ** (attempt - 1))
                logger.warning(
                    "OpenAI %s retry %d/%d after %.1fs backoff",
                    call_type,
                    attempt,
                    _MAX_RETRIES,
                    backoff,
                )
                await asyncio.sleep(backoff)
            try:
                return await self._client.responses.create(**kwargs)
            except openai.OpenAIError as exc:
                if not _is_retryable(exc) or attempt == _MAX_RETRIES:
                    raise
        raise RuntimeError("Unreachable")  # pragma: no cover
