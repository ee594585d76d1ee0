"""Mock AI provider for testing and development.

Deterministic, zero-cost AIProvider implementation that returns
configurable canned responses. Used by:
- The test suite (via conftest.mock_provider fixture)
- Development mode (AI_BACKEND=mock) for team members without API keys
- Reference implementation of the AIProvider contract

Every call is recorded in ``calls`` so tests can assert call counts and
the continuity token that was passed.
"""

from collections.abc import AsyncIterator
from typing import Any

from fightclub.ai.providers.base import (
    AIProvider,
    CompletionResult,
    ModelConfig,
    ResponseCompleted,
    StreamEvent,
    TextChunk,
    UsageInfo,
)

_DEFAULT_RESPONSES = [
    '{"overall_score": 75, "overall_feedback": "Solid reasoning.", '
    '"strengths": ["Clear structure"], '
    '"areas_for_improvement": ["Cite evidence"], '
    '"category_scores": {"clarity": 82, "evidence": 48}, '
    '"next_steps": ["Practice sourcing claims"]}'
]
_DEFAULT_USAGE = UsageInfo(prompt_tokens=10, completion_tokens=5)


class MockProvider(AIProvider):
    """Deterministic AI provider for testing.

    Args:
        responses: Text strings to return. complete() joins them; stream()
            yields each as a TextChunk. Defaults to one valid evaluation JSON.
        usage: Token usage reported for every call. Defaults to 10/5.
        error: If set, both complete() and stream() raise this immediately.
        response_id_prefix: Response ids are "<prefix>_<n>" with n counting
            calls from 1.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        usage: UsageInfo | None = None,
        error: Exception | None = None,
        response_id_prefix: str = "resp_mock",
    ) -> None:
        self.responses = responses if responses is not None else list(_DEFAULT_RESPONSES)
        self.usage = usage or _DEFAULT_USAGE
        self.error = error
        self.response_id_prefix = response_id_prefix
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        *,
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Returns concatenated responses. Raises the configured error if set."""
        response_id = self._record(
            "complete", instructions, input, model_config, previous_response_id, json_mode
        )
        if self.error is not None:
            raise self.error
        return CompletionResult(
            text="".join(self.responses), response_id=response_id, usage=self.usage
        )

    async def stream(
        self,
        *,
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yields canned text chunks, then ResponseCompleted.

        Raises configured error before yielding anything if error is set.
        """
        response_id = self._record(
            "stream", instructions, input, model_config, previous_response_id, False
        )
        if self.error is not None:
            raise self.error

        for text in self.responses:
            yield TextChunk(text=text)

        yield ResponseCompleted(response_id=response_id, usage=self.usage)

    def _record(
        self,
        method: str,
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None,
        json_mode: bool,
    ) -> str:
        self.calls.append(
            {
                "method": method,
                "instructions": instructions,
                "input": input,
                "model_id": model_config.model_id,
                "temperature": model_config.temperature,
                "previous_response_id": previous_response_id,
                "json_mode": json_mode,
            }
        )
        return f"{self.response_id_prefix}_{len(self.calls)}"
