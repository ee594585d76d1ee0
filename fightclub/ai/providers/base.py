"""Base AI provider interface and result/stream event types.

Defines the contract every LLM provider implementation (OpenAI, Mock) must
satisfy. Calls are stateless on our side: conversational continuity comes
from passing the previous response id, which the provider resolves to the
prior turns server-side.

Leaf module — imports only stdlib and fightclub.models.
No schemas, no config, no framework imports.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass

from fightclub.models import ModelConfig


# ---------------------------------------------------------------------------
# Result and stream event types: the contract between providers and consumers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UsageInfo:
    """Token usage from a completed LLM call. Logged by ai.usage."""

    prompt_tokens: int
    completion_tokens: int


@dataclass(frozen=True)
class CompletionResult:
    """A finished non-streaming call.

    response_id is the continuity token to pass as previous_response_id
    on the next turn.
    """

    text: str
    response_id: str
    usage: UsageInfo


@dataclass(frozen=True)
class TextChunk:
    """A piece of streamed text from the provider."""

    text: str


@dataclass(frozen=True)
class ResponseCompleted:
    """Terminal stream event carrying the continuity token and usage."""

    response_id: str
    usage: UsageInfo


# Union type for stream events: consumers use isinstance() to dispatch
StreamEvent = TextChunk | ResponseCompleted


# ---------------------------------------------------------------------------
# AIProvider ABC: the interface every provider implements
# ---------------------------------------------------------------------------


class AIProvider(ABC):
    """Abstract base for LLM providers.

    Concrete implementations (OpenAIProvider, MockProvider) implement
    complete() and stream() against their respective backends.
    """

    @abstractmethod
    async def complete(
        self,
        *,
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        """Returns the full response (non-streaming).

        Args:
            instructions: The system instruction for this turn.
            input: The user turn.
            model_config: Model ID and temperature.
            previous_response_id: Continuity token from the prior turn, if any.
            json_mode: Ask the model for a single JSON object.

        Returns:
            The response text, its id and token usage.
        """

    @abstractmethod
    async def stream(
        self,
        *,
        instructions: str,
        input: str,
        model_config: ModelConfig,
        previous_response_id: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Streams a response as text chunks, then one ResponseCompleted.

        Args:
            instructions: The system instruction for this turn.
            input: The user turn.
            model_config: Model ID and temperature.
            previous_response_id: Continuity token from the prior turn, if any.

        Yields:
            TextChunk for text deltas, ResponseCompleted once at the end.
        """
