"""Usage logging for evaluation LLM calls.

One INFO line per completed call, keyed by challenge and conversation
thread. Besides token counts it records the continuity chain: the
response id the provider returned and whether the call continued an
earlier response. A thread whose calls never show ``continued=True``
after the first one has lost its continuity token.

Fields are also attached through ``extra`` for JSON log formatters.

Logger name: ``fightclub.ai.usage``
"""

import logging

from fightclub.ai.providers.base import UsageInfo

logger = logging.getLogger("fightclub.ai.usage")


def log_ai_call(
    *,
    call_type: str,
    model_id: str,
    usage: UsageInfo,
    latency_ms: float,
    user_id: str,
    challenge_id: str,
    thread_id: str,
    response_id: str,
    previous_response_id: str | None,
) -> None:
    """Logs a completed evaluation call.

    Args:
        call_type: "evaluation" or "evaluation_stream".
        model_id: Model the provider ran.
        usage: Token counts reported by the provider.
        latency_ms: Wall-clock duration, first request to final event.
        user_id: Owner of the conversation state.
        challenge_id: Challenge being evaluated.
        thread_id: Conversation state thread the call belongs to.
        response_id: Continuity token returned by this call.
        previous_response_id: Token the call continued from, None on the
            first call of a thread.
    """
    continued = previous_response_id is not None
    logger.info(
        "AI call: %s %s challenge=%s thread=%s response=%s continued=%s "
        "tokens_in=%d tokens_out=%d latency=%.0fms",
        call_type,
        model_id,
        challenge_id,
        thread_id,
        response_id,
        continued,
        usage.prompt_tokens,
        usage.completion_tokens,
        latency_ms,
        extra={
            "call_type": call_type,
            "model_id": model_id,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.prompt_tokens + usage.completion_tokens,
            "latency_ms": latency_ms,
            "user_id": user_id,
            "challenge_id": challenge_id,
            "thread_id": thread_id,
            "response_id": response_id,
            "previous_response_id": previous_response_id,
            "continued": continued,
        },
    )
