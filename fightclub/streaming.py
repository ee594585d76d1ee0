"""SSE streaming utilities for evaluation delivery.

Three-layer separation:
- format_sse_event: wire formatting (event + JSON data)
- stream_evaluation_events: bridges the callback-based evaluator to an
  async generator and owns the chunk → complete/error lifecycle
- create_sse_response: wraps any SSE generator in the right HTTP response

Every frame's JSON carries a ``type`` of "chunk", "complete" or "error".
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from pydantic import BaseModel
from starlette.responses import StreamingResponse

from fightclub.errors import DomainError
from fightclub.schemas import ChunkEvent, CompleteEvent, ErrorEvent

logger = logging.getLogger("fightclub.streaming")

OnChunk = Callable[[str], Awaitable[None]]
OnError = Callable[[Exception], Awaitable[None]]

# start(on_chunk, on_error) runs the evaluator; finalize(text) persists it.
StreamStarter = Callable[[OnChunk, OnError], Awaitable[None]]
StreamFinalizer = Callable[[str], Awaitable[CompleteEvent]]

_END = object()


def format_sse_event(event_type: str, data: BaseModel) -> str:
    """Formats a single SSE event string.

    Args:
        event_type: One of "chunk", "complete", "error".
        data: A Pydantic model (ChunkEvent, CompleteEvent, or ErrorEvent).

    Returns:
        SSE-formatted string: "event: {type}\\ndata: {json}\\n\\n"
    """
    return f"event: {event_type}\ndata: {data.model_dump_json()}\n\n"


def create_sse_response(generator: AsyncGenerator[str, None]) -> StreamingResponse:
    """Wraps an async generator of SSE-formatted strings in a StreamingResponse."""
    return StreamingResponse(
        content=generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


def _error_frame(exc: BaseException, partial: str) -> str:
    if isinstance(exc, DomainError):
        code, message = exc.code, exc.message
    else:
        code, message = "STREAM_ERROR", "Something went wrong while evaluating. Try again."
    return format_sse_event(
        "error", ErrorEvent(code=code, message=message, partial_text=partial)
    )


async def stream_evaluation_events(
    start: StreamStarter,
    finalize: StreamFinalizer,
    timeout_seconds: float = 60.0,
) -> AsyncGenerator[str, None]:
    """Turns a callback-driven evaluation into a full SSE event stream.

    ``start`` runs in its own task and pushes text through ``on_chunk``;
    each chunk is yielded as it arrives. When the task finishes, the
    accumulated text goes to ``finalize`` and its CompleteEvent closes the
    stream. Any failure (reported via ``on_error``, raised by ``start`` or
    by ``finalize``, or a timeout) yields one error frame instead.

    The generator never re-raises: once streaming begins the HTTP status
    is already 200.

    Args:
        start: Coroutine function taking (on_chunk, on_error).
        finalize: Coroutine function mapping the full text to a CompleteEvent.
        timeout_seconds: Maximum wall-clock time for the generation phase.

    Yields:
        SSE-formatted strings (chunk events, then one complete or error event).
    """
    queue: asyncio.Queue[Any] = asyncio.Queue()
    accumulated: list[str] = []
    reported: list[Exception] = []

    async def on_chunk(text: str) -> None:
        await queue.put(text)

    async def on_error(exc: Exception) -> None:
        reported.append(exc)

    task = asyncio.create_task(start(on_chunk, on_error))
    task.add_done_callback(lambda _: queue.put_nowait(_END))

    try:
        try:
            async with asyncio.timeout(timeout_seconds):
                while True:
                    item = await queue.get()
                    if item is _END:
                        break
                    accumulated.append(item)
                    yield format_sse_event("chunk", ChunkEvent(content=item))
        except TimeoutError:
            partial = "".join(accumulated)
            logger.warning(
                "Evaluation stream timed out after %.1fs, partial_text length=%d",
                timeout_seconds,
                len(partial),
            )
            yield format_sse_event(
                "error",
                ErrorEvent(
                    code="AI_TIMEOUT",
                    message="The evaluation is taking too long. Try again.",
                    partial_text=partial,
                ),
            )
            return

        full_text = "".join(accumulated)
        failure = reported[0] if reported else task.exception()
        if failure is not None:
            logger.warning(
                "Evaluation stream failed: %s, partial_text length=%d",
                failure,
                len(full_text),
            )
            yield _error_frame(failure, full_text)
            return

        try:
            complete = await finalize(full_text)
        except Exception as exc:
            if isinstance(exc, DomainError):
                logger.warning("Streamed evaluation could not be saved: %s", exc)
            else:
                logger.exception("Unexpected error finalizing streamed evaluation")
            yield _error_frame(exc, full_text)
            return

        yield format_sse_event("complete", complete)
    finally:
        if not task.done():
            task.cancel()
