"""AIStateManager — conversation continuity across independent requests.

Maps (user, context key) to a persistent ConversationState holding the last
LLM response id. Callers ask for the state, pass its token to the provider,
and hand back the new token; they never track continuity themselves.

Creation goes through the store's atomic insert_if_absent(), so two
concurrent requests for the same context end up on the same thread.

Active states are cached in-process for ``cache_ttl_seconds`` under
``conversation_state:{user_id}:{context_key}``. Updates and archives
invalidate the entry. A TTL of 0 disables the cache. Expired entries are
swept on every insert and the cache holds at most ``cache_max_entries``,
since most context keys (one per generated thread id) are never read again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from fightclub.domain.conversation import ConversationState, split_context_key
from fightclub.errors import DomainError, NotFoundError, RepositoryError, ValidationError
from fightclub.hooks.interfaces import ConversationStateStore

logger = logging.getLogger(__name__)

_DEFAULT_CACHE_TTL = 3600
_DEFAULT_CACHE_MAX_ENTRIES = 10_000


def cache_key(user_id: str, context_key: str) -> str:
    return f"conversation_state:{user_id}:{context_key}"


class AIStateManager:
    """Owns every ConversationState mutation.

    Args:
        store: Persistence for conversation states.
        cache_ttl_seconds: How long an active state stays cached.
        cache_max_entries: Oldest entries are evicted beyond this size.
        clock: Monotonic time source, in seconds.
    """

    def __init__(
        self,
        store: ConversationStateStore,
        cache_ttl_seconds: int = _DEFAULT_CACHE_TTL,
        cache_max_entries: int = _DEFAULT_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._cache_ttl = cache_ttl_seconds
        self._cache_max_entries = cache_max_entries
        self._clock = clock
        self._cache: dict[str, tuple[float, ConversationState]] = {}

    async def find_or_create_conversation_state(
        self,
        user_id: str,
        context_key: str,
        metadata: dict[str, Any] | None = None,
    ) -> ConversationState:
        """Returns the active state for (user_id, context_key), creating it if needed.

        Args:
            user_id: Owner of the conversation.
            context_key: Flat key such as "evaluation_<threadId>".
            metadata: Stored on creation only; ignored for existing states.

        Raises:
            ValidationError: Empty user_id or context_key.
            RepositoryError: The store failed.
        """
        if not user_id:
            raise ValidationError("user_id is required for conversation state")
        if not context_key:
            raise ValidationError("context_key is required for conversation state")

        key = cache_key(user_id, context_key)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        context_type, context_id = split_context_key(context_key)
        async with _wrap_storage_errors("find_or_create", user_id=user_id, context_key=context_key):
            state = await self._store.get_active(user_id, context_type, context_id)
            if state is None:
                state = await self._store.insert_if_absent(
                    ConversationState(
                        user_id=user_id,
                        context_type=context_type,
                        context_id=context_id,
                        metadata=dict(metadata or {}),
                    )
                )
                logger.info(
                    "Conversation state ready: user=%s context=%s thread=%s",
                    user_id,
                    context_key,
                    state.thread_id,
                )

        self._cache_put(key, state)
        return state

    async def get_last_response_id(self, thread_id: str) -> str | None:
        """Returns the stored continuity token, or None (also for unknown threads)."""
        async with _wrap_storage_errors("get_last_response_id", thread_id=thread_id):
            state = await self._store.get_by_thread(thread_id)
        if state is None:
            return None
        return state.last_response_id

    async def update_last_response_id(
        self, thread_id: str, response_id: str
    ) -> ConversationState:
        """Persists a new continuity token and counts the run.

        Raises:
            NotFoundError: Unknown thread_id.
            RepositoryError: The store failed.
        """
        async with _wrap_storage_errors("update_last_response_id", thread_id=thread_id):
            state = await self._store.get_by_thread(thread_id)
            if state is None:
                raise NotFoundError("Conversation state not found", thread_id=thread_id)
            state.record_response(response_id)
            stored = await self._store.update(state)
        if stored is None:
            raise NotFoundError("Conversation state not found", thread_id=thread_id)

        self._cache_invalidate(stored)
        logger.debug("Thread %s now at response %s", thread_id, response_id)
        return stored

    async def archive_thread_state(self, thread_id: str) -> ConversationState:
        """Archives the thread. The next lookup for its context starts fresh.

        Raises:
            NotFoundError: Unknown thread_id.
        """
        async with _wrap_storage_errors("archive_thread_state", thread_id=thread_id):
            state = await self._store.get_by_thread(thread_id)
            if state is None:
                raise NotFoundError("Conversation state not found", thread_id=thread_id)
            state.archive()
            stored = await self._store.update(state)
        if stored is None:
            raise NotFoundError("Conversation state not found", thread_id=thread_id)

        self._cache_invalidate(stored)
        logger.info("Archived conversation thread %s (%s)", thread_id, stored.context_key)
        return stored

    async def list_user_states(
        self, user_id: str, status: str | None = None
    ) -> list[ConversationState]:
        async with _wrap_storage_errors("list_user_states", user_id=user_id):
            return await self._store.list_for_user(user_id, status)

    # -- Cache --------------------------------------------------------------

    def _cache_get(self, key: str) -> ConversationState | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, state = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            return None
        return state.model_copy(deep=True)

    def _cache_put(self, key: str, state: ConversationState) -> None:
        if self._cache_ttl <= 0:
            return
        now = self._clock()
        self._evict_expired(now)
        self._cache.pop(key, None)
        while len(self._cache) >= self._cache_max_entries:
            del self._cache[next(iter(self._cache))]
        self._cache[key] = (now + self._cache_ttl, state.model_copy(deep=True))

    def _evict_expired(self, now: float) -> None:
        # One TTL for every entry, so insertion order is expiry order.
        while self._cache:
            key, (expires_at, _) = next(iter(self._cache.items()))
            if expires_at > now:
                return
            del self._cache[key]

    def _cache_invalidate(self, state: ConversationState) -> None:
        self._cache.pop(cache_key(state.user_id, state.context_key), None)


@asynccontextmanager
async def _wrap_storage_errors(operation: str, **context: Any) -> AsyncIterator[None]:
    """Re-raises non-domain exceptions from the store as RepositoryError."""
    try:
        yield
    except DomainError:
        raise
    except Exception as exc:
        raise RepositoryError(
            f"Conversation state {operation} failed", **context
        ) from exc
