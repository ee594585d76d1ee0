"""In-memory conversation state store — development stub for ConversationStateStore.

Dict-backed storage keyed by thread_id, with a secondary index on
(user_id, context_type, context_id) for active states. Data lives only in
memory and is lost on restart.

insert_if_absent() checks and writes with no await in between, so it is
atomic on a single event loop.

TEAM: The Supabase implementation lives in fightclub.hooks.supabase. It
enforces the same invariant with a partial unique index.

Usage:
    from fightclub.hooks.conversations import InMemoryConversationStateStore

    store = InMemoryConversationStateStore()
    state = await store.insert_if_absent(ConversationState(...))
"""

from fightclub.domain.conversation import ConversationState
from fightclub.hooks.interfaces import ConversationStateStore


class InMemoryConversationStateStore(ConversationStateStore):
    """STUB — dict-backed storage, loses data on restart.

    Stores deep copies so callers can't mutate stored rows by accident.
    """

    def __init__(self) -> None:
        self._by_thread: dict[str, ConversationState] = {}
        self._active: dict[tuple[str, str, str], str] = {}

    async def get_active(
        self, user_id: str, context_type: str, context_id: str
    ) -> ConversationState | None:
        thread_id = self._active.get((user_id, context_type, context_id))
        if thread_id is None:
            return None
        return self._by_thread[thread_id].model_copy(deep=True)

    async def insert_if_absent(self, state: ConversationState) -> ConversationState:
        key = (state.user_id, state.context_type, state.context_id)
        existing = self._active.get(key)
        if existing is not None:
            return self._by_thread[existing].model_copy(deep=True)
        self._by_thread[state.thread_id] = state.model_copy(deep=True)
        self._active[key] = state.thread_id
        return state.model_copy(deep=True)

    async def get_by_thread(self, thread_id: str) -> ConversationState | None:
        state = self._by_thread.get(thread_id)
        return state.model_copy(deep=True) if state is not None else None

    async def update(self, state: ConversationState) -> ConversationState | None:
        if state.thread_id not in self._by_thread:
            return None
        self._by_thread[state.thread_id] = state.model_copy(deep=True)
        key = (state.user_id, state.context_type, state.context_id)
        if state.is_active:
            self._active[key] = state.thread_id
        elif self._active.get(key) == state.thread_id:
            del self._active[key]
        return state.model_copy(deep=True)

    async def list_for_user(
        self, user_id: str, status: str | None = None
    ) -> list[ConversationState]:
        states = [
            s.model_copy(deep=True)
            for s in self._by_thread.values()
            if s.user_id == user_id and (status is None or s.status == status)
        ]
        return sorted(states, key=lambda s: s.last_activity, reverse=True)
