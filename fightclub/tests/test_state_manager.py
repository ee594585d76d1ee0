"""Tests for fightclub.ai.state_manager — AIStateManager continuity bookkeeping."""

import asyncio

import pytest

from fightclub.ai.state_manager import AIStateManager, cache_key
from fightclub.errors import NotFoundError, RepositoryError, ValidationError
from fightclub.hooks.conversations import InMemoryConversationStateStore


class _CountingStore(InMemoryConversationStateStore):
    """Counts reads so cache behaviour is observable."""

    def __init__(self) -> None:
        super().__init__()
        self.get_active_calls = 0

    async def get_active(self, user_id, context_type, context_id):
        self.get_active_calls += 1
        return await super().get_active(user_id, context_type, context_id)


class _BrokenStore(InMemoryConversationStateStore):
    async def get_active(self, user_id, context_type, context_id):
        raise ConnectionError("database unreachable")


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store() -> _CountingStore:
    return _CountingStore()


@pytest.fixture
def manager(store: _CountingStore) -> AIStateManager:
    return AIStateManager(store)


class TestFindOrCreate:
    """find_or_create_conversation_state — one active thread per context."""

    @pytest.mark.asyncio
    async def test_creates_state_from_context_key(self, manager: AIStateManager) -> None:
        state = await manager.find_or_create_conversation_state(
            "user-1", "evaluation_eval_c1_1", {"challenge_id": "c1"}
        )
        assert state.user_id == "user-1"
        assert state.context_type == "evaluation"
        assert state.context_id == "eval_c1_1"
        assert state.metadata == {"challenge_id": "c1"}
        assert state.last_response_id is None

    @pytest.mark.asyncio
    async def test_repeat_lookup_returns_same_thread(self, manager: AIStateManager) -> None:
        first = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        second = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        assert first.thread_id == second.thread_id

    @pytest.mark.asyncio
    async def test_metadata_ignored_for_existing_state(self, manager: AIStateManager) -> None:
        await manager.find_or_create_conversation_state("user-1", "evaluation_t1", {"a": 1})
        again = await manager.find_or_create_conversation_state(
            "user-1", "evaluation_t1", {"b": 2}
        )
        assert again.metadata == {"a": 1}

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_thread(self) -> None:
        manager = AIStateManager(InMemoryConversationStateStore(), cache_ttl_seconds=0)
        states = await asyncio.gather(
            *(
                manager.find_or_create_conversation_state("user-1", "evaluation_t1")
                for _ in range(5)
            )
        )
        assert len({s.thread_id for s in states}) == 1

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, manager: AIStateManager) -> None:
        a = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        b = await manager.find_or_create_conversation_state("user-2", "evaluation_t1")
        assert a.thread_id != b.thread_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("user_id", "context_key"), [("", "evaluation_t1"), ("u", "")])
    async def test_empty_arguments_rejected(
        self, manager: AIStateManager, user_id: str, context_key: str
    ) -> None:
        with pytest.raises(ValidationError):
            await manager.find_or_create_conversation_state(user_id, context_key)

    @pytest.mark.asyncio
    async def test_store_failure_becomes_repository_error(self) -> None:
        manager = AIStateManager(_BrokenStore())
        with pytest.raises(RepositoryError) as exc_info:
            await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestCache:
    """Active states are cached until an update invalidates them."""

    @pytest.mark.asyncio
    async def test_second_lookup_served_from_cache(
        self, manager: AIStateManager, store: _CountingStore
    ) -> None:
        await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        assert store.get_active_calls == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_cache(self, store: _CountingStore) -> None:
        manager = AIStateManager(store, cache_ttl_seconds=0)
        await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        assert store.get_active_calls == 2

    @pytest.mark.asyncio
    async def test_update_invalidates_cache(
        self, manager: AIStateManager, store: _CountingStore
    ) -> None:
        state = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        await manager.update_last_response_id(state.thread_id, "resp_1")
        refreshed = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        assert store.get_active_calls == 2
        assert refreshed.last_response_id == "resp_1"

    @pytest.mark.asyncio
    async def test_expired_entries_swept_on_insert(self, store: _CountingStore) -> None:
        clock = _Clock()
        manager = AIStateManager(store, cache_ttl_seconds=1, clock=clock)
        for n in range(500):
            await manager.find_or_create_conversation_state("user-1", f"evaluation_t{n}")
        assert len(manager._cache) == 500

        clock.now += 1.1
        await manager.find_or_create_conversation_state("user-1", "evaluation_fresh")

        assert list(manager._cache) == [cache_key("user-1", "evaluation_fresh")]

    @pytest.mark.asyncio
    async def test_expired_entry_reloaded_from_store(self, store: _CountingStore) -> None:
        clock = _Clock()
        manager = AIStateManager(store, cache_ttl_seconds=10, clock=clock)
        await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        clock.now += 10
        await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        assert store.get_active_calls == 2

    @pytest.mark.asyncio
    async def test_size_bound_evicts_oldest(self, store: _CountingStore) -> None:
        manager = AIStateManager(store, cache_max_entries=2)
        for thread in ("t1", "t2", "t3"):
            await manager.find_or_create_conversation_state("user-1", f"evaluation_{thread}")
        assert list(manager._cache) == [
            cache_key("user-1", "evaluation_t2"),
            cache_key("user-1", "evaluation_t3"),
        ]

    def test_cache_key_format(self) -> None:
        assert cache_key("u1", "evaluation_t1") == "conversation_state:u1:evaluation_t1"


class TestContinuityToken:
    """get_last_response_id / update_last_response_id."""

    @pytest.mark.asyncio
    async def test_unknown_thread_has_no_token(self, manager: AIStateManager) -> None:
        assert await manager.get_last_response_id("thread_missing") is None

    @pytest.mark.asyncio
    async def test_update_stores_token_and_counts_run(self, manager: AIStateManager) -> None:
        state = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        updated = await manager.update_last_response_id(state.thread_id, "resp_1")
        assert updated.last_response_id == "resp_1"
        assert updated.run_count == 1
        assert await manager.get_last_response_id(state.thread_id) == "resp_1"

    @pytest.mark.asyncio
    async def test_update_unknown_thread_raises(self, manager: AIStateManager) -> None:
        with pytest.raises(NotFoundError):
            await manager.update_last_response_id("thread_missing", "resp_1")


class TestArchive:
    @pytest.mark.asyncio
    async def test_archived_context_starts_fresh(self, manager: AIStateManager) -> None:
        state = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        archived = await manager.archive_thread_state(state.thread_id)
        assert archived.status == "archived"

        fresh = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        assert fresh.thread_id != state.thread_id
        assert fresh.is_active

    @pytest.mark.asyncio
    async def test_archive_unknown_thread_raises(self, manager: AIStateManager) -> None:
        with pytest.raises(NotFoundError):
            await manager.archive_thread_state("thread_missing")

    @pytest.mark.asyncio
    async def test_list_user_states_filters_status(self, manager: AIStateManager) -> None:
        first = await manager.find_or_create_conversation_state("user-1", "evaluation_t1")
        await manager.find_or_create_conversation_state("user-1", "evaluation_t2")
        await manager.archive_thread_state(first.thread_id)

        active = await manager.list_user_states("user-1", "active")
        archived = await manager.list_user_states("user-1", "archived")
        assert [s.context_id for s in active] == ["t2"]
        assert [s.thread_id for s in archived] == [first.thread_id]
