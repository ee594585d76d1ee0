"""Contract tests for ConversationStateStore — behavioral contract.

Verifies that any ConversationStateStore implementation satisfies:
- At most one active state per (user, context type, context id)
- insert_if_absent returns the winner when a state already exists
- update matches by thread id and maintains the active index
- Archived states stay readable by thread but are no longer active

Run against registered implementations:
    python -m pytest fightclub/tests/contracts/test_conversation_store_contract.py -v
"""

import pytest

from fightclub.domain.conversation import ConversationState


def _state(user_id: str = "user-1", context_id: str = "eval_1", **overrides) -> ConversationState:
    return ConversationState(
        user_id=user_id, context_type="evaluation", context_id=context_id, **overrides
    )


class TestConversationStoreContract:
    """Behavioral contract for ConversationStateStore implementations."""

    @pytest.mark.asyncio
    async def test_get_active_missing_returns_none(self, conversation_store) -> None:
        assert await conversation_store.get_active("user-1", "evaluation", "x") is None

    @pytest.mark.asyncio
    async def test_insert_then_get_active(self, conversation_store) -> None:
        state = _state()
        stored = await conversation_store.insert_if_absent(state)
        assert stored.thread_id == state.thread_id

        active = await conversation_store.get_active("user-1", "evaluation", "eval_1")
        assert active is not None
        assert active.thread_id == state.thread_id

    @pytest.mark.asyncio
    async def test_second_insert_returns_existing(self, conversation_store) -> None:
        """A losing insert gets the first writer's state back, never a duplicate."""
        first = await conversation_store.insert_if_absent(_state())
        second = await conversation_store.insert_if_absent(_state())
        assert second.thread_id == first.thread_id

        states = await conversation_store.list_for_user("user-1", "active")
        assert len(states) == 1

    @pytest.mark.asyncio
    async def test_contexts_are_independent(self, conversation_store) -> None:
        a = await conversation_store.insert_if_absent(_state(context_id="eval_a"))
        b = await conversation_store.insert_if_absent(_state(context_id="eval_b"))
        c = await conversation_store.insert_if_absent(_state(user_id="user-2", context_id="eval_a"))
        assert len({a.thread_id, b.thread_id, c.thread_id}) == 3

    @pytest.mark.asyncio
    async def test_update_persists_continuity_token(self, conversation_store) -> None:
        state = await conversation_store.insert_if_absent(_state())
        state.record_response("resp_1")
        updated = await conversation_store.update(state)
        assert updated is not None

        reloaded = await conversation_store.get_by_thread(state.thread_id)
        assert reloaded is not None
        assert reloaded.last_response_id == "resp_1"
        assert reloaded.run_count == 1
        assert reloaded.message_count == 2

    @pytest.mark.asyncio
    async def test_update_unknown_thread_returns_none(self, conversation_store) -> None:
        assert await conversation_store.update(_state(thread_id="thread_missing")) is None

    @pytest.mark.asyncio
    async def test_archived_state_frees_the_context(self, conversation_store) -> None:
        state = await conversation_store.insert_if_absent(_state())
        state.archive()
        await conversation_store.update(state)

        assert await conversation_store.get_active("user-1", "evaluation", "eval_1") is None
        archived = await conversation_store.get_by_thread(state.thread_id)
        assert archived is not None
        assert archived.status == "archived"

        fresh = await conversation_store.insert_if_absent(_state())
        assert fresh.thread_id != state.thread_id

    @pytest.mark.asyncio
    async def test_list_for_user_filters_by_status(self, conversation_store) -> None:
        kept = await conversation_store.insert_if_absent(_state(context_id="eval_a"))
        gone = await conversation_store.insert_if_absent(_state(context_id="eval_b"))
        gone.archive()
        await conversation_store.update(gone)

        active = await conversation_store.list_for_user("user-1", "active")
        everything = await conversation_store.list_for_user("user-1")
        assert [s.thread_id for s in active] == [kept.thread_id]
        assert len(everything) == 2
