"""Tests for fightclub.domain.conversation — ConversationState and context keys."""

from datetime import datetime, timezone

import pytest

from fightclub.domain.conversation import ConversationState, split_context_key


class TestSplitContextKey:
    """split_context_key — longest known prefix wins."""

    @pytest.mark.parametrize(
        ("key", "expected"),
        [
            ("evaluation_eval_c1_1700000000000", ("evaluation", "eval_c1_1700000000000")),
            ("evaluation_stream_eval_c1_17", ("evaluation_stream", "eval_c1_17")),
            ("rival_challenge_r9", ("rival_challenge", "r9")),
            ("challenge_generation_x", ("challenge_generation", "x")),
            ("evaluation", ("evaluation", "")),
            ("freeform", ("freeform", "")),
        ],
    )
    def test_split(self, key: str, expected: tuple[str, str]) -> None:
        assert split_context_key(key) == expected

    def test_context_key_round_trips(self) -> None:
        context_type, context_id = split_context_key("evaluation_stream_t1")
        state = ConversationState(user_id="u", context_type=context_type, context_id=context_id)
        assert state.context_key == "evaluation_stream_t1"


class TestConversationState:
    """Continuity bookkeeping on the state itself."""

    def test_defaults(self) -> None:
        state = ConversationState(user_id="u", context_type="evaluation")
        assert state.is_active
        assert state.thread_id.startswith("thread_")
        assert state.last_response_id is None
        assert state.run_count == 0
        assert state.message_count == 0

    def test_thread_ids_are_unique(self) -> None:
        a = ConversationState(user_id="u", context_type="evaluation")
        b = ConversationState(user_id="u", context_type="evaluation")
        assert a.thread_id != b.thread_id

    def test_record_response_counts_a_run(self) -> None:
        now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        state = ConversationState(user_id="u", context_type="evaluation")
        state.record_response("resp_1", now=now)
        state.record_response("resp_2", now=now)
        assert state.last_response_id == "resp_2"
        assert state.run_count == 2
        assert state.message_count == 4
        assert state.last_activity == now

    def test_archive(self) -> None:
        state = ConversationState(user_id="u", context_type="evaluation")
        state.archive()
        assert state.status == "archived"
        assert not state.is_active
