"""Tests for AgentContext, messages and run outcomes."""

import pytest

from agentflow.context import AgentContext, Message
from agentflow.exceptions import AgentInterruptedError
from agentflow.interrupts.models import AgentInterrupt
from agentflow.outcome import Completed, Failed, Interrupted


# ---------------------------------------------------------------------------
# AgentContext
# ---------------------------------------------------------------------------


class TestAgentContext:
    def test_state_round_trip(self):
        context = AgentContext("s1")
        context.set_state("k", 1)
        assert context.get_state("k") == 1
        assert context.get_state("missing", "default") == "default"

    def test_load_state_merges_incoming_keys(self):
        context = AgentContext("s1", state={"a": 1, "b": 2})
        context.load_state({"b": 3, "c": 4})
        assert context.get_all_state() == {"a": 1, "b": 3, "c": 4}

    def test_get_all_state_is_a_copy(self):
        context = AgentContext("s1", state={"a": 1})
        snapshot = context.get_all_state()
        snapshot["a"] = 2
        assert context.get_state("a") == 1

    def test_history_preserves_insertion_order(self):
        context = AgentContext("s1")
        context.add_message({"role": "user", "content": "hi"})
        context.add_message({"role": "assistant", "content": "hello"})
        context.add_message(Message(role="tool", content="{}", tool_name="t", tool_call_id="c1"))
        roles = [m.role for m in context.get_conversation_history()]
        assert roles == ["user", "assistant", "tool"]

    def test_history_is_read_only_view(self):
        context = AgentContext("s1")
        context.add_message({"role": "user", "content": "hi"})
        history = context.get_conversation_history()
        assert isinstance(history, tuple)
        assert len(history) == 1

    def test_messages_share_the_user_turn(self):
        context = AgentContext("s1")
        user = context.add_message({"role": "user", "content": "hi"})
        reply = context.add_message({"role": "assistant", "content": "hello"})
        assert user.turn_uuid is not None
        assert reply.turn_uuid == user.turn_uuid
        assert reply.variant_index == 0

    def test_replies_point_at_their_user_message(self):
        context = AgentContext("s1")
        context.add_message({"role": "assistant", "content": "welcome"})
        context.add_message({"role": "user", "content": "hi"})
        reply = context.add_message({"role": "assistant", "content": "hello"})
        assert context.get_conversation_history()[0].user_message_id is None
        assert reply.user_message_id == 1

    def test_new_variant_increments_under_same_turn(self):
        context = AgentContext("s1")
        user = context.add_message({"role": "user", "content": "hi"})
        context.add_message({"role": "assistant", "content": "first"})
        assert context.new_variant() == 1
        retry = context.add_message({"role": "assistant", "content": "second"})
        assert retry.turn_uuid == user.turn_uuid
        assert retry.variant_index == 1

    def test_next_user_message_starts_new_turn(self):
        context = AgentContext("s1")
        first = context.add_message({"role": "user", "content": "one"})
        second = context.add_message({"role": "user", "content": "two"})
        assert first.turn_uuid != second.turn_uuid
        assert context.current_turn == second.turn_uuid

    def test_to_dict_and_from_dict(self):
        context = AgentContext("s1", user_input="hi", state={"x": [1, 2]})
        context.add_message({"role": "user", "content": "hi"})
        restored = AgentContext.from_dict(context.to_dict())
        assert restored.session_id == "s1"
        assert restored.get_user_input() == "hi"
        assert restored.get_state("x") == [1, 2]
        assert restored.get_conversation_history()[0].content == "hi"
        assert restored.current_turn == context.current_turn


class TestMessage:
    def test_to_dict_drops_unset_fields(self):
        data = Message(role="user", content="hi").to_dict()
        assert "tool_calls" not in data
        assert data["role"] == "user"
        assert isinstance(data["timestamp"], str)

    def test_from_dict_parses_timestamp(self):
        message = Message.from_dict({"role": "assistant", "content": "x", "timestamp": "2024-01-02T03:04:05"})
        assert message.timestamp.year == 2024


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class TestOutcome:
    def test_completed_unwraps_result(self):
        outcome = Completed("done")
        assert outcome.status == "completed"
        assert outcome.unwrap() == "done"

    def test_failed_unwrap_raises_error(self):
        outcome = Failed(ValueError("boom"))
        assert outcome.status == "failed"
        with pytest.raises(ValueError, match="boom"):
            outcome.unwrap()

    def test_interrupted_unwrap_raises(self):
        interrupt = AgentInterrupt(session_id="s1", agent_name="a", reason="requires approval")
        outcome = Interrupted(interrupt)
        assert outcome.status == "interrupted"
        with pytest.raises(AgentInterruptedError) as exc_info:
            outcome.unwrap()
        assert exc_info.value.interrupt_id == interrupt.id
