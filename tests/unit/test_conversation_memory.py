"""
Unit tests for ConversationMemory and ConversationMemoryStore.
Tests window bounds, system-turn filtering and the context message.
"""

import pytest

from goalcoach.models.domain import Role, Turn
from goalcoach.services.conversation_memory import (
    ConversationMemory,
    ConversationMemoryStore,
)


class TestConversationWindow:
    """Tests for the bounded turn window."""

    def test_evicts_oldest_turn_at_capacity(self):
        memory = ConversationMemory(capacity=10)

        memory.update([Turn.user(f"message {i}") for i in range(12)])

        assert len(memory) == 10
        assert memory.turns[0].content == "message 2"
        assert memory.turns[-1].content == "message 11"

    def test_system_turns_are_never_stored(self):
        memory = ConversationMemory()

        memory.update([Turn.system("internal"), Turn.user("hi"), Turn.assistant("hello")])

        assert [turn.role for turn in memory.turns] == [Role.USER, Role.ASSISTANT]

    def test_malformed_entries_are_skipped(self):
        memory = ConversationMemory()

        memory.update([{"role": "user", "content": "valid"}, {"role": "robot"}, Turn.user("also valid")])

        assert [turn.content for turn in memory.turns] == ["valid", "also valid"]


class TestContextMessage:
    """Tests for the synthetic context message."""

    def test_empty_memory_has_no_context(self):
        assert ConversationMemory().context_message() is None

    def test_renders_last_five_turns_truncated(self):
        memory = ConversationMemory(context_turns=5, truncate_chars=100)
        memory.update([Turn.user(f"turn {i}") for i in range(7)])
        memory.update([Turn.assistant("x" * 150)])

        context = memory.context_message()

        assert context.role == Role.SYSTEM
        assert "turn 0" not in context.content
        assert "turn 1" not in context.content
        assert "turn 2" not in context.content
        assert "user: turn 6" in context.content
        assert "assistant: " + "x" * 100 + "..." in context.content
        assert "x" * 101 not in context.content


class TestMemoryStore:
    """Tests for per-conversation isolation."""

    def test_conversations_are_isolated(self):
        store = ConversationMemoryStore()

        store.get("a").update([Turn.user("only in a")])

        assert len(store.get("a")) == 1
        assert len(store.get("b")) == 0

    @pytest.mark.asyncio
    async def test_lock_is_stable_per_conversation(self):
        store = ConversationMemoryStore()

        assert store.lock("a") is store.lock("a")
        assert store.lock("a") is not store.lock("b")

    def test_forget_drops_window(self):
        store = ConversationMemoryStore()
        store.get("a").update([Turn.user("hello")])

        store.forget("a")

        assert len(store.get("a")) == 0
