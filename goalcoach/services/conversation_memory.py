"""
Conversation memory: a bounded window of recent turns per conversation.
Produces the synthetic context message injected into model calls.
"""

import asyncio
from collections import deque
from typing import Any, Iterable
from pydantic import ValidationError

from goalcoach.models.domain import Role, Turn
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()


class ConversationMemory:
    """
    Most recent non-system turns of one conversation, oldest evicted first.
    """

    def __init__(self, capacity: int = 20, context_turns: int = 5, truncate_chars: int = 100):
        """
        Initialize the window.

        Args:
            capacity: Maximum number of turns retained
            context_turns: Turns rendered into the context message
            truncate_chars: Characters kept per rendered turn
        """
        self.capacity = capacity
        self.context_turns = context_turns
        self.truncate_chars = truncate_chars
        self._turns: deque[Turn] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def update(self, turns: Iterable[Turn | dict[str, Any]]) -> None:
        """
        Appends non-system turns, evicting the oldest at capacity.
        Malformed entries are skipped.
        """
        for raw in turns:
            try:
                turn = raw if isinstance(raw, Turn) else Turn.model_validate(raw)
            except ValidationError as e:
                logger.warning("memory_turn_skipped", error=str(e))
                continue
            if turn.role == Role.SYSTEM:
                continue
            self._turns.append(turn)

    def context_message(self) -> Turn | None:
        """
        Renders the last few turns as a system turn, or None when empty.
        """
        try:
            recent = list(self._turns)[-self.context_turns:]
            if not recent:
                return None

            lines = [PROMPTS["memory"]["context_header"]]
            for turn in recent:
                content = turn.content
                if len(content) > self.truncate_chars:
                    content = content[: self.truncate_chars] + "..."
                lines.append(f"{turn.role.value}: {content}")
            lines.append("")
            lines.append(PROMPTS["memory"]["context_footer"])
            return Turn.system("\n".join(lines))

        except Exception as e:
            logger.warning("memory_context_failed", error=str(e))
            return None

    def clear(self) -> None:
        self._turns.clear()


class ConversationMemoryStore:
    """
    Conversation memories keyed by conversation id.
    Each conversation gets its own lock so turns are processed one at a time.
    Entries live until ``forget`` is called; callers end conversations through
    ``ConversationOrchestrator.end_conversation``.
    """

    def __init__(self, capacity: int = 20, context_turns: int = 5, truncate_chars: int = 100):
        self.capacity = capacity
        self.context_turns = context_turns
        self.truncate_chars = truncate_chars
        self._memories: dict[str, ConversationMemory] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, conversation_id: str) -> ConversationMemory:
        memory = self._memories.get(conversation_id)
        if memory is None:
            memory = ConversationMemory(self.capacity, self.context_turns, self.truncate_chars)
            self._memories[conversation_id] = memory
        return memory

    def lock(self, conversation_id: str) -> asyncio.Lock:
        return self._locks.setdefault(conversation_id, asyncio.Lock())

    def forget(self, conversation_id: str) -> None:
        self._memories.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)
        logger.info("conversation_forgotten", conversation_id=conversation_id)
