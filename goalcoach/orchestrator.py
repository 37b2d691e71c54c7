"""
Conversation orchestrator: the single entry point for one inbound user turn.
"""

from typing import Any, Optional

from goalcoach.models.domain import (
    HandlerMetadata,
    SpecialistReply,
    Turn,
    TurnResult,
)
from goalcoach.services.conversation_memory import ConversationMemoryStore
from goalcoach.services.memory_writer import MemoryWriter
from goalcoach.utils.metrics import TurnMetrics
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger, set_conversation_id

logger = get_logger(__name__)
PROMPTS = load_prompts()

ERROR_HANDLER = "error-fallback"


class ConversationOrchestrator:
    """
    Runs the turn pipeline for a conversation and always returns a reply.
    Turns of the same conversation are processed one at a time.
    """

    def __init__(
        self,
        graph: Any,
        memory_store: ConversationMemoryStore,
        memory_writer: Optional[MemoryWriter] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            graph: Compiled turn pipeline
            memory_store: Per-conversation turn windows (also provides locks)
            memory_writer: Background long-term memory writer
        """
        self.graph = graph
        self.memory_store = memory_store
        self.memory_writer = memory_writer

    async def process_turn(
        self,
        conversation_id: str,
        owner_id: Optional[str],
        user_turn: Turn | str,
        history: Optional[list[Turn]] = None,
    ) -> TurnResult:
        """
        Processes one user turn end to end.

        Args:
            conversation_id: Conversation the turn belongs to
            owner_id: Owner of the conversation; None or a guest sentinel for guests
            user_turn: The inbound user turn (plain text is accepted)
            history: Optional prior turns; the conversation memory is used when omitted

        Returns:
            TurnResult with the assistant turn and handler metadata
        """
        if isinstance(user_turn, str):
            user_turn = Turn.user(user_turn)

        set_conversation_id(conversation_id)
        metrics = TurnMetrics()
        logger.info("turn_started", owner_id=owner_id, chars=len(user_turn.content))

        async with self.memory_store.lock(conversation_id):
            memory = self.memory_store.get(conversation_id)
            if history and not len(memory):
                memory.update(history)

            inputs = {
                "conversation_id": conversation_id,
                "owner_id": owner_id,
                "user_turn": user_turn,
                "turns": [*history, user_turn] if history else [],
            }

            try:
                state = await self.graph.ainvoke(inputs)
                reply: SpecialistReply = state["reply"]
                decision = state.get("decision")
            except Exception as e:
                logger.error("turn_failed", exc_info=True, error=str(e))
                reply = SpecialistReply(
                    content=PROMPTS["responses"]["error_fallback"],
                    handler=ERROR_HANDLER,
                    model=ERROR_HANDLER,
                    error=str(e),
                )
                decision = None
                memory.update([Turn.assistant(reply.content)])

        metadata = self._metadata(reply, decision)
        metrics.finalize(
            handler=metadata.handler,
            state=metadata.state,
            domain=metadata.domain.value,
            entity_created=metadata.entity_created,
        )
        set_conversation_id(None)

        return TurnResult(assistant_turn=Turn.assistant(reply.content), handler_metadata=metadata)

    @staticmethod
    def _metadata(reply: SpecialistReply, decision: Any) -> HandlerMetadata:
        fields: dict[str, Any] = {}
        if decision is not None:
            analysis = decision.analysis
            fields = {
                "domain": analysis.domain,
                "sentiment": analysis.sentiment,
                "intent_confidence": analysis.confidence,
                "routing_confidence": decision.confidence,
            }
        return HandlerMetadata(
            handler=reply.handler,
            state=reply.state,
            model=reply.model,
            entity_created=reply.entity_created,
            entity_type=reply.entity_type,
            entity_id=reply.entity_id,
            error=reply.error,
            **fields,
        )

    async def end_conversation(self, conversation_id: str) -> None:
        """Drops the conversation window and lock once no turn is running."""
        async with self.memory_store.lock(conversation_id):
            self.memory_store.forget(conversation_id)

    async def shutdown(self) -> None:
        """Waits for pending memory writes."""
        if self.memory_writer is not None:
            await self.memory_writer.drain()
