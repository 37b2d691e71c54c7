"""
Graph nodes for the turn pipeline.
Each node is thin and delegates business logic to services.
"""

from goalcoach.models.domain import PipelineState, Turn
from goalcoach.services.conversation_memory import ConversationMemoryStore
from goalcoach.services.general_service import GeneralConversationHandler
from goalcoach.services.memory_writer import MemoryWriter
from goalcoach.services.router_service import SpecialistRouter
from goalcoach.utils.metrics import end_step_timing, start_step_timing
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)


class GraphNodes:
    """
    Container for all graph node functions.
    Nodes are thin wrappers that delegate to services.
    """

    def __init__(
        self,
        memory_store: ConversationMemoryStore,
        router: SpecialistRouter,
        general_handler: GeneralConversationHandler,
        memory_writer: MemoryWriter,
    ):
        """
        Initialize graph nodes with required services.

        Args:
            memory_store: Per-conversation turn windows
            router: Specialist router
            general_handler: Handler used when no specialist is chosen
            memory_writer: Background writer for long-term memory
        """
        self.memory_store = memory_store
        self.router = router
        self.general_handler = general_handler
        self.memory_writer = memory_writer

    async def remember_user_turn_node(self, state: PipelineState) -> dict:
        """
        Adds the inbound turn to conversation memory and builds the context message.
        A caller-supplied history replaces the memory window as transcript.
        """
        logger.info("node_started", node="remember_user_turn")
        memory = self.memory_store.get(state["conversation_id"])
        memory.update([state["user_turn"]])

        turns = state.get("turns") or memory.turns
        return {"turns": turns, "context": memory.context_message()}

    async def router_node(self, state: PipelineState) -> dict:
        logger.info("node_started", node="router")
        start_step_timing("routing")
        decision = await self.router.route(state["turns"], state.get("context"))
        end_step_timing("routing")
        return {"decision": decision}

    async def specialist_node(self, state: PipelineState) -> dict:
        decision = state["decision"]
        specialist = decision.handler
        logger.info("node_started", node="specialist", specialist=specialist.name)

        start_step_timing(f"specialist_{specialist.name}")
        reply = await specialist.respond(
            state["turns"], state.get("owner_id"), decision.analysis, state.get("context")
        )
        end_step_timing(f"specialist_{specialist.name}")
        return {"reply": reply}

    async def general_node(self, state: PipelineState) -> dict:
        logger.info("node_started", node="general")
        start_step_timing("general")
        reply = await self.general_handler.respond(
            state["turns"],
            state.get("owner_id"),
            state["decision"].analysis,
            state.get("context"),
        )
        end_step_timing("general")
        return {"reply": reply}

    async def remember_reply_node(self, state: PipelineState) -> dict:
        """
        Records the assistant reply and schedules long-term memory writes.
        """
        logger.info("node_started", node="remember_reply")
        reply = state["reply"]
        self.memory_store.get(state["conversation_id"]).update([Turn.assistant(reply.content)])

        owner_id = state.get("owner_id")
        metadata = {
            "conversation_id": state["conversation_id"],
            "handler": reply.handler,
        }
        self.memory_writer.remember(owner_id, state["user_turn"].content, {**metadata, "role": "user"})
        if reply.entity_created:
            self.memory_writer.remember(
                owner_id,
                f"Created {reply.entity_type} {reply.entity_id}: {reply.content.splitlines()[0]}",
                {**metadata, "entity_type": reply.entity_type, "entity_id": reply.entity_id},
            )
        return {}
