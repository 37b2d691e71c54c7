"""
Graph builder for the conversational turn pipeline.
Assembles services, specialists and nodes into an executable graph.
"""

from typing import Optional
from supabase import create_client
from langgraph.graph import StateGraph, END

from goalcoach import config
from goalcoach.config import Settings
from goalcoach.models.domain import PipelineState
from goalcoach.models.embeddings import get_embeddings_model
from goalcoach.database.supabase import SupabaseMemoryStore, SupabasePersistence
from goalcoach.services.llm_service import LLMService, create_llm
from goalcoach.services.conversation_memory import ConversationMemoryStore
from goalcoach.services.intent_service import IntentClassifier
from goalcoach.services.confirmation_service import ConfirmationDetector
from goalcoach.services.extraction_service import EntityExtractor
from goalcoach.services.action_executor import ActionExecutor
from goalcoach.services.router_service import SpecialistRegistry, SpecialistRouter
from goalcoach.services.general_service import GeneralConversationHandler
from goalcoach.services.memory_writer import MemoryWriter
from goalcoach.specialists import (
    FitnessSpecialist,
    GoalSpecialist,
    TaskSpecialist,
    TechnicalSpecialist,
)
from goalcoach.graph.nodes import GraphNodes
from goalcoach.graph.edges import route_after_router
from goalcoach.orchestrator import ConversationOrchestrator
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)


def build_graph(nodes: GraphNodes):
    """
    Builds and compiles the turn pipeline:
    remember_user_turn -> router -> specialist | general -> remember_reply.

    Args:
        nodes: Node container wired with services

    Returns:
        Compiled graph ready for execution
    """
    logger.info("graph_workflow_building")
    workflow = StateGraph(PipelineState)

    workflow.add_node("remember_user_turn", nodes.remember_user_turn_node)
    workflow.add_node("router", nodes.router_node)
    workflow.add_node("specialist", nodes.specialist_node)
    workflow.add_node("general", nodes.general_node)
    workflow.add_node("remember_reply", nodes.remember_reply_node)

    workflow.set_entry_point("remember_user_turn")
    workflow.add_edge("remember_user_turn", "router")
    workflow.add_conditional_edges(
        "router",
        route_after_router,
        {"specialist": "specialist", "general": "general"},
    )
    workflow.add_edge("specialist", "remember_reply")
    workflow.add_edge("general", "remember_reply")
    workflow.add_edge("remember_reply", END)

    logger.info("graph_compiling")
    return workflow.compile()


def _llm_service(model_name: str, settings: Settings) -> LLMService:
    return LLMService(
        model=create_llm(model_name=model_name, api_key=settings.api_key_for(model_name)),
        max_retries=settings.llm_max_retries,
        timeout=settings.llm_timeout,
        rate_limit=settings.llm_rate_limit,
    )


def build_orchestrator(settings: Optional[Settings] = None):
    """
    Wires every component from settings and returns a ready orchestrator.

    Args:
        settings: Settings to use (defaults to the environment)

    Returns:
        ConversationOrchestrator
    """
    logger.info("orchestrator_components_initializing")
    settings = settings or config.get_settings()

    supabase = create_client(settings.supabase_url, settings.supabase_service_key)
    persistence = SupabasePersistence(
        supabase,
        timeout=settings.persistence_timeout,
        guest_email=settings.guest_owner_email,
    )

    embeddings_provider = settings.embeddings_provider.lower()
    embeddings = get_embeddings_model(
        provider=embeddings_provider,
        model=settings.embeddings_model,
        api_key=(
            settings.google_api_key
            if embeddings_provider == "google"
            else settings.openai_api_key
        ),
        cache_size=settings.embeddings_cache_size,
    )
    memory_store = SupabaseMemoryStore(supabase, embeddings, timeout=settings.persistence_timeout)

    chat_llm_service = _llm_service(settings.chat_model, settings)
    extraction_llm_service = _llm_service(settings.extraction_model, settings)
    action_llm_service = (
        _llm_service(settings.action_model, settings) if settings.action_model else None
    )

    extractor = EntityExtractor(extraction_llm_service)
    confirmation = ConfirmationDetector(
        extraction_llm_service, threshold=settings.confirmation_confidence_threshold
    )
    executor = ActionExecutor(persistence, action_llm_service)

    registry = SpecialistRegistry(
        [
            GoalSpecialist(chat_llm_service, persistence, extractor, confirmation, executor),
            TaskSpecialist(chat_llm_service, persistence, extractor, confirmation, executor),
            FitnessSpecialist(chat_llm_service, persistence),
            TechnicalSpecialist(chat_llm_service, persistence),
        ]
    )
    router = SpecialistRouter(
        registry,
        IntentClassifier(extraction_llm_service),
        threshold=settings.routing_confidence_threshold,
    )

    conversation_memory = ConversationMemoryStore(
        capacity=settings.memory_capacity,
        context_turns=settings.memory_context_turns,
        truncate_chars=settings.memory_truncate_chars,
    )
    general_handler = GeneralConversationHandler(
        chat_llm_service,
        persistence=persistence,
        memory_store=memory_store,
        memory_top_k=settings.memory_top_k,
    )
    memory_writer = MemoryWriter(memory_store, timeout=settings.persistence_timeout)

    nodes = GraphNodes(
        memory_store=conversation_memory,
        router=router,
        general_handler=general_handler,
        memory_writer=memory_writer,
    )

    logger.info("orchestrator_components_ready", specialists=registry.names)
    return ConversationOrchestrator(build_graph(nodes), conversation_memory, memory_writer)
