"""
Services package exports for business logic layer.
"""

from goalcoach.services.llm_service import LLMService, create_llm, LLMError, LLMTimeoutError
from goalcoach.services.conversation_memory import ConversationMemory, ConversationMemoryStore
from goalcoach.services.intent_service import IntentClassifier
from goalcoach.services.confirmation_service import ConfirmationDetector, ConfirmationOutcome
from goalcoach.services.extraction_service import EntityExtractor, merge_drafts
from goalcoach.services.action_executor import ActionExecutor, ActionName
from goalcoach.services.router_service import (
    SpecialistRegistry,
    SpecialistRouter,
    RoutingDecision,
)
from goalcoach.services.general_service import GeneralConversationHandler
from goalcoach.services.memory_writer import MemoryWriter

__all__ = [
    "LLMService",
    "create_llm",
    "LLMError",
    "LLMTimeoutError",
    "ConversationMemory",
    "ConversationMemoryStore",
    "IntentClassifier",
    "ConfirmationDetector",
    "ConfirmationOutcome",
    "EntityExtractor",
    "merge_drafts",
    "ActionExecutor",
    "ActionName",
    "SpecialistRegistry",
    "SpecialistRouter",
    "RoutingDecision",
    "GeneralConversationHandler",
    "MemoryWriter",
]
