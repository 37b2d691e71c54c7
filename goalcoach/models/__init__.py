"""
Models package exports for domain, schemas, and embeddings.
"""

from goalcoach.models.domain import (
    Role,
    Turn,
    Domain,
    Sentiment,
    GoalState,
    TaskState,
    GoalDraft,
    TaskDraft,
    ActionResult,
    SpecialistReply,
    HandlerMetadata,
    TurnResult,
    UserContext,
    PipelineState,
)
from goalcoach.models.schemas import (
    IntentAnalysis,
    GoalExtraction,
    TaskExtraction,
    ConfirmationCheck,
    ActionPlan,
)
from goalcoach.models.embeddings import get_embeddings_model

__all__ = [
    "Role",
    "Turn",
    "Domain",
    "Sentiment",
    "GoalState",
    "TaskState",
    "GoalDraft",
    "TaskDraft",
    "ActionResult",
    "SpecialistReply",
    "HandlerMetadata",
    "TurnResult",
    "UserContext",
    "PipelineState",
    "IntentAnalysis",
    "GoalExtraction",
    "TaskExtraction",
    "ConfirmationCheck",
    "ActionPlan",
    "get_embeddings_model",
]
