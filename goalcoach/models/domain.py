"""
Domain models representing conversation turns, flow states and drafts.
Everything except Turn is recomputed from the transcript on every turn.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Literal, Optional
from typing_extensions import TypedDict
from pydantic import BaseModel, ConfigDict, Field
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Turn(BaseModel):
    """One message in a conversation. Immutable once created."""

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Turn":
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def system(cls, content: str) -> "Turn":
        return cls(role=Role.SYSTEM, content=content)

    def to_message(self) -> BaseMessage:
        """Converts the turn to the LangChain message the chat models expect."""
        if self.role == Role.USER:
            return HumanMessage(content=self.content)
        if self.role == Role.ASSISTANT:
            return AIMessage(content=self.content)
        return SystemMessage(content=self.content)


def to_messages(turns: list[Turn]) -> list[BaseMessage]:
    return [turn.to_message() for turn in turns]


def latest_user_turn(turns: list[Turn]) -> Turn | None:
    """Returns the most recent user turn, ignoring trailing assistant turns."""
    for turn in reversed(turns):
        if turn.role == Role.USER:
            return turn
    return None


def previous_assistant_turn(turns: list[Turn]) -> Turn | None:
    """
    Returns the assistant turn immediately preceding the latest user turn.
    System turns in between are skipped; another user turn in between means
    there is no immediately preceding assistant turn.
    """
    seen_user = False
    for turn in reversed(turns):
        if turn.role == Role.SYSTEM:
            continue
        if turn.role == Role.USER:
            if seen_user:
                return None
            seen_user = True
            continue
        if seen_user:
            return turn
    return None


class Domain(str, Enum):
    GOAL_SETTING = "goal_setting"
    TASK_MANAGEMENT = "task_management"
    FITNESS_HEALTH = "fitness_health"
    PROGRAMMING_TECHNICAL = "programming_technical"
    GENERAL_CHAT = "general_chat"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    CONFUSED = "confused"


class GoalState(str, Enum):
    INQUIRY = "inquiry"
    CREATION = "creation"
    REFINING = "refining"
    CONFIRMING = "confirming"
    FEEDBACK = "feedback"


class TaskState(str, Enum):
    INTENT_DETECTED = "intent_detected"
    DETAILS_COLLECTED = "details_collected"
    CONFIRMED = "confirmed"


class EntityDraft(BaseModel):
    """Partial record of recognized fields for an entity under construction."""

    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ()
    FIELD_ORDER: ClassVar[tuple[str, ...]] = ()

    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in self.FIELD_ORDER)

    def filled(self) -> dict[str, Any]:
        """Non-empty fields in display order."""
        return {
            name: getattr(self, name)
            for name in self.FIELD_ORDER
            if getattr(self, name)
        }


class GoalDraft(EntityDraft):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("title", "category", "deadline")
    FIELD_ORDER: ClassVar[tuple[str, ...]] = (
        "title",
        "category",
        "deadline",
        "priority",
        "description",
    )

    title: Optional[str] = None
    category: Optional[str] = None
    deadline: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None


class TaskDraft(EntityDraft):
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ("title", "due_date")
    FIELD_ORDER: ClassVar[tuple[str, ...]] = (
        "title",
        "due_date",
        "priority",
        "goal_title",
        "description",
    )

    title: Optional[str] = None
    due_date: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    goal_title: Optional[str] = None
    goal_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class ActionResult(BaseModel):
    """Terminal outcome of the action executor, identical for both tiers."""

    success: bool
    payload: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    tier: Optional[Literal["model", "fallback"]] = None


class SpecialistReply(BaseModel):
    """What a handler produced for the current turn."""

    content: str
    handler: str
    state: Optional[str] = None
    model: Optional[str] = None
    entity_created: bool = False
    entity_type: Optional[Literal["goal", "task"]] = None
    entity_id: Optional[str] = None
    error: Optional[str] = None


class HandlerMetadata(BaseModel):
    """Observability and UI hints returned with every assistant turn."""

    handler: str
    state: Optional[str] = None
    domain: Domain = Domain.GENERAL_CHAT
    sentiment: Sentiment = Sentiment.NEUTRAL
    intent_confidence: float = 0.0
    routing_confidence: float = 0.0
    entity_created: bool = False
    entity_type: Optional[Literal["goal", "task"]] = None
    entity_id: Optional[str] = None
    model: Optional[str] = None
    error: Optional[str] = None


class TurnResult(BaseModel):
    assistant_turn: Turn
    handler_metadata: HandlerMetadata


class UserContext(BaseModel):
    """Optional facts about the owner injected into conversational prompts."""

    name: Optional[str] = None
    active_goals: list[dict[str, Any]] = Field(default_factory=list)
    upcoming_tasks: list[dict[str, Any]] = Field(default_factory=list)
    recent_logs: list[dict[str, Any]] = Field(default_factory=list)
    memories: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.name
            or self.active_goals
            or self.upcoming_tasks
            or self.recent_logs
            or self.memories
        )


class PipelineState(TypedDict, total=False):
    """
    State carried through the LangGraph turn pipeline.

    Attributes:
        conversation_id: Conversation being processed.
        owner_id: Owner of the conversation (may be a guest sentinel).
        user_turn: The inbound user turn.
        turns: Transcript the handlers see (history plus the inbound turn).
        context: Synthetic memory context message, if any.
        decision: Routing decision for this turn.
        reply: Handler output for this turn.
    """

    conversation_id: str
    owner_id: str | None
    user_turn: Turn
    turns: list[Turn]
    context: Turn | None
    decision: Any
    reply: SpecialistReply
