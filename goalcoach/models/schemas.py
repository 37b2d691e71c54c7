"""
LLM structured output schemas for classification, extraction and actions.
All models use Field() with descriptions for clarity and LLM context.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict

from goalcoach.models.domain import Domain, Sentiment


class IntentAnalysis(BaseModel):
    """
    Classifies the user's latest message for specialist routing.
    Exactly one domain label and one sentiment label.
    """

    primary_intent: str = Field(
        default="unknown",
        description="Short description of what the user wants to do or know",
        max_length=200,
    )
    domain: Domain = Field(
        default=Domain.GENERAL_CHAT,
        description="Domain category of the user's latest message",
    )
    sentiment: Sentiment = Field(
        default=Sentiment.NEUTRAL,
        description="Emotional tone of the user's latest message",
    )
    confidence: float = Field(
        default=0.0,
        description="Confidence in the domain label, between 0 and 1",
        ge=0.0,
        le=1.0,
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "primary_intent": "set a strength goal",
                "domain": "goal_setting",
                "sentiment": "positive",
                "confidence": 0.9,
            }
        }
    )


class GoalExtraction(BaseModel):
    """Goal fields mentioned in the conversation. Omit what was not mentioned."""

    title: Optional[str] = Field(
        default=None,
        description=(
            "Specific, measurable goal title including numbers when given "
            "(e.g. 'Bench press 225 lbs')"
        ),
        max_length=200,
    )
    category: Optional[Literal["health", "fitness", "career", "personal", "financial", "other"]] = Field(
        default=None,
        description="Goal category; fitness goals use 'health'",
    )
    deadline: Optional[str] = Field(
        default=None,
        description="When the user wants to achieve it, as YYYY-MM-DD or a phrase like 'end of year'",
    )
    description: Optional[str] = Field(
        default=None, description="One-sentence description of the goal", max_length=500
    )
    priority: Optional[Literal["low", "medium", "high"]] = Field(
        default=None, description="Priority if the user stated one"
    )
    contradicted_fields: list[str] = Field(
        default_factory=list,
        description=(
            "Fields whose earlier value the user's LATEST message explicitly changes "
            "(e.g. ['deadline'] for 'actually make it June')"
        ),
    )
    confidence: float = Field(
        default=0.0, description="Confidence in the extraction, between 0 and 1", ge=0.0, le=1.0
    )


class TaskExtraction(BaseModel):
    """Task fields mentioned in the conversation. Omit what was not mentioned."""

    title: Optional[str] = Field(
        default=None, description="Short actionable task title", max_length=200
    )
    due_date: Optional[str] = Field(
        default=None,
        description="Due date as YYYY-MM-DD or a phrase like 'tomorrow' or 'next friday'",
    )
    priority: Optional[Literal["low", "medium", "high"]] = Field(
        default=None, description="Priority if the user stated one"
    )
    description: Optional[str] = Field(default=None, max_length=500)
    goal_title: Optional[str] = Field(
        default=None, description="Title of the user's goal this task belongs to, if mentioned"
    )
    tags: list[str] = Field(default_factory=list)
    contradicted_fields: list[str] = Field(
        default_factory=list,
        description="Fields whose earlier value the user's LATEST message explicitly changes",
    )
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ConfirmationCheck(BaseModel):
    """Whether the user's reply confirms saving the drafted entity."""

    is_confirming: bool = Field(description="True if the user agrees to save it")
    confidence: float = Field(
        description="Confidence in the judgement, between 0 and 1", ge=0.0, le=1.0
    )


class GoalParameters(BaseModel):
    """Fields an action plan may set on a goal."""

    model_config = ConfigDict(extra="forbid")

    goal_id: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=200)
    category: Optional[str] = None
    deadline: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    priority: Optional[Literal["low", "medium", "high"]] = None
    status: Optional[Literal["not started", "in progress", "completed", "abandoned"]] = None


class TaskParameters(BaseModel):
    """Fields an action plan may set on a task."""

    model_config = ConfigDict(extra="forbid")

    task_id: Optional[str] = None
    goal_id: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=200)
    due_date: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    priority: Optional[Literal["low", "medium", "high"]] = None
    completed: Optional[bool] = None
    tags: Optional[list[str]] = None


class ActionPlan(BaseModel):
    """
    Declarative plan produced by the action model.
    Executed by fixed code; never evaluated.
    """

    action: Literal["save_goal", "update_goal", "save_task", "update_task", "delete_task"] = Field(
        description="The action to perform; must equal the requested action"
    )
    goal: Optional[GoalParameters] = Field(
        default=None, description="Goal fields for goal actions"
    )
    task: Optional[TaskParameters] = Field(
        default=None, description="Task fields for task actions"
    )
    delegate_to_fallback: bool = Field(
        default=False,
        description="Set true when the request cannot be expressed safely as this plan",
    )
