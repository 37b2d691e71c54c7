"""
Entity extraction: turns conversation windows into goal and task drafts.
Drafts only grow; filled fields change only when the user contradicts them.
"""

import json
from datetime import date
from typing import Any, Callable, Optional, TypeVar
from langchain_core.messages import HumanMessage, SystemMessage

from goalcoach.errors import ExtractionError, GatewayTransportError
from goalcoach.models.domain import EntityDraft, GoalDraft, Role, TaskDraft, Turn, to_messages
from goalcoach.models.schemas import GoalExtraction, TaskExtraction
from goalcoach.services.llm_service import LLMService
from goalcoach.services.normalization import (
    normalize_category,
    normalize_deadline,
    normalize_due_date,
    normalize_priority,
)
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()

DraftT = TypeVar("DraftT", bound=EntityDraft)


def merge_drafts(current: DraftT, extracted: DraftT, contradicted_fields: list[str]) -> DraftT:
    """
    Merges a fresh extraction into the current draft.

    Empty extracted values never clear anything, and a filled field is only
    replaced when the user's latest message contradicted it.

    Args:
        current: Draft derived from earlier turns
        extracted: Draft built from the latest extraction
        contradicted_fields: Field names the latest message explicitly changed

    Returns:
        New draft of the same type
    """
    updates: dict[str, Any] = {}
    for name in type(current).model_fields:
        if name == "confidence":
            continue
        new_value = getattr(extracted, name)
        if not new_value:
            continue
        old_value = getattr(current, name)
        if old_value and name not in contradicted_fields:
            continue
        if new_value != old_value:
            updates[name] = new_value

    if updates:
        updates["confidence"] = max(current.confidence, extracted.confidence)
        logger.info("draft_merged", fields=sorted(updates), contradicted=contradicted_fields)
    return current.model_copy(update=updates)


def match_goal(goal_title: Optional[str], goals: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Finds the owner's goal a task refers to, by case-insensitive title containment."""
    if not goal_title:
        return None
    wanted = goal_title.strip().lower()
    for goal in goals:
        title = str(goal.get("title", "")).lower()
        if title and (wanted == title or wanted in title or title in wanted):
            return goal
    return None


class EntityExtractor:
    """
    Structured extraction of goal and task fields over a window of turns.
    """

    def __init__(
        self,
        llm_service: LLMService,
        window: int = 10,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize entity extractor.

        Args:
            llm_service: LLM service for structured extraction
            window: Number of recent non-system turns given to the model
            today: Clock used for relative date resolution
        """
        self.llm_service = llm_service
        self.window = window
        self.today = today

    def _build_messages(self, system_prompt: str, turns: list[Turn], entity: str):
        recent = [turn for turn in turns if turn.role != Role.SYSTEM][-self.window:]
        return [
            SystemMessage(content=system_prompt),
            *to_messages(recent),
            HumanMessage(content=PROMPTS["extraction"]["request"].format(entity=entity)),
        ]

    async def _extract(self, messages, schema, entity: str):
        logger.info("extraction_started", entity=entity)
        try:
            result = await self.llm_service.invoke_with_structured_output(messages, schema)
        except GatewayTransportError as e:
            logger.warning("extraction_failed", entity=entity, error=str(e))
            raise ExtractionError(f"Could not extract {entity} details: {e}") from e
        return result

    async def extract_goal(self, turns: list[Turn], current: Optional[GoalDraft] = None) -> GoalDraft:
        """
        Extracts goal fields and merges them into the current draft.

        Raises:
            ExtractionError: If the model call fails or output is unusable
        """
        current = current or GoalDraft()
        today = self.today()
        prompt = PROMPTS["extraction"]["goal_prompt"].format(
            today=today.isoformat(),
            current=json.dumps(current.filled()) if not current.is_empty() else "none",
        )
        result: GoalExtraction = await self._extract(
            self._build_messages(prompt, turns, "goal"), GoalExtraction, "goal"
        )

        extracted = GoalDraft(
            title=result.title.strip() if result.title else None,
            category=normalize_category(result.category) if result.category else None,
            deadline=normalize_deadline(result.deadline, today) if result.deadline else None,
            description=result.description,
            priority=normalize_priority(result.priority) if result.priority else None,
            confidence=result.confidence,
        )
        draft = merge_drafts(current, extracted, result.contradicted_fields)
        logger.info("goal_extracted", filled=list(draft.filled()), missing=draft.missing_fields())
        return draft

    async def extract_task(
        self,
        turns: list[Turn],
        current: Optional[TaskDraft] = None,
        goals: Optional[list[dict[str, Any]]] = None,
    ) -> TaskDraft:
        """
        Extracts task fields and links the task to one of the owner's goals.

        Raises:
            ExtractionError: If the model call fails or output is unusable
        """
        current = current or TaskDraft()
        goals = goals or []
        today = self.today()
        goal_lines = (
            "The user's goals: " + ", ".join(f'"{goal.get("title")}"' for goal in goals)
            if goals
            else "The user has no goals yet."
        )
        prompt = PROMPTS["extraction"]["task_prompt"].format(
            today=today.isoformat(),
            goals=goal_lines,
            current=json.dumps(current.filled()) if not current.is_empty() else "none",
        )
        result: TaskExtraction = await self._extract(
            self._build_messages(prompt, turns, "task"), TaskExtraction, "task"
        )

        linked = match_goal(result.goal_title, goals)
        extracted = TaskDraft(
            title=result.title.strip() if result.title else None,
            due_date=normalize_due_date(result.due_date, today) if result.due_date else None,
            priority=normalize_priority(result.priority) if result.priority else None,
            description=result.description,
            goal_title=linked.get("title") if linked else result.goal_title,
            goal_id=str(linked["id"]) if linked and linked.get("id") is not None else None,
            tags=result.tags,
            confidence=result.confidence,
        )
        draft = merge_drafts(current, extracted, result.contradicted_fields)
        logger.info("task_extracted", filled=list(draft.filled()), missing=draft.missing_fields())
        return draft
