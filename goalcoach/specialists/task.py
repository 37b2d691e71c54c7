"""
Task specialist: captures tasks, links them to goals and saves on confirmation.
"""

from typing import Any, Optional

from goalcoach.database.gateway import PersistenceError, resolve_owner
from goalcoach.models.domain import (
    Domain,
    SpecialistReply,
    TaskDraft,
    TaskState,
    Turn,
)
from goalcoach.models.schemas import IntentAnalysis
from goalcoach.services.extraction_service import match_goal
from goalcoach.specialists.base import FlowPhase, SlotFillingSpecialist
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)


class TaskSpecialist(SlotFillingSpecialist):
    """
    Collects task title and due date, then adds the task once confirmed.
    """

    name = "task"
    domain = Domain.TASK_MANAGEMENT
    topic = "task"
    entity_type = "task"
    draft_cls = TaskDraft
    action = "save_task"
    domain_terms = ("task", "tasks", "to-do", "todo")
    signal_phrases = (
        "add a task",
        "add task",
        "create a task",
        "new task",
        "add to my list",
        "put on my list",
        "to my to-do",
        "to my todo",
        "remind me to",
        "i need to",
        "i have to",
        "don't forget to",
    )
    keywords = signal_phrases + (
        "task",
        "tasks",
        "todo",
        "to-do",
        "reminder",
        "remind me",
        "due",
        "checklist",
    )
    outcome_states = {
        "inquiry": TaskState.INTENT_DETECTED,
        "asking": TaskState.DETAILS_COLLECTED,
        "presenting": TaskState.DETAILS_COLLECTED,
        "saved": TaskState.CONFIRMED,
        "failed": TaskState.DETAILS_COLLECTED,
        "cancelled": TaskState.INTENT_DETECTED,
    }

    def can_handle(self, turns: list[Turn]) -> bool:
        if super().can_handle(turns):
            return True
        return self.derive_state(turns).phase != FlowPhase.IDLE

    def state_for(self, phase: FlowPhase, signal: bool) -> TaskState:
        if phase == FlowPhase.CONFIRMED:
            return TaskState.CONFIRMED
        if phase in (FlowPhase.COLLECTING, FlowPhase.CONFIRMING):
            return TaskState.DETAILS_COLLECTED
        return TaskState.INTENT_DETECTED

    async def confidence(self, turns: list[Turn], analysis: IntentAnalysis) -> float:
        snapshot = self.derive_state(turns)
        own_domain = analysis.domain == self.domain

        if snapshot.phase != FlowPhase.IDLE:
            moved_on = (
                not own_domain
                and analysis.domain != Domain.GENERAL_CHAT
                and analysis.confidence >= 0.8
            )
            return 0.5 if moved_on else 0.9

        if snapshot.signal:
            return 0.8 if own_domain else 0.65
        if own_domain:
            return analysis.confidence
        return 0.1

    async def extract(self, turns: list[Turn], current: TaskDraft, owner_id: Optional[str]) -> TaskDraft:
        goals = await self._owner_goals(owner_id)
        return await self.extractor.extract_task(turns, current, goals)

    async def commit_fields(self, draft: TaskDraft, owner_id: Optional[str]) -> dict[str, Any]:
        fields = await super().commit_fields(draft, owner_id)
        # the recap carries the goal title only, so the id is looked up again
        if draft.goal_title and not draft.goal_id:
            linked = match_goal(draft.goal_title, await self._owner_goals(owner_id))
            if linked and linked.get("id") is not None:
                fields["goal_id"] = str(linked["id"])
        return fields

    async def handle_inquiry(
        self,
        turns: list[Turn],
        owner_id: Optional[str],
        analysis: IntentAnalysis,
        context: Optional[Turn],
    ) -> SpecialistReply:
        tasks = await self._upcoming_tasks(owner_id)
        system_prompt = f"{self.prompts['system_prompt']}\n\n{self.prompts['inquiry_instructions']}"
        if tasks:
            system_prompt += "\n\nThe user's upcoming tasks:\n" + "\n".join(
                f"- {task.get('title')} (due {task.get('due_date') or 'no date'}, "
                f"{task.get('priority') or 'medium'} priority)"
                for task in tasks
            )

        content = await self._chat(system_prompt, turns, context)
        return self._reply(content, TaskState.INTENT_DETECTED)

    async def _upcoming_tasks(self, owner_id: Optional[str]) -> list[dict[str, Any]]:
        if self.persistence is None:
            return []
        try:
            owner = await resolve_owner(self.persistence, owner_id)
            return await self.persistence.find_tasks_by_owner(owner, limit=10)
        except PersistenceError as e:
            logger.warning("upcoming_tasks_unavailable", error=str(e))
            return []
