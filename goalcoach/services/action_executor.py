"""
Action executor: applies confirmed goal/task operations to storage.

Tier 1 asks the action model for a declarative plan (validated, never
evaluated); tier 2 applies the input fields deterministically. Either way
exactly one write path runs per action.
"""

import asyncio
import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from pydantic import BaseModel
from langchain_core.messages import HumanMessage, SystemMessage

from goalcoach.database.gateway import (
    EntityValidationError,
    PersistenceError,
    PersistenceGateway,
    resolve_owner,
)
from goalcoach.errors import ActionExecutionError
from goalcoach.models.domain import ActionResult
from goalcoach.models.schemas import ActionPlan
from goalcoach.services.llm_service import LLMService
from goalcoach.services.normalization import (
    goal_progress,
    normalize_goal_fields,
    normalize_goal_updates,
    normalize_task_fields,
    normalize_task_updates,
)
from goalcoach.utils.prompts import load_prompts
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)
PROMPTS = load_prompts()


class ActionName(str, Enum):
    SAVE_GOAL = "save_goal"
    UPDATE_GOAL = "update_goal"
    SAVE_TASK = "save_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"

    @property
    def is_goal_action(self) -> bool:
        return self in (ActionName.SAVE_GOAL, ActionName.UPDATE_GOAL)


IDENTIFIER_FIELDS = ("goal_id", "task_id")
REQUIRED_INPUT = {
    ActionName.UPDATE_GOAL: "goal_id",
    ActionName.UPDATE_TASK: "task_id",
    ActionName.DELETE_TASK: "task_id",
}


class PlanRejected(Exception):
    """Raised when the action model's plan cannot be used."""


class ActionExecutor:
    """
    Executes save/update/delete actions for goals and tasks.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        action_llm_service: Optional[LLMService] = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize action executor.

        Args:
            persistence: Persistence gateway for goals and tasks
            action_llm_service: LLM service for planned execution (None means
                the deterministic tier handles every action)
            today: Clock used for date defaults
        """
        self.persistence = persistence
        self.action_llm_service = action_llm_service
        self.today = today

    async def execute(
        self,
        action: str,
        entity: BaseModel | dict[str, Any],
        owner_id: Optional[str],
    ) -> ActionResult:
        """
        Applies one action. Never raises.

        Args:
            action: One of save_goal, update_goal, save_task, update_task, delete_task
            entity: Draft or field dict describing the entity
            owner_id: Owner id, guest sentinels included

        Returns:
            ActionResult with the persisted entity in payload on success
        """
        try:
            action = ActionName(action)
        except ValueError:
            logger.error("unknown_action", action=action)
            return ActionResult(success=False, error=f"Unknown action: {action}")

        fields = (
            entity.model_dump(exclude_none=True, exclude={"confidence"})
            if isinstance(entity, BaseModel)
            else {key: value for key, value in entity.items() if value is not None}
        )

        required = REQUIRED_INPUT.get(action)
        if required and not fields.get(required):
            logger.error("action_input_invalid", action=action.value, missing=required)
            return ActionResult(success=False, error=f"{action.value} requires {required}", tier="fallback")

        logger.info("action_started", action=action.value, fields=sorted(fields))

        planned: Optional[dict[str, Any]] = None
        if self.action_llm_service is not None:
            try:
                planned = await self._plan_with_model(action, fields, owner_id)
            except Exception as e:
                logger.warning("model_tier_skipped", action=action.value, error=str(e))

        if planned is not None:
            try:
                payload = await asyncio.shield(self._apply(action, planned, owner_id))
                logger.info("action_completed", action=action.value, tier="model")
                return ActionResult(success=True, payload=payload, tier="model")
            except EntityValidationError as e:
                # rejected before anything was written; retry with input fields
                logger.warning("model_plan_rejected_by_store", action=action.value, error=str(e))
            except PersistenceError as e:
                return self._failure(action, e, tier="model")
            except Exception as e:
                logger.error("action_apply_crashed", exc_info=True, action=action.value, tier="model")
                return self._failure(action, e, tier="model")

        try:
            payload = await asyncio.shield(self._apply(action, fields, owner_id))
        except PersistenceError as e:
            return self._failure(action, e, tier="fallback")
        except Exception as e:
            logger.error("action_apply_crashed", exc_info=True, action=action.value)
            return self._failure(action, e, tier="fallback")

        logger.info("action_completed", action=action.value, tier="fallback")
        return ActionResult(success=True, payload=payload, tier="fallback")

    def _failure(self, action: ActionName, error: Exception, tier: str) -> ActionResult:
        failure = ActionExecutionError(action.value, str(error))
        logger.error("action_failed", action=action.value, tier=tier, error=str(failure))
        return ActionResult(success=False, error=failure.message, tier=tier)

    async def _plan_with_model(
        self, action: ActionName, fields: dict[str, Any], owner_id: Optional[str]
    ) -> dict[str, Any]:
        """
        Asks the action model for a plan and validates it against the request.

        Raises:
            PlanRejected: If the model delegated or the plan does not match
            GatewayTransportError: If the model call fails
        """
        messages = [
            SystemMessage(content=PROMPTS["action_executor"]["system_prompt"]),
            HumanMessage(
                content=PROMPTS["action_executor"]["plan_request"].format(
                    action=action.value,
                    owner_id=owner_id or "guest",
                    today=self.today().isoformat(),
                    fields=json.dumps(fields, default=str, indent=2),
                )
            ),
        ]
        plan = await self.action_llm_service.invoke_with_structured_output(messages, ActionPlan)

        if plan.delegate_to_fallback:
            raise PlanRejected("model delegated to fallback")
        if plan.action != action.value:
            raise PlanRejected(f"plan action {plan.action} does not match {action.value}")

        parameters = plan.goal if action.is_goal_action else plan.task
        if parameters is None:
            raise PlanRejected("plan has no parameters for this action")

        planned = {**fields, **parameters.model_dump(exclude_none=True)}
        # identifiers only ever come from the caller
        for key in IDENTIFIER_FIELDS:
            if key in fields:
                planned[key] = fields[key]
            else:
                planned.pop(key, None)

        if action in (ActionName.SAVE_GOAL, ActionName.SAVE_TASK) and not planned.get("title"):
            raise PlanRejected("plan has no title")

        logger.info("model_plan_accepted", action=action.value, fields=sorted(planned))
        return planned

    async def _apply(
        self, action: ActionName, fields: dict[str, Any], owner_id: Optional[str]
    ) -> dict[str, Any]:
        owner = await resolve_owner(self.persistence, owner_id)
        today = self.today()

        if action == ActionName.SAVE_GOAL:
            goal = await self.persistence.create_goal(owner, normalize_goal_fields(fields, today))
            return {"goal": goal}

        if action == ActionName.UPDATE_GOAL:
            updates = normalize_goal_updates(fields, today)
            goal = await self.persistence.update_goal(owner, str(fields["goal_id"]), updates)
            return {"goal": goal}

        if action == ActionName.SAVE_TASK:
            task = await self.persistence.create_task(owner, normalize_task_fields(fields, today))
            await self._refresh_goal_progress(owner, task.get("goal_id"))
            return {"task": task}

        if action == ActionName.UPDATE_TASK:
            updates = normalize_task_updates(fields, today)
            if updates.get("completed"):
                updates["completed_at"] = datetime.now(timezone.utc).isoformat()
            task_id = str(fields["task_id"])
            previous_goal_id = None
            if "goal_id" in updates:
                previous = await self.persistence.find_task(owner, task_id)
                previous_goal_id = (previous or {}).get("goal_id")
            task = await self.persistence.update_task(owner, task_id, updates)
            await self._refresh_goal_progress(owner, task.get("goal_id"))
            if previous_goal_id and str(previous_goal_id) != str(task.get("goal_id")):
                # task moved; the old parent lost it
                await self._refresh_goal_progress(owner, previous_goal_id)
            return {"task": task}

        task = await self.persistence.delete_task(owner, str(fields["task_id"]))
        await self._refresh_goal_progress(owner, task.get("goal_id"))
        return {"task": task, "deleted": True}

    async def _refresh_goal_progress(self, owner_id: str, goal_id: Optional[Any]) -> None:
        """
        Recomputes the parent goal's progress from its tasks.
        The task write already succeeded, so failures here are only logged.
        """
        if not goal_id:
            return
        try:
            tasks = await self.persistence.find_tasks_by_owner(
                owner_id, include_completed=True, goal_id=str(goal_id)
            )
            progress, status = goal_progress(tasks)
            await self.persistence.update_goal(
                owner_id, str(goal_id), {"progress": progress, "status": status}
            )
            logger.info("goal_progress_updated", goal_id=str(goal_id), progress=progress, status=status)
        except PersistenceError as e:
            logger.warning("goal_progress_update_failed", goal_id=str(goal_id), error=str(e))
