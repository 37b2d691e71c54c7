"""
Unit tests for ActionExecutor.
Tests the deterministic tier, the model-planned tier and failure handling.
"""

from datetime import date

import pytest
from unittest.mock import AsyncMock

from goalcoach.database.gateway import EntityValidationError
from goalcoach.models.domain import GoalDraft, TaskDraft
from goalcoach.models.schemas import ActionPlan, GoalParameters, TaskParameters
from goalcoach.services.action_executor import ActionExecutor
from goalcoach.services.llm_service import LLMError

TODAY = date(2025, 6, 4)


def make_executor(persistence, action_llm_service=None):
    return ActionExecutor(persistence, action_llm_service, today=lambda: TODAY)


class TestFallbackTier:
    """Tests for deterministic execution without an action model."""

    @pytest.mark.asyncio
    async def test_save_goal_normalizes_fields(self, persistence):
        # Arrange
        executor = make_executor(persistence)
        draft = GoalDraft(title="Bench press 225 lbs", category="fitness")

        # Act
        result = await executor.execute("save_goal", draft, "user-1")

        # Assert
        assert result.success
        assert result.tier == "fallback"
        goal = result.payload["goal"]
        assert goal["category"] == "health"
        assert goal["deadline"] == "2025-12-31"
        assert goal["priority"] == "medium"
        assert len(persistence.creations()) == 1

    @pytest.mark.asyncio
    async def test_guest_owner_is_resolved_once(self, persistence):
        executor = make_executor(persistence)

        result = await executor.execute("save_task", {"title": "Drink water"}, "direct_chat_user")

        assert result.success
        assert result.payload["task"]["user_id"] == persistence.GUEST_ID
        assert result.payload["task"]["due_date"] == "2025-06-11"
        assert persistence.guest_upserts == 1

    @pytest.mark.asyncio
    async def test_task_changes_recompute_goal_progress(self, persistence):
        executor = make_executor(persistence)
        goal = await persistence.create_goal("user-1", {"title": "Run a marathon", "progress": 0})
        await persistence.create_task("user-1", {"title": "Buy shoes", "goal_id": goal["id"], "completed": True})

        result = await executor.execute(
            "save_task", TaskDraft(title="Run 10k", goal_id=goal["id"]), "user-1"
        )

        assert result.success
        assert persistence.goals[goal["id"]]["progress"] == 50
        assert persistence.goals[goal["id"]]["status"] == "in progress"

    @pytest.mark.asyncio
    async def test_moving_task_recomputes_both_goals(self, persistence):
        """Should refresh the goal the task left as well as the one it joined."""
        # Arrange
        executor = make_executor(persistence)
        old_goal = await persistence.create_goal("user-1", {"title": "Run a marathon", "progress": 50})
        new_goal = await persistence.create_goal("user-1", {"title": "Get stronger", "progress": 0})
        moved = await persistence.create_task(
            "user-1", {"title": "Buy shoes", "goal_id": old_goal["id"], "completed": True}
        )
        await persistence.create_task("user-1", {"title": "Run 10k", "goal_id": old_goal["id"]})

        # Act
        result = await executor.execute(
            "update_task", {"task_id": moved["id"], "goal_id": new_goal["id"]}, "user-1"
        )

        # Assert
        assert result.success
        assert persistence.goals[old_goal["id"]]["progress"] == 0
        assert persistence.goals[old_goal["id"]]["status"] == "not started"
        assert persistence.goals[new_goal["id"]]["progress"] == 100
        assert persistence.goals[new_goal["id"]]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_deleting_last_task_resets_goal(self, persistence):
        executor = make_executor(persistence)
        goal = await persistence.create_goal("user-1", {"title": "Read more", "progress": 100, "status": "completed"})
        task = await persistence.create_task("user-1", {"title": "Finish book", "goal_id": goal["id"], "completed": True})

        result = await executor.execute("delete_task", {"task_id": task["id"]}, "user-1")

        assert result.success
        assert persistence.goals[goal["id"]]["progress"] == 0
        assert persistence.goals[goal["id"]]["status"] == "not started"

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_result(self, persistence):
        """Should report a failure instead of raising."""
        executor = make_executor(persistence)
        persistence.create_task = AsyncMock(side_effect=ValueError("day is out of range for month"))

        result = await executor.execute("save_task", {"title": "Stretch"}, "user-1")

        assert not result.success
        assert result.tier == "fallback"
        assert "out of range" in result.error

    @pytest.mark.asyncio
    async def test_completing_task_sets_completed_at(self, persistence):
        executor = make_executor(persistence)
        task = await persistence.create_task("user-1", {"title": "Stretch", "completed": False})

        result = await executor.execute("update_task", {"task_id": task["id"], "completed": True}, "user-1")

        assert result.success
        assert result.payload["task"]["completed"] is True
        assert "completed_at" in result.payload["task"]

    @pytest.mark.asyncio
    async def test_delete_task(self, persistence):
        executor = make_executor(persistence)
        task = await persistence.create_task("user-1", {"title": "Stretch"})

        result = await executor.execute("delete_task", {"task_id": task["id"]}, "user-1")

        assert result.success
        assert result.payload["deleted"] is True
        assert task["id"] not in persistence.tasks


class TestInvalidInput:
    @pytest.mark.asyncio
    async def test_unknown_action_fails(self, persistence):
        result = await make_executor(persistence).execute("archive_goal", {"title": "x"}, "user-1")

        assert not result.success
        assert "Unknown action" in result.error

    @pytest.mark.asyncio
    async def test_update_without_identifier_fails(self, persistence):
        result = await make_executor(persistence).execute("update_goal", {"title": "x"}, "user-1")

        assert not result.success
        assert persistence.writes == []

    @pytest.mark.asyncio
    async def test_missing_entity_fails_without_raising(self, persistence):
        result = await make_executor(persistence).execute("update_task", {"task_id": "task-404"}, "user-1")

        assert not result.success
        assert "not found" in result.error


class TestModelTier:
    """Tests for model-planned execution."""

    @pytest.mark.asyncio
    async def test_accepted_plan_is_applied(self, persistence, llm_factory):
        plan = ActionPlan(
            action="save_goal",
            goal=GoalParameters(title="Bench press 225 lbs", category="health", priority="high"),
        )
        executor = make_executor(persistence, llm_factory({ActionPlan: plan}))

        result = await executor.execute("save_goal", GoalDraft(title="bench 225"), "user-1")

        assert result.tier == "model"
        assert result.payload["goal"]["title"] == "Bench press 225 lbs"
        assert result.payload["goal"]["priority"] == "high"
        assert len(persistence.creations()) == 1

    @pytest.mark.asyncio
    async def test_plan_cannot_change_identifiers(self, persistence, llm_factory):
        task = await persistence.create_task("user-1", {"title": "Stretch"})
        other = await persistence.create_task("user-1", {"title": "Other"})
        plan = ActionPlan(action="update_task", task=TaskParameters(task_id=other["id"], title="Stretch 10 minutes"))
        executor = make_executor(persistence, llm_factory({ActionPlan: plan}))

        result = await executor.execute("update_task", {"task_id": task["id"], "title": "Stretch more"}, "user-1")

        assert result.tier == "model"
        assert persistence.tasks[task["id"]]["title"] == "Stretch 10 minutes"
        assert persistence.tasks[other["id"]]["title"] == "Other"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "plan",
        [
            ActionPlan(action="save_task", task=TaskParameters(title="Wrong action")),
            ActionPlan(action="save_goal", delegate_to_fallback=True),
            ActionPlan(action="save_goal"),
            ActionPlan(action="save_goal", goal=GoalParameters(title="", category="health")),
            LLMError("provider down"),
        ],
    )
    async def test_unusable_plan_falls_back(self, persistence, llm_factory, plan):
        executor = make_executor(persistence, llm_factory({ActionPlan: plan}))

        result = await executor.execute("save_goal", GoalDraft(title="Run a 5k"), "user-1")

        assert result.success
        assert result.tier == "fallback"
        assert result.payload["goal"]["title"] == "Run a 5k"
        assert len(persistence.creations()) == 1

    @pytest.mark.asyncio
    async def test_store_validation_error_retries_with_input_fields(self, persistence, llm_factory):
        plan = ActionPlan(action="save_goal", goal=GoalParameters(title="Bad title"))
        executor = make_executor(persistence, llm_factory({ActionPlan: plan}))
        persistence.create_goal = AsyncMock(
            side_effect=[EntityValidationError("title rejected"), {"id": "goal-9", "title": "Run a 5k"}]
        )

        result = await executor.execute("save_goal", GoalDraft(title="Run a 5k"), "user-1")

        assert result.success
        assert result.tier == "fallback"
        assert persistence.create_goal.await_count == 2

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_retried(self, persistence, llm_factory):
        plan = ActionPlan(action="save_goal", goal=GoalParameters(title="Run a 5k"))
        llm_service = llm_factory({ActionPlan: plan})
        executor = make_executor(persistence, llm_service)
        persistence.fail_writes = True

        result = await executor.execute("save_goal", GoalDraft(title="Run a 5k"), "user-1")

        assert not result.success
        assert result.tier == "model"
        assert "connection refused" in result.error
        assert llm_service.invoke_with_structured_output.await_count == 1
