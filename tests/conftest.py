"""
Shared test fixtures and configuration.
"""

import itertools
from typing import Any, Optional

import pytest
from unittest.mock import Mock, AsyncMock
from langchain_core.messages import AIMessage

from goalcoach.database.gateway import DatabaseError, MemoryMatch, NotFoundError
from goalcoach.models.domain import Turn
from goalcoach.services.llm_service import LLMError, LLMService
from goalcoach.services.action_executor import ActionExecutor
from goalcoach.services.confirmation_service import ConfirmationDetector
from goalcoach.services.extraction_service import EntityExtractor


class InMemoryPersistence:
    """Persistence gateway double that records every write."""

    GUEST_ID = "guest-owner"

    def __init__(self):
        self.goals: dict[str, dict[str, Any]] = {}
        self.tasks: dict[str, dict[str, Any]] = {}
        self.users: dict[str, dict[str, Any]] = {"user-1": {"id": "user-1", "name": "Alex"}}
        self.logs: list[dict[str, Any]] = []
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self.guest_upserts = 0
        self.fail_writes = False
        self._ids = itertools.count(1)

    def _check_writable(self):
        if self.fail_writes:
            raise DatabaseError("connection refused")

    def creations(self) -> list[tuple[str, str, dict[str, Any]]]:
        return [write for write in self.writes if write[0].startswith("create_")]

    async def create_goal(self, owner_id, data):
        self._check_writable()
        goal = {"id": f"goal-{next(self._ids)}", "user_id": owner_id, **data}
        self.goals[goal["id"]] = goal
        self.writes.append(("create_goal", owner_id, data))
        return goal

    async def update_goal(self, owner_id, goal_id, updates):
        self._check_writable()
        goal = self.goals.get(goal_id)
        if goal is None or goal["user_id"] != owner_id:
            raise NotFoundError(f"Goal {goal_id} not found")
        goal.update(updates)
        self.writes.append(("update_goal", owner_id, updates))
        return goal

    async def create_task(self, owner_id, data):
        self._check_writable()
        task = {"id": f"task-{next(self._ids)}", "user_id": owner_id, **data}
        self.tasks[task["id"]] = task
        self.writes.append(("create_task", owner_id, data))
        return task

    async def update_task(self, owner_id, task_id, updates):
        self._check_writable()
        task = self.tasks.get(task_id)
        if task is None or task["user_id"] != owner_id:
            raise NotFoundError(f"Task {task_id} not found")
        task.update(updates)
        self.writes.append(("update_task", owner_id, updates))
        return task

    async def find_task(self, owner_id, task_id):
        task = self.tasks.get(task_id)
        if task is None or task["user_id"] != owner_id:
            return None
        return dict(task)

    async def delete_task(self, owner_id, task_id):
        self._check_writable()
        task = self.tasks.get(task_id)
        if task is None or task["user_id"] != owner_id:
            raise NotFoundError(f"Task {task_id} not found")
        del self.tasks[task_id]
        self.writes.append(("delete_task", owner_id, {"id": task_id}))
        return task

    async def find_goals_by_owner(self, owner_id, active_only=False, limit=None):
        goals = [g for g in self.goals.values() if g["user_id"] == owner_id]
        if active_only:
            goals = [g for g in goals if g.get("status") != "completed"]
        return goals[:limit] if limit else goals

    async def find_tasks_by_owner(self, owner_id, include_completed=False, goal_id=None, limit=None):
        tasks = [t for t in self.tasks.values() if t["user_id"] == owner_id]
        if goal_id:
            tasks = [t for t in tasks if t.get("goal_id") == goal_id]
        if not include_completed:
            tasks = [t for t in tasks if not t.get("completed")]
        return tasks[:limit] if limit else tasks

    async def find_logs_by_owner(self, owner_id, limit=5):
        return [log for log in self.logs if log.get("user_id") == owner_id][:limit]

    async def get_owner_profile(self, owner_id):
        return self.users.get(owner_id)

    async def upsert_guest_owner(self):
        self.guest_upserts += 1
        self.users.setdefault(self.GUEST_ID, {"id": self.GUEST_ID, "name": "Guest User"})
        return self.GUEST_ID


def make_llm_service(
    structured: Optional[dict[type, Any]] = None,
    chat: str = "That sounds like a great plan.",
    model_name: str = "test-model",
) -> Mock:
    """
    Mock LLMService answering structured calls by schema.

    A list value is consumed in order and its last item repeats; an
    exception item is raised instead of returned.
    """
    llm_service = Mock(spec=LLMService)
    llm_service.model_name = model_name
    scripted = {
        schema: list(value) if isinstance(value, list) else [value]
        for schema, value in (structured or {}).items()
    }

    def structured_call(messages, output_schema, timeout=None):
        queue = scripted.get(output_schema)
        if not queue:
            raise LLMError(f"No scripted output for {output_schema.__name__}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    llm_service.invoke_with_structured_output.side_effect = structured_call
    llm_service.invoke_with_retry.return_value = AIMessage(content=chat)
    return llm_service


@pytest.fixture
def llm_factory():
    """Factory for scripted LLM services."""
    return make_llm_service


@pytest.fixture
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def mock_memory_store():
    """Mock long-term memory store."""
    store = Mock()
    store.store = AsyncMock(return_value=None)
    store.query = AsyncMock(return_value=[MemoryMatch(text="Prefers morning workouts", score=0.9)])
    return store


@pytest.fixture
def mock_supabase():
    """Mock Supabase client."""
    client = Mock()
    client.rpc = Mock()
    client.table = Mock()
    return client


@pytest.fixture
def specialist_parts(persistence):
    """Builds the shared collaborators of slot-filling specialists."""

    def build(llm_service, action_llm_service=None):
        return {
            "extractor": EntityExtractor(llm_service),
            "confirmation": ConfirmationDetector(llm_service, threshold=0.6),
            "executor": ActionExecutor(persistence, action_llm_service),
        }

    return build


@pytest.fixture
def transcript():
    """Builds alternating user/assistant turns, starting with the user."""

    def build(*contents: str) -> list[Turn]:
        return [
            Turn.user(content) if index % 2 == 0 else Turn.assistant(content)
            for index, content in enumerate(contents)
        ]

    return build
