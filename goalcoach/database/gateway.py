"""
Storage contracts used by the orchestration core.
Concrete backends live next to this module (see supabase.py).
"""

from typing import Any, Optional, Protocol
from pydantic import BaseModel, Field

from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)

GUEST_OWNER_IDS = frozenset({"", "guest", "direct_chat_user"})


class PersistenceError(Exception):
    """Base class for persistence gateway failures."""


class DatabaseError(PersistenceError):
    """Raised when the backing store cannot be reached or fails."""


class NotFoundError(PersistenceError):
    """Raised when the addressed goal or task does not exist for the owner."""


class EntityValidationError(PersistenceError):
    """Raised when the store rejects an entity as invalid."""


class MemoryMatch(BaseModel):
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float = 0.0


class PersistenceGateway(Protocol):
    """CRUD for goals, tasks and owner profiles. Records are plain dicts."""

    async def create_goal(self, owner_id: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update_goal(
        self, owner_id: str, goal_id: str, updates: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def create_task(self, owner_id: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update_task(
        self, owner_id: str, task_id: str, updates: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def find_task(self, owner_id: str, task_id: str) -> Optional[dict[str, Any]]: ...

    async def delete_task(self, owner_id: str, task_id: str) -> dict[str, Any]: ...

    async def find_goals_by_owner(
        self, owner_id: str, active_only: bool = False, limit: Optional[int] = None
    ) -> list[dict[str, Any]]: ...

    async def find_tasks_by_owner(
        self,
        owner_id: str,
        include_completed: bool = False,
        goal_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...

    async def find_logs_by_owner(self, owner_id: str, limit: int = 5) -> list[dict[str, Any]]: ...

    async def get_owner_profile(self, owner_id: str) -> Optional[dict[str, Any]]: ...

    async def upsert_guest_owner(self) -> str: ...


class MemoryStore(Protocol):
    """Long-term semantic memory. Writes are best effort."""

    async def store(self, owner_id: str, text: str, metadata: dict[str, Any]) -> None: ...

    async def query(self, owner_id: str, text: str, k: int) -> list[MemoryMatch]: ...


def is_guest_owner(owner_id: Optional[str]) -> bool:
    return owner_id is None or owner_id.strip().lower() in GUEST_OWNER_IDS


async def resolve_owner(persistence: PersistenceGateway, owner_id: Optional[str]) -> str:
    """
    Maps guest sentinels to the persisted guest owner.

    Every caller that needs a real owner id goes through here so the guest
    record is created by exactly one upsert.

    Args:
        persistence: Gateway used for the guest upsert
        owner_id: Owner id from the conversation, possibly a guest sentinel

    Returns:
        A concrete owner id
    """
    if not is_guest_owner(owner_id):
        return owner_id

    guest_id = await persistence.upsert_guest_owner()
    logger.info("guest_owner_resolved", requested=owner_id, owner_id=guest_id)
    return guest_id
