"""
Supabase database integration with fail-fast error handling.
Provides goal/task persistence and the vector-backed memory store.
"""

import asyncio
from typing import Any, Callable, Optional
from supabase import Client
from langchain_core.embeddings import Embeddings

from goalcoach.database.gateway import (
    DatabaseError,
    EntityValidationError,
    MemoryMatch,
    NotFoundError,
    PersistenceError,
)
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)

GOALS_TABLE = "goals"
TASKS_TABLE = "tasks"
USERS_TABLE = "users"
LOGS_TABLE = "logs"
MEMORIES_TABLE = "memories"


class SupabasePersistence:
    """
    Persistence gateway backed by Supabase tables.
    The sync client runs in worker threads so the event loop never blocks.
    """

    def __init__(
        self,
        client: Client,
        timeout: int = 10,
        guest_email: str = "direct_chat_user@example.com",
    ):
        """
        Initialize Supabase persistence.

        Args:
            client: Supabase client instance
            timeout: Seconds allowed per database call
            guest_email: Unique email identifying the shared guest owner
        """
        self.client = client
        self.timeout = timeout
        self.guest_email = guest_email
        self._guest_owner_id: Optional[str] = None

    async def _run(self, operation: str, query: Callable[[], Any]) -> Any:
        """
        Executes a blocking Supabase query in a thread with a timeout.

        Raises:
            DatabaseError: If the query fails or times out
        """
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(query), timeout=self.timeout
            )
            return response.data
        except asyncio.TimeoutError as e:
            logger.error("database_timeout", operation=operation, timeout=self.timeout)
            raise DatabaseError(f"{operation} timed out after {self.timeout}s") from e
        except PersistenceError:
            raise
        except Exception as e:
            logger.error("database_operation_failed", exc_info=True, operation=operation, error=str(e))
            raise DatabaseError(f"{operation} failed: {e}") from e

    async def create_goal(self, owner_id: str, data: dict[str, Any]) -> dict[str, Any]:
        if not data.get("title"):
            raise EntityValidationError("Goal title is required")

        row = {**data, "user_id": owner_id}
        rows = await self._run(
            "create_goal", lambda: self.client.table(GOALS_TABLE).insert(row).execute()
        )
        if not rows:
            raise DatabaseError("create_goal returned no row")

        logger.info("goal_created", owner_id=owner_id, goal_id=rows[0].get("id"))
        return rows[0]

    async def update_goal(
        self, owner_id: str, goal_id: str, updates: dict[str, Any]
    ) -> dict[str, Any]:
        rows = await self._run(
            "update_goal",
            lambda: self.client.table(GOALS_TABLE)
            .update(updates)
            .eq("id", goal_id)
            .eq("user_id", owner_id)
            .execute(),
        )
        if not rows:
            raise NotFoundError(f"Goal {goal_id} not found")

        logger.info("goal_updated", owner_id=owner_id, goal_id=goal_id, fields=list(updates))
        return rows[0]

    async def create_task(self, owner_id: str, data: dict[str, Any]) -> dict[str, Any]:
        if not data.get("title"):
            raise EntityValidationError("Task title is required")

        row = {**data, "user_id": owner_id}
        rows = await self._run(
            "create_task", lambda: self.client.table(TASKS_TABLE).insert(row).execute()
        )
        if not rows:
            raise DatabaseError("create_task returned no row")

        logger.info("task_created", owner_id=owner_id, task_id=rows[0].get("id"))
        return rows[0]

    async def update_task(
        self, owner_id: str, task_id: str, updates: dict[str, Any]
    ) -> dict[str, Any]:
        rows = await self._run(
            "update_task",
            lambda: self.client.table(TASKS_TABLE)
            .update(updates)
            .eq("id", task_id)
            .eq("user_id", owner_id)
            .execute(),
        )
        if not rows:
            raise NotFoundError(f"Task {task_id} not found")

        logger.info("task_updated", owner_id=owner_id, task_id=task_id, fields=list(updates))
        return rows[0]

    async def find_task(self, owner_id: str, task_id: str) -> Optional[dict[str, Any]]:
        rows = await self._run(
            "find_task",
            lambda: self.client.table(TASKS_TABLE)
            .select("*")
            .eq("id", task_id)
            .eq("user_id", owner_id)
            .limit(1)
            .execute(),
        )
        return rows[0] if rows else None

    async def delete_task(self, owner_id: str, task_id: str) -> dict[str, Any]:
        rows = await self._run(
            "delete_task",
            lambda: self.client.table(TASKS_TABLE)
            .delete()
            .eq("id", task_id)
            .eq("user_id", owner_id)
            .execute(),
        )
        if not rows:
            raise NotFoundError(f"Task {task_id} not found")

        logger.info("task_deleted", owner_id=owner_id, task_id=task_id)
        return rows[0]

    async def find_goals_by_owner(
        self, owner_id: str, active_only: bool = False, limit: Optional[int] = None
    ) -> list[dict[str, Any]]:
        def query():
            q = self.client.table(GOALS_TABLE).select("*").eq("user_id", owner_id)
            if active_only:
                q = q.neq("status", "completed")
            q = q.order("created_at", desc=True)
            if limit:
                q = q.limit(limit)
            return q.execute()

        return await self._run("find_goals_by_owner", query) or []

    async def find_tasks_by_owner(
        self,
        owner_id: str,
        include_completed: bool = False,
        goal_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        def query():
            q = self.client.table(TASKS_TABLE).select("*").eq("user_id", owner_id)
            if goal_id:
                q = q.eq("goal_id", goal_id)
            if not include_completed:
                q = q.eq("completed", False)
            q = q.order("due_date")
            if limit:
                q = q.limit(limit)
            return q.execute()

        return await self._run("find_tasks_by_owner", query) or []

    async def find_logs_by_owner(self, owner_id: str, limit: int = 5) -> list[dict[str, Any]]:
        return (
            await self._run(
                "find_logs_by_owner",
                lambda: self.client.table(LOGS_TABLE)
                .select("*")
                .eq("user_id", owner_id)
                .order("date", desc=True)
                .limit(limit)
                .execute(),
            )
            or []
        )

    async def get_owner_profile(self, owner_id: str) -> Optional[dict[str, Any]]:
        rows = await self._run(
            "get_owner_profile",
            lambda: self.client.table(USERS_TABLE)
            .select("id, name, email")
            .eq("id", owner_id)
            .limit(1)
            .execute(),
        )
        return rows[0] if rows else None

    async def upsert_guest_owner(self) -> str:
        """
        Creates the shared guest owner on first use, keyed by its unique email.

        Returns:
            The guest owner id
        """
        if self._guest_owner_id:
            return self._guest_owner_id

        rows = await self._run(
            "upsert_guest_owner",
            lambda: self.client.table(USERS_TABLE)
            .upsert(
                {"email": self.guest_email, "name": "Guest User"},
                on_conflict="email",
            )
            .execute(),
        )
        if not rows:
            raise DatabaseError("upsert_guest_owner returned no row")

        self._guest_owner_id = str(rows[0]["id"])
        logger.info("guest_owner_upserted", owner_id=self._guest_owner_id)
        return self._guest_owner_id


class SupabaseMemoryStore:
    """
    Long-term memory stored as embedded snippets in Supabase.
    Similarity search goes through the `match_memories` RPC.
    """

    def __init__(self, client: Client, embeddings_model: Embeddings, timeout: int = 10):
        self.client = client
        self.embeddings_model = embeddings_model
        self.timeout = timeout

    async def store(self, owner_id: str, text: str, metadata: dict[str, Any]) -> None:
        try:
            embedding = await asyncio.wait_for(
                asyncio.to_thread(self.embeddings_model.embed_documents, [text]),
                timeout=self.timeout,
            )
            row = {
                "user_id": owner_id,
                "content": text,
                "metadata": metadata,
                "embedding": embedding[0],
            }
            await asyncio.wait_for(
                asyncio.to_thread(
                    lambda: self.client.table(MEMORIES_TABLE).insert(row).execute()
                ),
                timeout=self.timeout,
            )
            logger.info("memory_stored", owner_id=owner_id, chars=len(text))
        except Exception as e:
            logger.error("memory_store_failed", exc_info=True, error=str(e))
            raise DatabaseError(f"Failed to store memory: {e}") from e

    async def query(self, owner_id: str, text: str, k: int) -> list[MemoryMatch]:
        try:
            logger.info("embedding_started", query=text[:100])
            query_embedding = await asyncio.wait_for(
                asyncio.to_thread(self.embeddings_model.embed_query, text),
                timeout=self.timeout,
            )

            rpc_params = {
                "query_embedding": query_embedding,
                "match_count": k,
                "filter_user_id": owner_id,
            }
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    lambda: self.client.rpc("match_memories", rpc_params).execute()
                ),
                timeout=self.timeout,
            )

            if not response.data:
                logger.info("no_memories_found", owner_id=owner_id)
                return []

            logger.info("memories_found", count=len(response.data))
            return [
                MemoryMatch(
                    text=row["content"],
                    metadata=row.get("metadata") or {},
                    score=row.get("similarity", 0.0),
                )
                for row in response.data
            ]

        except Exception as e:
            logger.error("memory_query_failed", exc_info=True, error=str(e))
            raise DatabaseError(f"Failed to query memories: {e}") from e
