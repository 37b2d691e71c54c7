"""
Fire-and-forget writes to the long-term memory store.
A failed write is logged and never reaches the user.
"""

import asyncio
from typing import Any, Optional

from goalcoach.database.gateway import MemoryStore
from goalcoach.utils.logger import get_logger

logger = get_logger(__name__)


class MemoryWriter:
    """Schedules memory writes off the turn's critical path."""

    def __init__(self, memory_store: Optional[MemoryStore], timeout: float = 10.0):
        self.memory_store = memory_store
        self.timeout = timeout
        self._pending: set[asyncio.Task] = set()

    def remember(self, owner_id: Optional[str], text: str, metadata: dict[str, Any]) -> None:
        if self.memory_store is None or not text.strip():
            return
        task = asyncio.create_task(self._store(owner_id or "guest", text, metadata))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store(self, owner_id: str, text: str, metadata: dict[str, Any]) -> None:
        try:
            await asyncio.wait_for(
                self.memory_store.store(owner_id, text, metadata), timeout=self.timeout
            )
        except Exception as e:
            logger.warning("memory_write_failed", owner_id=owner_id, error=str(e))

    async def drain(self) -> None:
        """Waits for scheduled writes; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
