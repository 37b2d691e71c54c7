"""
Unit tests for MemoryWriter.
"""

import pytest

from goalcoach.database.gateway import DatabaseError
from goalcoach.services.memory_writer import MemoryWriter


class TestMemoryWriter:
    @pytest.mark.asyncio
    async def test_write_is_scheduled_and_drained(self, mock_memory_store):
        """Should store the snippet once pending writes are drained."""
        writer = MemoryWriter(mock_memory_store)

        writer.remember("user-1", "I prefer morning workouts", {"role": "user"})
        await writer.drain()

        mock_memory_store.store.assert_awaited_once_with(
            "user-1", "I prefer morning workouts", {"role": "user"}
        )

    @pytest.mark.asyncio
    async def test_failed_write_is_swallowed(self, mock_memory_store):
        """Should log failures without raising."""
        mock_memory_store.store.side_effect = DatabaseError("insert failed")
        writer = MemoryWriter(mock_memory_store)

        writer.remember("user-1", "hello", {})
        await writer.drain()

        mock_memory_store.store.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_blank_text_and_missing_store_are_skipped(self, mock_memory_store):
        writer = MemoryWriter(mock_memory_store)

        writer.remember("user-1", "   ", {})
        MemoryWriter(None).remember("user-1", "hello", {})
        await writer.drain()

        mock_memory_store.store.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_guest_writes_use_guest_owner(self, mock_memory_store):
        writer = MemoryWriter(mock_memory_store)

        writer.remember(None, "hello", {})
        await writer.drain()

        assert mock_memory_store.store.await_args.args[0] == "guest"
