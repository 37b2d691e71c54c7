"""
Database package exports for storage contracts and Supabase integration.
"""

from goalcoach.database.gateway import (
    PersistenceGateway,
    MemoryStore,
    MemoryMatch,
    PersistenceError,
    DatabaseError,
    NotFoundError,
    EntityValidationError,
    is_guest_owner,
    resolve_owner,
)
from goalcoach.database.supabase import SupabasePersistence, SupabaseMemoryStore

__all__ = [
    "PersistenceGateway",
    "MemoryStore",
    "MemoryMatch",
    "PersistenceError",
    "DatabaseError",
    "NotFoundError",
    "EntityValidationError",
    "is_guest_owner",
    "resolve_owner",
    "SupabasePersistence",
    "SupabaseMemoryStore",
]
