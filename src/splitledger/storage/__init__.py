"""Interchangeable ledger storage backends."""

from .base import LedgerRepository
from .factory import create_repository
from .memory import MemoryRepository
from .sqlite import SqliteRepository
from .supabase import SupabaseRepository

__all__ = [
    "LedgerRepository",
    "create_repository",
    "MemoryRepository",
    "SqliteRepository",
    "SupabaseRepository",
]
