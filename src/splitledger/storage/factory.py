"""Select the ledger storage backend from settings."""

import logging

from ..config import Settings
from ..exceptions import ConfigurationError
from .base import LedgerRepository
from .memory import MemoryRepository
from .sqlite import SqliteRepository
from .supabase import SupabaseRepository

logger = logging.getLogger(__name__)


def create_repository(settings: Settings) -> LedgerRepository:
    """
    Create the repository named by settings.storage_type.

    Called once at startup; the result is passed explicitly to the
    service and API layers.

    Args:
        settings: Application settings

    Returns:
        A ready-to-use ledger repository

    Raises:
        ConfigurationError: If the backend's required settings are missing
    """
    storage_type = settings.storage_type
    logger.info(f"Using {storage_type} storage")

    if storage_type == "memory":
        return MemoryRepository(seed_demo_data=settings.seed_demo_data)

    if storage_type == "database":
        return SqliteRepository(settings.database_path)

    if storage_type == "supabase":
        if not settings.supabase_url or not settings.supabase_key:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_KEY are required for Supabase storage"
            )
        return SupabaseRepository(settings.supabase_url, settings.supabase_key)

    raise ConfigurationError(f"Unsupported storage type: {storage_type}")
