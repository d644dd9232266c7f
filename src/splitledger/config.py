"""Configuration management for SplitLedger."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

StorageType = Literal["memory", "database", "supabase"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage backend, selected once at startup
    storage_type: StorageType = "memory"

    # SQLite ("database") backend
    database_path: Path = Path.home() / ".splitledger" / "splitledger.db"

    # Supabase backend
    supabase_url: str | None = None
    supabase_key: str | None = None

    # Memory backend starts with demo users and groups
    seed_demo_data: bool = True

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    def __init__(self, **kwargs):
        """Initialize settings and create the database directory if needed."""
        super().__init__(**kwargs)
        if self.storage_type == "database":
            self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your .env file and environment "
            f"variables (STORAGE_TYPE, DATABASE_PATH, SUPABASE_URL, ...).\n"
            f"Error: {e}"
        ) from e
