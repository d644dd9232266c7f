"""Tests for settings loading."""

import pytest

from splitledger.config import Settings, load_settings
from splitledger.exceptions import ConfigurationError


def test_defaults(monkeypatch):
    """Without configuration the memory backend with demo data is used."""
    monkeypatch.delenv("STORAGE_TYPE", raising=False)

    settings = Settings(_env_file=None)

    assert settings.storage_type == "memory"
    assert settings.seed_demo_data is True
    assert settings.api_port == 8000


def test_reads_environment(monkeypatch, tmp_path):
    """Settings come from environment variables, case-insensitively."""
    monkeypatch.setenv("STORAGE_TYPE", "database")
    monkeypatch.setenv("database_path", str(tmp_path / "data" / "ledger.db"))

    settings = load_settings()

    assert settings.storage_type == "database"
    assert settings.database_path.parent.is_dir()


def test_invalid_storage_type(monkeypatch):
    """Unknown backends are a configuration error."""
    monkeypatch.setenv("STORAGE_TYPE", "sheets")

    with pytest.raises(ConfigurationError) as exc_info:
        load_settings()

    assert "STORAGE_TYPE" in str(exc_info.value)
