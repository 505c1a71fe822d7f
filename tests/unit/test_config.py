"""Unit tests for buildledger configuration management.

Tests AppConfig loading from environment variables, validation, and defaults.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from buildledger.config import AppConfig, DBConfig, get_config, reset_config


class TestAppConfig:
    """Test AppConfig creation and validation."""

    def test_defaults_need_no_environment(self):
        """File storage works with nothing configured."""
        config = AppConfig.from_env()

        assert config.storage.backend == "auto"
        assert config.storage.data_dir == Path("data")
        assert config.storage.lock_writes is True
        assert config.db.url is None
        assert config.db.enabled is False
        assert config.payroll.working_days_per_month == 22
        assert config.payroll.days_per_month == 30
        assert config.seed.admin_username == "admin"
        assert config.log_level == "INFO"
        assert config.log_format == "text"

    def test_database_url_enables_remote(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

        config = AppConfig.from_env()

        assert config.db.enabled is True
        assert config.db.url == "sqlite+aiosqlite:///./test.db"

    def test_unknown_backend_fails_fast(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "mongo")

        with pytest.raises(ValueError) as exc_info:
            AppConfig.from_env()

        assert "STORAGE_BACKEND" in str(exc_info.value)

    def test_remote_backend_requires_url(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "remote")

        with pytest.raises(ValueError) as exc_info:
            AppConfig.from_env()

        assert "DATABASE_URL" in str(exc_info.value)

    def test_custom_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("STORAGE_BACKEND", "LOCAL")
        monkeypatch.setenv("WORKING_DAYS_PER_MONTH", "26")
        monkeypatch.setenv("STORAGE_LOCK_WRITES", "false")
        monkeypatch.setenv("DB_CONNECT_TIMEOUT", "1.5")
        monkeypatch.setenv("LOG_FORMAT", "json")

        config = AppConfig.from_env()

        assert config.storage.data_dir == tmp_path
        assert config.storage.backend == "local"
        assert config.storage.lock_writes is False
        assert config.payroll.working_days_per_month == 26
        assert config.db.connect_timeout == 1.5
        assert config.log_format == "json"


class TestSingleton:
    def test_get_config_is_cached_until_reset(self, monkeypatch):
        first = get_config()
        assert get_config() is first

        monkeypatch.setenv("WORKING_DAYS_PER_MONTH", "20")
        reset_config()

        assert get_config() is not first
        assert get_config().payroll.working_days_per_month == 20


def test_db_config_disabled_without_url():
    assert DBConfig().enabled is False
    assert DBConfig(url="postgresql+asyncpg://x/y").enabled is True
