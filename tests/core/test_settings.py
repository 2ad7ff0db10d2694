"""Tests for CronLockSettings."""

import os
from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from cronlock.core.settings import CronLockSettings, LockDefaults


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No stray CRONLOCK_* variables or .env file."""
    for key in list(os.environ):
        if key.startswith("CRONLOCK_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        settings = CronLockSettings()
        assert settings.database_url == "sqlite:///cronlock.db"
        assert settings.table_name == "shedlock"
        assert settings.instance_id is None
        assert settings.backend == "thread"
        assert settings.max_workers == 4
        assert settings.tasks_file is None

    def test_lock_defaults(self):
        defaults = CronLockSettings().lock_defaults()
        assert defaults == LockDefaults(timedelta(minutes=10), timedelta(0))


class TestEnvironment:
    def test_reads_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("CRONLOCK_DATABASE_URL", "postgresql://db/locks")
        monkeypatch.setenv("CRONLOCK_INSTANCE_ID", "node-a")
        monkeypatch.setenv("CRONLOCK_DEFAULT_LOCK_AT_MOST_FOR", "5m")
        monkeypatch.setenv("CRONLOCK_TASKS_FILE", "tasks.yaml")

        settings = CronLockSettings()
        assert settings.database_url == "postgresql://db/locks"
        assert settings.instance_id == "node-a"
        assert settings.tasks_file == Path("tasks.yaml")
        assert settings.lock_defaults().lock_at_most_for == timedelta(minutes=5)

    def test_reads_dotenv(self, tmp_path):
        (tmp_path / ".env").write_text("CRONLOCK_TABLE_NAME=scheduler_locks\n")
        assert CronLockSettings().table_name == "scheduler_locks"


class TestValidation:
    def test_malformed_duration(self):
        with pytest.raises(ValidationError, match="Malformed duration"):
            CronLockSettings(default_lock_at_most_for="soon")

    def test_at_least_exceeds_at_most(self):
        with pytest.raises(ValidationError, match="must not exceed"):
            CronLockSettings(default_lock_at_most_for="5m", default_lock_at_least_for="10m")

    def test_table_name_must_be_identifier(self):
        with pytest.raises(ValidationError, match="table_name"):
            CronLockSettings(table_name="locks; drop table x")

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            CronLockSettings(backend="celery")

    def test_max_workers_positive(self):
        with pytest.raises(ValidationError):
            CronLockSettings(max_workers=0)
