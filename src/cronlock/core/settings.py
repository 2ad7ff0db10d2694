"""Process-wide settings for a cronlock node.

Every node in a fleet is configured identically except, optionally, for its
``instance_id``.  ``CronLockSettings`` is constructed once at process start
and passed explicitly to ``create_scheduler``; nothing reads it implicitly.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not on the first tick
    - **Environment-driven:** Reads from ``CRONLOCK_*`` env vars and ``.env``
    - **Sensible defaults:** SQLite store, thread backend, ``10m`` ceiling

Examples:
    >>> settings = CronLockSettings(database_url="postgresql://db/locks")
    >>> settings.lock_defaults().lock_at_most_for
    datetime.timedelta(seconds=600)

Tags:
    settings, configuration, pydantic, environment, cronlock

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cronlock.core.durations import parse_duration
from cronlock.core.errors import ConfigInvalidError


@dataclass(frozen=True)
class LockDefaults:
    """Fallback lock bounds for tasks that do not set their own."""

    lock_at_most_for: timedelta = timedelta(minutes=10)
    lock_at_least_for: timedelta = timedelta(0)


class CronLockSettings(BaseSettings):
    """Settings shared by the scheduler, the lock store and the CLI.

    Fields
    ──────
    database_url              : SQLAlchemy URL of the shared lock store
    table_name                : Lock table name
    instance_id               : Holder identity (auto-generated when unset)
    default_lock_at_most_for  : Ceiling used when a task omits one
    default_lock_at_least_for : Floor used when a task omits one
    backend                   : Timing backend (``thread`` or ``apscheduler``)
    max_workers               : Worker threads for guarded task bodies
    tasks_file                : YAML task file loaded by ``cronlock run``
    log_level                 : Structlog log level
    json_logs                 : Force JSON (True) / console (False) output
    """

    model_config = SettingsConfigDict(
        env_prefix="CRONLOCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = "sqlite:///cronlock.db"
    table_name: str = "shedlock"

    # ── Locking ──────────────────────────────────────────────────
    instance_id: str | None = None
    default_lock_at_most_for: str = "10m"
    default_lock_at_least_for: str = "0s"

    # ── Scheduling ───────────────────────────────────────────────
    backend: Literal["thread", "apscheduler"] = "thread"
    max_workers: int = Field(default=4, ge=1)
    tasks_file: Path | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("default_lock_at_most_for", "default_lock_at_least_for")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        try:
            parse_duration(value)
        except ConfigInvalidError as e:
            raise ValueError(e.message) from e
        return value

    @field_validator("table_name")
    @classmethod
    def _check_table_name(cls, value: str) -> str:
        if not value.replace("_", "").isalnum():
            raise ValueError(f"table_name must be alphanumeric/underscore: {value!r}")
        return value

    @model_validator(mode="after")
    def _check_default_bounds(self) -> CronLockSettings:
        defaults = self.lock_defaults()
        if defaults.lock_at_least_for > defaults.lock_at_most_for:
            raise ValueError(
                "default_lock_at_least_for must not exceed default_lock_at_most_for"
            )
        return self

    def lock_defaults(self) -> LockDefaults:
        """Return the parsed default lock bounds."""
        return LockDefaults(
            lock_at_most_for=parse_duration(self.default_lock_at_most_for, key="default_lock_at_most_for"),
            lock_at_least_for=parse_duration(self.default_lock_at_least_for, key="default_lock_at_least_for"),
        )
