"""Lock configuration and scheduled task definitions.

``LockConfiguration`` is the validated pair of bounds for one named lock;
``ScheduledTaskDefinition`` binds it to a cron schedule and a callable.
Task files are YAML, validated with pydantic, and every problem surfaces as
``ConfigInvalidError`` before anything is scheduled.

Example task file::

    tasks:
      - name: shortRunningTask
        cron: "0 */2 * * * *"
        lock_at_most_for: 5m
        lock_at_least_for: 1m
        target: cronlock.demo:poll_job_completed
        kwargs:
          duration_seconds: 10

Tags:
    cronlock, scheduling, configuration, yaml, pydantic

Doc-Types:
    api-reference, configuration-guide
"""

from __future__ import annotations

import functools
import importlib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from cronlock.core.durations import DurationLike, format_duration, parse_duration
from cronlock.core.errors import ConfigInvalidError
from cronlock.core.settings import LockDefaults
from cronlock.scheduling.cron import CronSchedule

TaskFn = Callable[[], Any]


@dataclass(frozen=True)
class LockConfiguration:
    """Bounds for one named lock.

    Attributes:
        name: Lock name, unique per guarded task
        lock_at_most_for: Ceiling after which a crashed holder's lock is stealable
        lock_at_least_for: Floor the lock is kept for even if the task finishes early
    """

    name: str
    lock_at_most_for: timedelta
    lock_at_least_for: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigInvalidError("name", self.name, "Lock name must be a non-empty string")
        if len(self.name) > 64:
            raise ConfigInvalidError("name", self.name, "Lock name must be at most 64 characters")
        if self.lock_at_most_for <= timedelta(0):
            raise ConfigInvalidError(
                "lock_at_most_for", self.lock_at_most_for,
                f"lock_at_most_for must be positive for lock {self.name!r}",
            ).with_context(lock_name=self.name)
        if self.lock_at_least_for < timedelta(0):
            raise ConfigInvalidError(
                "lock_at_least_for", self.lock_at_least_for,
                f"lock_at_least_for must not be negative for lock {self.name!r}",
            ).with_context(lock_name=self.name)
        if self.lock_at_least_for > self.lock_at_most_for:
            raise ConfigInvalidError(
                "lock_at_least_for",
                self.lock_at_least_for,
                f"lock_at_least_for ({format_duration(self.lock_at_least_for)}) must not exceed "
                f"lock_at_most_for ({format_duration(self.lock_at_most_for)}) for lock {self.name!r}",
            ).with_context(lock_name=self.name)

    @classmethod
    def of(
        cls,
        name: str,
        lock_at_most_for: DurationLike | None = None,
        lock_at_least_for: DurationLike | None = None,
        defaults: LockDefaults | None = None,
    ) -> LockConfiguration:
        """Build a configuration from human-readable durations.

        Missing bounds fall back to *defaults* (``10m`` / ``0s``).
        """
        defaults = defaults or LockDefaults()
        at_most = (
            defaults.lock_at_most_for
            if lock_at_most_for is None
            else parse_duration(lock_at_most_for, key="lock_at_most_for")
        )
        at_least = (
            defaults.lock_at_least_for
            if lock_at_least_for is None
            else parse_duration(lock_at_least_for, key="lock_at_least_for")
        )
        return cls(name=name, lock_at_most_for=at_most, lock_at_least_for=at_least)


@dataclass(frozen=True)
class ScheduledTaskDefinition:
    """A cron schedule, a lock configuration and the work they guard."""

    name: str
    schedule: CronSchedule
    lock: LockConfiguration
    task: TaskFn

    def __post_init__(self) -> None:
        if not callable(self.task):
            raise ConfigInvalidError("task", self.task, f"Task {self.name!r} must be callable")

    @classmethod
    def build(
        cls,
        name: str,
        cron: str,
        task: TaskFn,
        lock_at_most_for: DurationLike | None = None,
        lock_at_least_for: DurationLike | None = None,
        *,
        lock_name: str | None = None,
        timezone: str = "UTC",
        defaults: LockDefaults | None = None,
    ) -> ScheduledTaskDefinition:
        try:
            schedule = CronSchedule.parse(cron, timezone=timezone)
            # tasks sharing a lock_name have separate in-flight guards, so once
            # lock_at_most_for passes they can overlap on one node
            lock = LockConfiguration.of(
                lock_name or name, lock_at_most_for, lock_at_least_for, defaults=defaults
            )
        except ConfigInvalidError as e:
            raise e.with_context(task=name)
        return cls(name=name, schedule=schedule, lock=lock, task=task)


# ---------------------------------------------------------------------------
# YAML task files
# ---------------------------------------------------------------------------


class TaskEntry(BaseModel):
    """One entry of a task file.

    Lock durations must carry a unit (``"5m"``, ``"90s"``, ``"PT1M"``).  Bare
    numbers are rejected: ``parse_duration`` reads ``300`` as seconds and
    ``"300"`` as milliseconds.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=64)
    cron: str
    target: str
    lock_name: str | None = None
    lock_at_most_for: str | None = None
    lock_at_least_for: str | None = None
    timezone: str = "UTC"
    kwargs: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True

    @field_validator("lock_at_most_for", "lock_at_least_for", mode="before")
    @classmethod
    def _require_unit(cls, value: Any) -> Any:
        if isinstance(value, int | float) or (isinstance(value, str) and value.strip().isdigit()):
            raise ValueError(f"duration {value!r} needs a unit, e.g. '{value}s' or '{value}ms'")
        return value


class TaskFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tasks: list[TaskEntry] = Field(default_factory=list)


def resolve_target(path: str) -> Callable[..., Any]:
    """Import ``"package.module:attribute"`` and return the attribute."""
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigInvalidError("target", path, f"Target must look like 'module:function', got {path!r}")

    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigInvalidError("target", path, f"Cannot import module {module_name!r}", cause=e) from e

    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError as e:
            raise ConfigInvalidError("target", path, f"{module_name!r} has no attribute {attr_path!r}", cause=e) from e

    if not callable(obj):
        raise ConfigInvalidError("target", path, f"Target {path!r} is not callable")
    return obj


def definitions_from_mapping(
    data: Any, defaults: LockDefaults | None = None
) -> list[ScheduledTaskDefinition]:
    """Validate parsed task-file data and build definitions (enabled tasks only)."""
    try:
        task_file = TaskFile.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        raise ConfigInvalidError("tasks", data, f"Invalid task file: {e}", cause=e) from e

    seen: set[str] = set()
    definitions = []
    for entry in task_file.tasks:
        if entry.name in seen:
            raise ConfigInvalidError("name", entry.name, f"Duplicate task name: {entry.name!r}")
        seen.add(entry.name)

        if not entry.enabled:
            continue

        try:
            fn = resolve_target(entry.target)
        except ConfigInvalidError as e:
            raise e.with_context(task=entry.name)
        task = functools.partial(fn, **entry.kwargs) if entry.kwargs else fn

        definitions.append(
            ScheduledTaskDefinition.build(
                entry.name,
                entry.cron,
                task,
                entry.lock_at_most_for,
                entry.lock_at_least_for,
                lock_name=entry.lock_name,
                timezone=entry.timezone,
                defaults=defaults,
            )
        )
    return definitions


def load_task_definitions(
    path: str | Path, defaults: LockDefaults | None = None
) -> list[ScheduledTaskDefinition]:
    """Load and validate a YAML task file.

    Raises:
        ConfigInvalidError: For unreadable files, YAML errors, or any invalid task
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigInvalidError("tasks_file", str(path), f"Cannot read task file {path}", cause=e) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigInvalidError("tasks_file", str(path), f"Malformed YAML in {path}", cause=e) from e

    return definitions_from_mapping(data, defaults=defaults)
