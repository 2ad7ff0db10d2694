"""Scheduler service - registration and lifecycle.

Manifesto:
    Startup wiring should be explicit.  Every guarded task is registered
    with one call naming its cron schedule, its lock bounds and its body;
    configuration errors surface there, before the first tick, and the
    service owns nothing but the backend, the lock manager and one
    coordinator per task.

The SchedulerService combines a timing backend and a lock manager into a
node of the fleet.

Tags:
    cronlock, scheduling, service, registration, lifecycle

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER SERVICE                                                            │
│                                                                               │
│   register_scheduled_locked_task(name, cron, at_most, at_least, task)        │
│        │                                                                      │
│        ├── CronSchedule.parse(cron)           ─┐                             │
│        ├── LockConfiguration.of(...)           ├─ ConfigInvalidError here    │
│        ├── ScheduledLockCoordinator(manager)  ─┘                             │
│        └── backend.add_job(name, schedule, coordinator.fire)                 │
│                                                                               │
│   Public API:                                                                 │
│   ├── start()          Start the backend                                     │
│   ├── stop()           Stop the backend gracefully                           │
│   ├── trigger(name)    One manual fire through the lock                      │
│   └── health()         Backend, locks and per-task stats                     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cronlock.core.durations import DurationLike, format_duration
from cronlock.core.errors import ConfigInvalidError
from cronlock.core.logging import get_logger
from cronlock.core.settings import LockDefaults
from cronlock.scheduling.config import ScheduledTaskDefinition, TaskFn
from cronlock.scheduling.coordinator import CoordinatorStats, RunResult, ScheduledLockCoordinator
from cronlock.scheduling.lock_manager import LockManager
from cronlock.scheduling.protocol import SchedulerBackend

logger = get_logger(__name__)


@dataclass
class SchedulerHealth:
    """Health status for a scheduler node."""

    healthy: bool
    backend: dict[str, Any]
    instance_id: str
    tasks_registered: int = 0
    active_locks: int | None = None
    tasks: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "instance_id": self.instance_id,
            "tasks_registered": self.tasks_registered,
            "active_locks": self.active_locks,
            "tasks": self.tasks,
        }


class SchedulerService:
    """One node of a fleet running cluster-wide at-most-once cron tasks.

    Example:
        >>> service = SchedulerService(
        ...     backend=ThreadSchedulerBackend(),
        ...     lock_manager=LockManager(SqlLockStore(engine)),
        ... )
        >>> service.register_scheduled_locked_task(
        ...     "shortRunningTask", "0 */2 * * * *", "5m", "1m", task=poll_job_completed
        ... )
        >>> service.start()
        >>>
        >>> # Later...
        >>> service.stop()
    """

    def __init__(
        self,
        backend: SchedulerBackend,
        lock_manager: LockManager,
        defaults: LockDefaults | None = None,
    ) -> None:
        """Initialize scheduler service.

        Args:
            backend: Timing backend (Thread, APScheduler)
            lock_manager: Distributed lock manager
            defaults: Lock bounds for tasks registered without their own
        """
        self.backend = backend
        self.lock_manager = lock_manager
        self.defaults = defaults or LockDefaults()

        self._coordinators: dict[str, ScheduledLockCoordinator] = {}
        self._lock = threading.Lock()
        self._running = False

    # === Registration ===

    def register_scheduled_locked_task(
        self,
        name: str,
        cron: str,
        lock_at_most_for: DurationLike | None = None,
        lock_at_least_for: DurationLike | None = None,
        task: TaskFn | None = None,
        *,
        lock_name: str | None = None,
        timezone: str = "UTC",
    ) -> ScheduledLockCoordinator:
        """Register *task* to run on *cron*, at most once fleet-wide per fire.

        Raises:
            ConfigInvalidError: For malformed cron/durations, ``at_least > at_most``,
                a missing task, or a duplicate task name
        """
        if task is None:
            raise ConfigInvalidError("task", None, f"No task body given for {name!r}").with_context(task=name)

        definition = ScheduledTaskDefinition.build(
            name,
            cron,
            task,
            lock_at_most_for,
            lock_at_least_for,
            lock_name=lock_name,
            timezone=timezone,
            defaults=self.defaults,
        )
        return self.register(definition)

    def register(self, definition: ScheduledTaskDefinition) -> ScheduledLockCoordinator:
        """Register a pre-built task definition."""
        with self._lock:
            if definition.name in self._coordinators:
                raise ConfigInvalidError(
                    "name", definition.name, f"Task already registered: {definition.name!r}"
                ).with_context(task=definition.name)
            coordinator = ScheduledLockCoordinator(self.lock_manager, definition)
            self.backend.add_job(definition.name, definition.schedule, coordinator.fire)
            self._coordinators[definition.name] = coordinator

        logger.info(
            "task_registered",
            task=definition.name,
            cron=definition.schedule.expression,
            lock=definition.lock.name,
            lock_at_most_for=format_duration(definition.lock.lock_at_most_for),
            lock_at_least_for=format_duration(definition.lock.lock_at_least_for),
        )
        return coordinator

    def register_all(self, definitions: Iterable[ScheduledTaskDefinition]) -> list[ScheduledLockCoordinator]:
        return [self.register(definition) for definition in definitions]

    def unregister(self, name: str) -> bool:
        with self._lock:
            coordinator = self._coordinators.pop(name, None)
            if coordinator is None:
                return False
            self.backend.remove_job(name)
        logger.info("task_unregistered", task=name)
        return True

    @property
    def task_names(self) -> list[str]:
        return sorted(self._coordinators)

    def get_coordinator(self, name: str) -> ScheduledLockCoordinator:
        """Raises KeyError if *name* is not registered."""
        try:
            return self._coordinators[name]
        except KeyError:
            raise KeyError(f"Task not registered: {name}") from None

    # === Lifecycle ===

    def start(self) -> None:
        """Start firing registered tasks."""
        if self._running:
            logger.warning("scheduler_already_running")
            return

        logger.info(
            "scheduler_starting",
            backend=self.backend.name,
            instance_id=self.lock_manager.instance_id,
            tasks=len(self._coordinators),
        )
        self.backend.start()
        self._running = True

    def stop(self) -> None:
        """Stop the scheduler. Runs already in progress finish and release."""
        if not self._running:
            return

        logger.info("scheduler_stopping")
        self.backend.stop()
        self._running = False
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Manual Operations ===

    def trigger(self, name: str) -> RunResult:
        """Fire *name* once now, through the same lock protocol as a tick.

        Raises:
            KeyError: If the task is not registered
        """
        coordinator = self.get_coordinator(name)
        logger.info("task_triggered_manually", task=name)
        return coordinator.fire()

    # === Health & Stats ===

    def get_stats(self) -> dict[str, CoordinatorStats]:
        return {name: c.get_stats() for name, c in sorted(self._coordinators.items())}

    def health(self) -> SchedulerHealth:
        """Get scheduler health status."""
        backend_health = self.backend.health()
        try:
            active_locks: int | None = len(self.lock_manager.list_active_locks())
        except Exception as e:
            logger.warning("lock_store_unavailable", error=str(e))
            active_locks = None

        return SchedulerHealth(
            healthy=self._running and bool(backend_health.get("healthy", False)),
            backend=backend_health,
            instance_id=self.lock_manager.instance_id,
            tasks_registered=len(self._coordinators),
            active_locks=active_locks,
            tasks={
                name: {"state": c.state.value, **c.get_stats().to_dict()}
                for name, c in sorted(self._coordinators.items())
            },
        )
