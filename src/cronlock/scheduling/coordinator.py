"""Scheduled-lock coordinator - one guarded run per tick.

Manifesto:
    A tick is only a suggestion.  The coordinator turns it into at most one
    run of the task body fleet-wide: it acquires the named lock, runs the
    body, and releases the lock to its at-least floor on every exit path.
    Losing the race is routine and silent; a failing body is logged and
    reported, but never leaves the lock held past its ceiling.

Tags:
    cronlock, scheduling, coordinator, state-machine, distributed-locks

Doc-Types:
    api-reference, architecture-diagram


    Per-tick state machine::

        IDLE ──tick──► ACQUIRING ──none──────────────────────────► IDLE
                           │                               (SKIPPED_LOCKED)
                           └──handle──► RUNNING ──return/raise──► RELEASING
                                                                       │
                                                 handle.close() ◄──────┘
                                                       │
                                                       ▼
                                                     IDLE
                                              (COMPLETED | FAILED)

        A tick arriving while this instance is anywhere between ACQUIRING
        and RELEASING for the same task is dropped (SKIPPED_IN_FLIGHT).
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cronlock.core.errors import GuardedTaskError
from cronlock.core.logging import LogContext, get_logger
from cronlock.scheduling.config import ScheduledTaskDefinition
from cronlock.scheduling.lock_manager import LockManager

logger = get_logger(__name__)


class CoordinatorState(str, Enum):
    IDLE = "IDLE"
    ACQUIRING = "ACQUIRING"
    RUNNING = "RUNNING"
    RELEASING = "RELEASING"


class RunOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED_LOCKED = "SKIPPED_LOCKED"
    SKIPPED_IN_FLIGHT = "SKIPPED_IN_FLIGHT"

    @property
    def executed(self) -> bool:
        return self in (RunOutcome.COMPLETED, RunOutcome.FAILED)


@dataclass
class RunResult:
    """What happened on one fire of a coordinator."""

    task: str
    outcome: RunOutcome
    fired_at: datetime
    finished_at: datetime | None = None
    released: bool | None = None
    error: GuardedTaskError | None = None

    @property
    def executed(self) -> bool:
        return self.outcome.executed

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task,
            "outcome": self.outcome.value,
            "fired_at": self.fired_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "released": self.released,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class CoordinatorStats:
    """Counters for one registered task on this instance."""

    fires: int = 0
    completed: int = 0
    failed: int = 0
    skipped_locked: int = 0
    skipped_in_flight: int = 0
    release_failures: int = 0
    last_outcome: RunOutcome | None = None
    last_run_at: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fires": self.fires,
            "completed": self.completed,
            "failed": self.failed,
            "skipped_locked": self.skipped_locked,
            "skipped_in_flight": self.skipped_in_flight,
            "release_failures": self.release_failures,
            "last_outcome": self.last_outcome.value if self.last_outcome else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


class ScheduledLockCoordinator:
    """Wraps one scheduled task with the lock protocol.

    Example:
        >>> definition = ScheduledTaskDefinition.build(
        ...     "shortRunningTask", "0 */2 * * * *", poll_job_completed, "5m", "1m"
        ... )
        >>> coordinator = ScheduledLockCoordinator(lock_manager, definition)
        >>> backend.add_job(definition.name, definition.schedule, coordinator.fire)
    """

    def __init__(self, lock_manager: LockManager, definition: ScheduledTaskDefinition) -> None:
        self.lock_manager = lock_manager
        self.definition = definition
        self._state = CoordinatorState.IDLE
        self._in_flight = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = CoordinatorStats()

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def get_stats(self) -> CoordinatorStats:
        return self._stats

    def fire(self) -> RunResult:
        """Handle one tick. Never raises for lock or task failures."""
        clock = self.lock_manager.clock
        fired_at = clock()

        if not self._in_flight.acquire(blocking=False):
            logger.debug("task_skipped", task=self.name, reason="previous run still in flight")
            return self._record(RunResult(self.name, RunOutcome.SKIPPED_IN_FLIGHT, fired_at))

        try:
            self._state = CoordinatorState.ACQUIRING
            handle = self.lock_manager.acquire_for(self.definition.lock)
            if handle is None:
                logger.debug("task_skipped", task=self.name, lock=self.definition.lock.name, reason="lock held")
                return self._record(RunResult(self.name, RunOutcome.SKIPPED_LOCKED, fired_at))

            error: GuardedTaskError | None = None
            with LogContext(task=self.name, holder=handle.holder):
                try:
                    self._state = CoordinatorState.RUNNING
                    logger.info("task_started", lock_until=handle.locked_until.isoformat())
                    self._run_body()
                except Exception as e:
                    error = GuardedTaskError(
                        f"Guarded task {self.name!r} failed: {e}", cause=e
                    ).with_context(task=self.name, lock_name=handle.name, holder=handle.holder)
                    logger.exception("task_failed", error=str(e))
                finally:
                    self._state = CoordinatorState.RELEASING
                    released = handle.close()

            outcome = RunOutcome.FAILED if error else RunOutcome.COMPLETED
            result = RunResult(
                self.name,
                outcome,
                fired_at,
                finished_at=clock(),
                released=released,
                error=error,
            )
            if outcome is RunOutcome.COMPLETED:
                logger.info("task_completed", task=self.name, released=released)
            return self._record(result)
        finally:
            self._state = CoordinatorState.IDLE
            self._in_flight.release()

    def _run_body(self) -> None:
        result = self.definition.task()
        if inspect.iscoroutine(result):
            asyncio.run(result)

    def _record(self, result: RunResult) -> RunResult:
        with self._stats_lock:
            stats = self._stats
            stats.fires += 1
            stats.last_outcome = result.outcome
            if result.outcome is RunOutcome.SKIPPED_LOCKED:
                stats.skipped_locked += 1
            elif result.outcome is RunOutcome.SKIPPED_IN_FLIGHT:
                stats.skipped_in_flight += 1
            else:
                stats.last_run_at = result.fired_at
                if result.outcome is RunOutcome.COMPLETED:
                    stats.completed += 1
                else:
                    stats.failed += 1
                    stats.last_error = result.error.message if result.error else None
                if result.released is False:
                    stats.release_failures += 1
        return result
