"""Scheduler backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER BACKEND PROTOCOL                                                   │
│                                                                               │
│  Backends control WHEN a job fires.  They know nothing about locks; every    │
│  job callback they receive is a ScheduledLockCoordinator.fire bound method.  │
│                                                                               │
│   ┌─────────────────┐   fire()    ┌─────────────────────────────┐           │
│   │  Thread Backend │ ──────────► │  ScheduledLockCoordinator   │           │
│   │  (default)      │             │                             │           │
│   └─────────────────┘             │  - Acquire lock             │           │
│                                   │  - Run guarded task         │           │
│   ┌─────────────────┐   fire()    │  - Release to at-least      │           │
│   │  APScheduler    │ ──────────► │                             │           │
│   │  Backend        │             └─────────────────────────────┘           │
│   └─────────────────┘                                                        │
│                                                                               │
│  Responsibility Split:                                                        │
│  - Backend: cron timing, worker threads                                      │
│  - Coordinator: lock protocol, per-instance in-flight guard                  │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from cronlock.scheduling.cron import CronSchedule

JobCallback = Callable[[], Any]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for pluggable scheduler timing backends.

    Implementations:
        - ThreadSchedulerBackend: stdlib threading (default)
        - APSchedulerBackend: APScheduler 3.x (requires [apscheduler] extra)

    Missed fire times are never replayed: after a fire (or a restart) the
    next fire time is computed from the current moment.
    """

    name: str

    def add_job(self, job_id: str, schedule: CronSchedule, callback: JobCallback) -> None:
        """Register *callback* to be invoked on every fire time of *schedule*."""
        ...

    def remove_job(self, job_id: str) -> None:
        ...

    def start(self) -> None:
        """Start firing jobs."""
        ...

    def stop(self) -> None:
        """Stop firing jobs. Jobs already running are allowed to finish."""
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status.

        Returns:
            dict with at least:
                - healthy: bool - whether backend is running
                - backend: str - backend name
                - tick_count: int - number of job fires
                - last_tick: str | None - ISO timestamp of last fire
        """
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    jobs: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "jobs": self.jobs,
            **self.extra,
        }
