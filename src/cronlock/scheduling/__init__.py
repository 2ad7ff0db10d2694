"""Scheduling package for cronlock.

Manifesto:
    A cron tick fires on every node of a fleet at once.  Lock-guarded
    execution turns that into at most one run of the task per fire time:
    whoever inserts or takes over the shared lock row runs the body, every
    other node skips silently, and a crashed holder's lock expires at its
    ``lock_at_most_for`` ceiling.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CRONLOCK SCHEDULER                                                           │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from cronlock.core.settings import CronLockSettings                │   │
│  │   from cronlock.scheduling import create_scheduler                   │   │
│  │                                                                      │   │
│  │   service = create_scheduler(CronLockSettings())                     │   │
│  │   service.register_scheduled_locked_task(                            │   │
│  │       "shortRunningTask",                                            │   │
│  │       "0 */2 * * * *",                                               │   │
│  │       lock_at_most_for="5m",                                         │   │
│  │       lock_at_least_for="1m",                                        │   │
│  │       task=poll_job_completed,                                       │   │
│  │   )                                                                  │   │
│  │   service.start()                                                    │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Architecture:                                                                │
│                                                                               │
│   ┌──────────────┐  fire()  ┌────────────────────────┐                       │
│   │  Backend     │ ───────► │ ScheduledLockCoordinator│                      │
│   │ (timing)     │          │  (one per task)         │                      │
│   └──────────────┘          └───────────┬────────────┘                       │
│   • Thread (default)                    │                                     │
│   • APScheduler                         ▼                                     │
│                              ┌────────────────────┐    ┌─────────────────┐   │
│                              │   LockManager      │ ─► │  LockStore      │   │
│                              │  (acquire/release) │    │ (shedlock table)│   │
│                              └────────────────────┘    └─────────────────┘   │
│                                                                               │
│  Dependencies:                                                                │
│  - croniter: Cron expression parsing                                         │
│  - sqlalchemy: Shared lock table                                             │
│  - apscheduler: APScheduler backend (optional)                               │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Running a scheduled body without holding its named lock
    ✅ ``ScheduledLockCoordinator.fire()`` for every tick and manual trigger
    ❌ Replaying ticks missed while a node was down
    ✅ Next fire time always computed from "now"
    ❌ Constructing scheduler components individually
    ✅ ``create_scheduler(settings)`` factory function

Tags:
    cronlock, scheduling, cron, distributed-locks, shedlock,
    pluggable-backends, thread, apscheduler

Doc-Types:
    package-overview, architecture-map, module-index
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from cronlock.core.settings import CronLockSettings

# Configuration
from .config import (
    LockConfiguration,
    ScheduledTaskDefinition,
    load_task_definitions,
)

# Coordinator
from .coordinator import (
    CoordinatorState,
    CoordinatorStats,
    RunOutcome,
    RunResult,
    ScheduledLockCoordinator,
)
from .cron import CronSchedule

# Lock Manager
from .lock_manager import LockHandle, LockManager

# Lock Store
from .lock_store import InMemoryLockStore, LockRecord, LockStore, SqlLockStore

# Protocol
from .protocol import BackendHealth, SchedulerBackend

# Service
from .service import SchedulerHealth, SchedulerService

# Backends
from .thread_backend import ThreadSchedulerBackend

# Optional backends (lazy imports - require extras)
# APSchedulerBackend:  pip install cronlock[apscheduler]


def __getattr__(name: str):  # noqa: N807
    """Lazy import optional backends to avoid ImportError when extras are missing."""
    if name == "APSchedulerBackend":
        from .apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Configuration
    "CronSchedule",
    "LockConfiguration",
    "ScheduledTaskDefinition",
    "load_task_definitions",
    # Protocol
    "SchedulerBackend",
    "BackendHealth",
    # Backends
    "ThreadSchedulerBackend",
    "APSchedulerBackend",
    # Lock Store
    "LockStore",
    "LockRecord",
    "SqlLockStore",
    "InMemoryLockStore",
    # Lock Manager
    "LockManager",
    "LockHandle",
    # Coordinator
    "ScheduledLockCoordinator",
    "CoordinatorState",
    "CoordinatorStats",
    "RunOutcome",
    "RunResult",
    # Service
    "SchedulerService",
    "SchedulerHealth",
    "create_backend",
    "create_scheduler",
]


def create_backend(settings: CronLockSettings) -> SchedulerBackend:
    """Build the timing backend named by ``settings.backend``."""
    if settings.backend == "apscheduler":
        from .apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend(max_workers=settings.max_workers)
    return ThreadSchedulerBackend(max_workers=settings.max_workers)


def create_scheduler(
    settings: CronLockSettings | None = None,
    engine: Engine | None = None,
    store: LockStore | None = None,
) -> SchedulerService:
    """Factory function to create a complete scheduler service.

    This is the recommended way to create a scheduler with all components
    properly wired together.

    Args:
        settings: Node settings (read from ``CRONLOCK_*`` env vars if omitted)
        engine: SQLAlchemy engine for the lock table (built from
                ``settings.database_url`` if omitted)
        store: Lock store to use instead of the SQL store

    Returns:
        Configured SchedulerService

    Example:
        >>> scheduler = create_scheduler(CronLockSettings())
        >>> scheduler.start()
    """
    from cronlock.core.orm import create_lock_engine

    settings = settings or CronLockSettings()
    if store is None:
        engine = engine or create_lock_engine(settings.database_url)
        sql_store = SqlLockStore(engine, table_name=settings.table_name)
        sql_store.create_table()
        store = sql_store

    lock_manager = LockManager(store, instance_id=settings.instance_id)
    return SchedulerService(
        backend=create_backend(settings),
        lock_manager=lock_manager,
        defaults=settings.lock_defaults(),
    )
