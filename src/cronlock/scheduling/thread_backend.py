"""Threading-based cron scheduler backend.

This is the DEFAULT backend.  It uses the stdlib ``threading`` and
``concurrent.futures`` modules and has no external dependencies beyond
croniter.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND ARCHITECTURE                                                  │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              Daemon Thread (loop)                       │                │
│   │                                                         │                │
│   │   while not stop_event:                                 │                │
│   │       wait until earliest next_fire (max 1s)            │                │
│   │       run_pending(now)                                  │                │
│   │          ├── job due?  submit callback to worker pool   │                │
│   │          └── next_fire = schedule.next_fire_after(now)  │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop()                                                                      │
│      stop_event.set(); thread.join(timeout=5.0); pool.shutdown()             │
│                                                                               │
│  Key Design Decisions:                                                        │
│  1. Daemon thread - doesn't block process exit                               │
│  2. Re-arm from "now" - missed ticks are dropped, never replayed             │
│  3. Worker pool - a slow task never delays another task's tick               │
│  4. Bounded sleep - jobs added after start() are picked up within 1s         │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from cronlock.core.logging import get_logger
from cronlock.core.timestamps import Clock, utc_now
from cronlock.scheduling.cron import CronSchedule
from cronlock.scheduling.protocol import BackendHealth, JobCallback

logger = get_logger(__name__)


@dataclass
class _Job:
    job_id: str
    schedule: CronSchedule
    callback: JobCallback
    next_fire: datetime
    fire_count: int = 0


class ThreadSchedulerBackend:
    """Threading-based cron backend.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>> backend.add_job("report", CronSchedule.parse("0 */2 * * * *"), report)
        >>> backend.start()
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(
        self,
        max_workers: int = 4,
        clock: Clock = utc_now,
        max_sleep_seconds: float = 1.0,
    ) -> None:
        """Initialize thread backend.

        Args:
            max_workers: Worker threads running job callbacks
            clock: Source of "now"
            max_sleep_seconds: Upper bound on one idle wait of the timer loop
        """
        self._max_workers = max_workers
        self._clock = clock
        self._max_sleep = max_sleep_seconds
        self._jobs: dict[str, _Job] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._started = False

    # === Jobs ===

    def add_job(self, job_id: str, schedule: CronSchedule, callback: JobCallback) -> None:
        now = self._clock()
        with self._lock:
            if job_id in self._jobs:
                raise ValueError(f"Job already registered: {job_id}")
            self._jobs[job_id] = _Job(
                job_id=job_id,
                schedule=schedule,
                callback=callback,
                next_fire=schedule.next_fire_after(now),
            )
        logger.debug("job_added", job=job_id, cron=schedule.expression)

    def remove_job(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def next_fire_time(self, job_id: str) -> datetime | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.next_fire if job else None

    def run_pending(self, now: datetime | None = None) -> list[str]:
        """Fire every job due at *now* and re-arm it from *now*.

        Called by the timer loop; also usable directly to drive the backend
        deterministically.  Without a running worker pool callbacks execute
        inline.

        Returns:
            IDs of the jobs fired
        """
        now = now or self._clock()
        due: list[_Job] = []
        with self._lock:
            for job in self._jobs.values():
                if job.next_fire <= now:
                    due.append(job)
                    job.next_fire = job.schedule.next_fire_after(now)
                    job.fire_count += 1
            if due:
                self._tick_count += len(due)
                self._last_tick = now

        for job in due:
            self._dispatch(job)
        return [job.job_id for job in due]

    def _dispatch(self, job: _Job) -> None:
        executor = self._executor
        if executor is None:
            self._invoke(job)
            return
        try:
            executor.submit(self._invoke, job)
        except RuntimeError:
            # pool already shut down by stop()
            logger.debug("job_dropped_on_shutdown", job=job.job_id)

    @staticmethod
    def _invoke(job: _Job) -> None:
        try:
            job.callback()
        except Exception:
            logger.exception("job_failed", job=job.job_id)

    def _seconds_until_next(self, now: datetime) -> float:
        with self._lock:
            if not self._jobs:
                return self._max_sleep
            earliest = min(job.next_fire for job in self._jobs.values())
        return (earliest - now).total_seconds()

    # === Lifecycle ===

    def start(self) -> None:
        """Start the timer loop in a daemon thread."""
        if self._started:
            logger.warning("scheduler_backend_already_started", backend=self.name)
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="cronlock-worker"
        )

        def _loop() -> None:
            logger.info("scheduler_backend_started", backend=self.name, jobs=len(self._jobs))
            while not self._stop_event.is_set():
                wait = min(self._seconds_until_next(self._clock()), self._max_sleep)
                if wait > 0 and self._stop_event.wait(wait):
                    break
                self.run_pending()
            logger.info("scheduler_backend_stopped", backend=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name="cronlock-scheduler")
        self._thread.start()
        self._started = True

    def stop(self, wait: bool = True) -> None:
        """Stop the timer loop.

        Args:
            wait: Wait for running job callbacks to finish
        """
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("scheduler_thread_did_not_stop", backend=self.name)

        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=True)
            self._executor = None

        self._started = False
        logger.info("scheduler_backend_shutdown_complete", backend=self.name)

    # === Health ===

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        """Return structured health status."""
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            jobs=len(self._jobs),
            extra={"max_workers": self._max_workers},
        )

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
