"""APScheduler-based scheduler backend.

Wraps APScheduler 3.x ``BackgroundScheduler`` to provide the
``SchedulerBackend`` protocol for deployments already standardised on
APScheduler (shared executors, event listeners, etc.).

Requires the ``[apscheduler]`` extra::

    pip install cronlock[apscheduler]

Each job gets a trigger that delegates to ``CronSchedule`` so both backends
agree on fire times, including six-field expressions with seconds.
``max_instances=1`` and ``coalesce=True`` keep APScheduler from stacking
overlapping or missed runs of the same job.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from cronlock.core.logging import get_logger
from cronlock.scheduling.cron import CronSchedule
from cronlock.scheduling.protocol import JobCallback

logger = get_logger(__name__)


def _require_apscheduler():
    """Validate that apscheduler is installed."""
    try:
        from apscheduler.schedulers.background import BackgroundScheduler  # noqa: F401

        return BackgroundScheduler
    except ImportError:
        raise ImportError(
            "APScheduler is required for APSchedulerBackend. "
            "Install it with: pip install cronlock[apscheduler]"
        ) from None


def make_trigger(schedule: CronSchedule) -> Any:
    """Build an APScheduler trigger backed by *schedule*."""
    from apscheduler.triggers.base import BaseTrigger

    class CronScheduleTrigger(BaseTrigger):
        def get_next_fire_time(self, previous_fire_time, now):
            # from "now", not from previous_fire_time: missed fires are dropped
            return schedule.next_fire_after(now)

        def __str__(self) -> str:
            return f"cron[{schedule.expression}]"

    return CronScheduleTrigger()


class APSchedulerBackend:
    """APScheduler-based scheduler backend.

    Example::

        >>> backend = APSchedulerBackend()
        >>> backend.add_job("report", CronSchedule.parse("0 */2 * * * *"), report)
        >>> backend.start()
        >>> # … later …
        >>> backend.stop()
    """

    name: str = "apscheduler"

    def __init__(self, max_workers: int = 4, misfire_grace_seconds: int = 30) -> None:
        BackgroundScheduler = _require_apscheduler()  # noqa: N806
        self._scheduler = BackgroundScheduler(
            executors={"default": {"type": "threadpool", "max_workers": max_workers}},
            timezone="UTC",
        )
        self._misfire_grace_seconds = misfire_grace_seconds
        self._tick_count: int = 0
        self._last_tick: datetime | None = None

    # ------------------------------------------------------------------
    # SchedulerBackend protocol
    # ------------------------------------------------------------------

    def add_job(self, job_id: str, schedule: CronSchedule, callback: JobCallback) -> None:
        def _fire() -> None:
            self._tick_count += 1
            self._last_tick = datetime.now(UTC)
            try:
                callback()
            except Exception:
                logger.exception("job_failed", job=job_id)

        self._scheduler.add_job(
            _fire,
            trigger=make_trigger(schedule),
            id=job_id,
            name=job_id,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self._misfire_grace_seconds,
            replace_existing=True,
        )
        logger.debug("job_added", job=job_id, cron=schedule.expression, backend=self.name)

    def remove_job(self, job_id: str) -> None:
        self._scheduler.remove_job(job_id)

    def start(self) -> None:
        """Start the APScheduler loop."""
        if self._scheduler.running:
            logger.warning("scheduler_backend_already_started", backend=self.name)
            return
        self._scheduler.start()
        logger.info("scheduler_backend_started", backend=self.name)

    def stop(self) -> None:
        """Stop the APScheduler loop, waiting for running jobs."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("scheduler_backend_stopped", backend=self.name)

    def health(self) -> dict[str, Any]:
        """Return backend health status."""
        running = bool(getattr(self._scheduler, "running", False))
        return {
            "healthy": running,
            "backend": self.name,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "jobs": len(self._scheduler.get_jobs()),
        }
