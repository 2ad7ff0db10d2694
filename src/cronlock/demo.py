"""Demo guarded task.

A stand-in for a real audit job: it logs that it started, blocks for a while
as if polling an external job to completion, then logs that it finished.
Scheduled every two minutes under ``shortRunningTask`` with a ``5m`` ceiling
and a ``1m`` floor in ``examples/audit_tasks.yaml``.
"""

from __future__ import annotations

import time

from cronlock.core.logging import get_logger

logger = get_logger(__name__)


def poll_job_completed(duration_seconds: float = 10.0) -> None:
    logger.info("audit_job_started")
    time.sleep(duration_seconds)
    logger.info("audit_job_completed", duration_seconds=duration_seconds)
