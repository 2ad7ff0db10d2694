"""Distributed lock manager for scheduled tasks.

Manifesto:
    Multiple nodes must never run the same guarded task at the same time.
    The lock manager turns a pair of durations into an expiry window, asks
    the store for an atomic acquire, and hands back a ``LockHandle`` whose
    ``close()`` shortens the lock to the at-least floor.  A store that cannot
    be reached means "not acquired", never "acquired".

This module provides the acquire/release protocol on top of a ``LockStore``.

Tags:
    cronlock, scheduling, distributed-locks, TTL, concurrency, safety

Doc-Types:
    api-reference, architecture-diagram


    Lock Window::

        acquired_at                 acquired_at + at_least      acquired_at + at_most
             │                               │                          │
             ▼                               ▼                          ▼
        ─────┼───────────────────────────────┼──────────────────────────┼────►
             │◄── task runs ──►│             │                          │
                          close() ──► lock_until = max(now, acquired_at + at_least)

        Crash before close(): the row keeps lock_until = acquired_at + at_most
        and becomes stealable exactly then.
"""

from __future__ import annotations

import os
import socket
import threading
from datetime import datetime, timedelta
from uuid import uuid4

from cronlock.core.durations import DurationLike
from cronlock.core.logging import get_logger
from cronlock.core.timestamps import Clock, utc_now
from cronlock.scheduling.config import LockConfiguration
from cronlock.scheduling.lock_store import LockRecord, LockStore

logger = get_logger(__name__)


def default_instance_id() -> str:
    """``<hostname>-<pid>-<random>``: readable in the lock table, unique per process."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid4().hex[:8]}"


class LockHandle:
    """Proof of holding a lock; release it exactly once.

    Use as a context manager so the release runs on every exit path::

        handle = manager.acquire("report", "5m", "1m")
        if handle is not None:
            with handle:
                generate_report()
    """

    def __init__(
        self,
        store: LockStore,
        name: str,
        holder: str,
        acquired_at: datetime,
        locked_until: datetime,
        lock_at_least_for: timedelta,
        clock: Clock = utc_now,
    ) -> None:
        self.name = name
        self.holder = holder
        self.acquired_at = acquired_at
        self.locked_until = locked_until
        self.lock_at_least_for = lock_at_least_for
        self.released_until: datetime | None = None

        self._store = store
        self._clock = clock
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def earliest_release(self) -> datetime:
        """The at-least floor: no other holder before this moment."""
        return self.acquired_at + self.lock_at_least_for

    def close(self) -> bool:
        """Shorten the lock to ``max(now, acquired_at + lock_at_least_for)``.

        Only the first call writes to the store.  Store failures are logged
        and reported as ``False``; the lock then expires at ``locked_until``.

        Returns:
            True if the store accepted the new expiry
        """
        with self._close_lock:
            if self._closed:
                logger.warning("lock_handle_already_closed", lock=self.name, holder=self.holder)
                return False
            self._closed = True

        release_at = max(self._clock(), self.earliest_release)
        try:
            released = self._store.release(self.name, release_at, self.holder, self.acquired_at)
        except Exception as e:
            logger.warning(
                "lock_release_failed",
                lock=self.name,
                holder=self.holder,
                error=str(e),
                expires_at=self.locked_until.isoformat(),
            )
            return False

        if not released:
            logger.warning(
                "lock_release_skipped",
                lock=self.name,
                holder=self.holder,
                reason="lock no longer held by this instance",
            )
            return False

        self.released_until = release_at
        logger.debug("lock_released", lock=self.name, holder=self.holder, lock_until=release_at.isoformat())
        return True

    def __enter__(self) -> LockHandle:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"LockHandle(name={self.name!r}, holder={self.holder!r}, "
            f"acquired_at={self.acquired_at.isoformat()}, closed={self._closed})"
        )


class LockManager:
    """Acquire/release protocol over a shared ``LockStore``.

    Example:
        >>> manager = LockManager(SqlLockStore(engine), instance_id="node-a")
        >>> handle = manager.acquire("nightly-report", "5m", "1m")
        >>> if handle is None:
        ...     print("Another node has the lock")
        ... else:
        ...     with handle:
        ...         run_report()
    """

    def __init__(
        self,
        store: LockStore,
        instance_id: str | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize lock manager.

        Args:
            store: Shared lock store
            instance_id: Holder identity written to ``locked_by``.
                        Auto-generated if not provided.
            clock: Source of "now" (injectable for tests)
        """
        self.store = store
        self.instance_id = instance_id or default_instance_id()
        self.clock = clock

    # === Acquire ===

    def acquire(
        self,
        name: str,
        lock_at_most_for: DurationLike,
        lock_at_least_for: DurationLike = timedelta(0),
    ) -> LockHandle | None:
        """Try to become holder of *name*.

        Raises:
            ConfigInvalidError: If the bounds are malformed or inconsistent

        Returns:
            A handle if this instance now holds the lock, else None
        """
        config = LockConfiguration.of(name, lock_at_most_for, lock_at_least_for)
        return self.acquire_for(config)

    def acquire_for(self, config: LockConfiguration) -> LockHandle | None:
        """Try to acquire the lock described by *config*."""
        now = self.clock()
        lock_at_most_until = now + config.lock_at_most_for

        try:
            acquired = self.store.try_acquire(config.name, now, lock_at_most_until, self.instance_id)
        except Exception as e:
            logger.warning(
                "lock_store_unavailable",
                lock=config.name,
                holder=self.instance_id,
                error=str(e),
            )
            return None

        if not acquired:
            logger.debug("lock_contended", lock=config.name, holder=self.instance_id)
            return None

        logger.debug(
            "lock_acquired",
            lock=config.name,
            holder=self.instance_id,
            lock_until=lock_at_most_until.isoformat(),
        )
        return LockHandle(
            store=self.store,
            name=config.name,
            holder=self.instance_id,
            acquired_at=now,
            locked_until=lock_at_most_until,
            lock_at_least_for=config.lock_at_least_for,
            clock=self.clock,
        )

    # === Diagnostics (read-only) ===

    def get_record(self, name: str) -> LockRecord | None:
        return self.store.get(name)

    def is_locked(self, name: str) -> bool:
        """Check if *name* is held by any instance right now."""
        record = self.store.get(name)
        return record is not None and record.is_held(self.clock())

    def get_lock_holder(self, name: str) -> str | None:
        """Get the instance holding *name*, or None if it is free."""
        record = self.store.get(name)
        if record is None or not record.is_held(self.clock()):
            return None
        return record.locked_by

    def list_locks(self) -> list[LockRecord]:
        """All lock rows, held or not."""
        return self.store.list_records()

    def list_active_locks(self) -> list[LockRecord]:
        """Locks currently held by any instance."""
        now = self.clock()
        return [record for record in self.store.list_records() if record.is_held(now)]
