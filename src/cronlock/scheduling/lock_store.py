"""Lock store - the shared table every node arbitrates through.

Manifesto:
    The store is the only shared mutable resource in a fleet.  It exposes
    exactly two writes, each a single atomic conditional statement:

    - ``try_acquire``: insert the row, or take over a row whose
      ``lock_until`` has passed.  Never read-then-write.
    - ``release``: shorten ``lock_until`` on the row written by the caller's
      own acquisition, matched on ``locked_by`` and ``locked_at``.

    Everything else (``get``, ``list_records``) is read-only diagnostics.

Tags:
    cronlock, scheduling, distributed-locks, sqlalchemy, compare-and-set

Doc-Types:
    api-reference, architecture-diagram


    Acquire Flow (SqlLockStore)::

        INSERT (name, lock_until, locked_at, locked_by)
            │
            ├── inserted ───────────────────────────► holder
            │
            └── unique violation
                    │
                    ▼
        UPDATE ... WHERE name = :name AND lock_until <= :now
            │
            ├── 1 row  (expired lock taken over) ───► holder
            └── 0 rows (lock still held) ───────────► not holder
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cronlock.core.errors import LockUnavailableError, ReleaseFailedError
from cronlock.core.orm.engine import init_schema
from cronlock.core.orm.tables import DEFAULT_LOCK_TABLE, build_lock_table
from cronlock.core.timestamps import ensure_utc, to_iso8601, to_naive_utc


@dataclass(frozen=True)
class LockRecord:
    """One row of the lock table."""

    name: str
    lock_until: datetime
    locked_at: datetime
    locked_by: str

    def is_held(self, now: datetime) -> bool:
        """A lock is held iff ``lock_until`` is strictly after *now*."""
        return self.lock_until > now

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "lock_until": to_iso8601(self.lock_until),
            "locked_at": to_iso8601(self.locked_at),
            "locked_by": self.locked_by,
        }


@runtime_checkable
class LockStore(Protocol):
    """Contract for lock storage backends."""

    def try_acquire(
        self,
        name: str,
        now: datetime,
        lock_at_most_until: datetime,
        holder: str,
    ) -> bool:
        """Atomically become holder of *name* if it is absent or expired."""
        ...

    def release(self, name: str, new_lock_until: datetime, holder: str, locked_at: datetime) -> bool:
        """Set ``lock_until`` of the acquisition *holder* made at *locked_at*.

        Returns False if that acquisition has been taken over, even by the
        same holder.
        """
        ...

    def get(self, name: str) -> LockRecord | None:
        ...

    def list_records(self) -> list[LockRecord]:
        ...


def _check_window(now: datetime, lock_at_most_until: datetime) -> None:
    if lock_at_most_until <= now:
        raise ValueError(
            f"lock_at_most_until ({lock_at_most_until.isoformat()}) must be after now ({now.isoformat()})"
        )


class InMemoryLockStore:
    """Process-local lock store.

    Same semantics as ``SqlLockStore`` with a mutex standing in for the
    database's row-level atomicity.  Suitable for tests and single-process
    development; it does not coordinate across processes.
    """

    def __init__(self) -> None:
        self._records: dict[str, LockRecord] = {}
        self._lock = threading.Lock()

    def try_acquire(
        self,
        name: str,
        now: datetime,
        lock_at_most_until: datetime,
        holder: str,
    ) -> bool:
        _check_window(now, lock_at_most_until)
        with self._lock:
            existing = self._records.get(name)
            if existing is not None and existing.is_held(now):
                return False
            self._records[name] = LockRecord(
                name=name,
                lock_until=lock_at_most_until,
                locked_at=now,
                locked_by=holder,
            )
            return True

    def release(self, name: str, new_lock_until: datetime, holder: str, locked_at: datetime) -> bool:
        with self._lock:
            existing = self._records.get(name)
            if existing is None or existing.locked_by != holder or existing.locked_at != locked_at:
                return False
            self._records[name] = replace(existing, lock_until=new_lock_until)
            return True

    def get(self, name: str) -> LockRecord | None:
        with self._lock:
            return self._records.get(name)

    def list_records(self) -> list[LockRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.name)


class SqlLockStore:
    """SQLAlchemy-backed lock store shared by every node of a fleet.

    Example:
        >>> engine = create_lock_engine("postgresql://db/locks")
        >>> store = SqlLockStore(engine)
        >>> store.create_table()
        >>> store.try_acquire("report", now, now + timedelta(minutes=5), "node-a")
        True
    """

    def __init__(self, engine: Engine, table_name: str = DEFAULT_LOCK_TABLE) -> None:
        self.engine = engine
        self.table_name = table_name
        self.table = build_lock_table(table_name)

    def create_table(self) -> None:
        """Create the lock table if missing."""
        init_schema(self.engine, self.table_name)

    # === Writes ===

    def try_acquire(
        self,
        name: str,
        now: datetime,
        lock_at_most_until: datetime,
        holder: str,
    ) -> bool:
        _check_window(now, lock_at_most_until)
        values = {
            "lock_until": to_naive_utc(lock_at_most_until),
            "locked_at": to_naive_utc(now),
            "locked_by": holder,
        }
        try:
            if self._insert(name, values):
                return True
            return self._take_over_expired(name, to_naive_utc(now), values)
        except SQLAlchemyError as e:
            raise LockUnavailableError(
                f"Lock store unavailable while acquiring {name!r}", cause=e
            ).with_context(lock_name=name, holder=holder) from e

    def _insert(self, name: str, values: dict[str, Any]) -> bool:
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(self.table).values(name=name, **values))
            return True
        except IntegrityError:
            return False

    def _take_over_expired(self, name: str, now: datetime, values: dict[str, Any]) -> bool:
        t = self.table
        with self.engine.begin() as conn:
            result = conn.execute(
                update(t)
                .where(t.c.name == name, t.c.lock_until <= now)
                .values(**values)
            )
            return result.rowcount == 1

    def release(self, name: str, new_lock_until: datetime, holder: str, locked_at: datetime) -> bool:
        t = self.table
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(t)
                    .where(
                        t.c.name == name,
                        t.c.locked_by == holder,
                        t.c.locked_at == to_naive_utc(locked_at),
                    )
                    .values(lock_until=to_naive_utc(new_lock_until))
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise ReleaseFailedError(
                f"Failed to release lock {name!r}", cause=e
            ).with_context(lock_name=name, holder=holder) from e

    # === Reads ===

    def get(self, name: str) -> LockRecord | None:
        t = self.table
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(t).where(t.c.name == name)).first()
        except SQLAlchemyError as e:
            raise LockUnavailableError(f"Lock store unavailable while reading {name!r}", cause=e) from e
        return self._to_record(row) if row is not None else None

    def list_records(self) -> list[LockRecord]:
        t = self.table
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(t).order_by(t.c.name)).all()
        except SQLAlchemyError as e:
            raise LockUnavailableError("Lock store unavailable while listing locks", cause=e) from e
        return [self._to_record(row) for row in rows]

    @staticmethod
    def _to_record(row: Any) -> LockRecord:
        return LockRecord(
            name=row.name,
            lock_until=ensure_utc(row.lock_until),
            locked_at=ensure_utc(row.locked_at),
            locked_by=row.locked_by,
        )
