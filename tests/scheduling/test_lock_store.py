"""Tests for the lock stores (in-memory and SQL)."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from sqlalchemy import select

from cronlock.core.errors import LockUnavailableError, ReleaseFailedError
from cronlock.core.orm import create_lock_engine
from cronlock.scheduling.lock_store import InMemoryLockStore, LockRecord, LockStore, SqlLockStore
from tests._support.clock import T0

FIVE_MIN = timedelta(minutes=5)


class TestSharedSemantics:
    """Behaviour both stores must agree on (parametrized over memory/sql)."""

    def test_implements_protocol(self, lock_store):
        assert isinstance(lock_store, LockStore)

    def test_first_acquire_inserts(self, lock_store):
        assert lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a") is True

        record = lock_store.get("report")
        assert record == LockRecord("report", T0 + FIVE_MIN, T0, "node-a")

    def test_held_lock_is_not_acquired(self, lock_store):
        lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")

        later = T0 + timedelta(minutes=1)
        assert lock_store.try_acquire("report", later, later + FIVE_MIN, "node-b") is False
        assert lock_store.get("report").locked_by == "node-a"

    def test_same_holder_does_not_reenter(self, lock_store):
        lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")
        assert lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a") is False

    def test_expired_lock_is_taken_over(self, lock_store):
        lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")

        at_expiry = T0 + FIVE_MIN
        assert lock_store.try_acquire("report", at_expiry, at_expiry + FIVE_MIN, "node-b") is True

        record = lock_store.get("report")
        assert record.locked_by == "node-b"
        assert record.locked_at == at_expiry
        assert record.lock_until == at_expiry + FIVE_MIN

    def test_one_instant_before_expiry_is_still_held(self, lock_store):
        lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")
        almost = T0 + FIVE_MIN - timedelta(microseconds=1)
        assert lock_store.try_acquire("report", almost, almost + FIVE_MIN, "node-b") is False

    def test_release_sets_lock_until(self, lock_store):
        lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")

        assert lock_store.release("report", T0 + timedelta(minutes=1), "node-a", T0) is True
        record = lock_store.get("report")
        assert record.lock_until == T0 + timedelta(minutes=1)
        assert record.locked_at == T0
        assert record.locked_by == "node-a"

    def test_release_by_non_holder_is_ignored(self, lock_store):
        lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")

        assert lock_store.release("report", T0, "node-b", T0) is False
        assert lock_store.get("report").lock_until == T0 + FIVE_MIN

    def test_release_of_superseded_acquisition_by_same_holder_is_ignored(self, lock_store):
        lock_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")
        retaken_at = T0 + timedelta(minutes=6)
        lock_store.try_acquire("report", retaken_at, retaken_at + FIVE_MIN, "node-a")

        assert lock_store.release("report", retaken_at, "node-a", T0) is False
        record = lock_store.get("report")
        assert record.locked_at == retaken_at
        assert record.lock_until == retaken_at + FIVE_MIN

    def test_release_unknown_lock(self, lock_store):
        assert lock_store.release("missing", T0, "node-a", T0) is False

    def test_rejects_empty_window(self, lock_store):
        with pytest.raises(ValueError, match="must be after now"):
            lock_store.try_acquire("report", T0, T0, "node-a")

    def test_independent_names(self, lock_store):
        assert lock_store.try_acquire("a", T0, T0 + FIVE_MIN, "node-a") is True
        assert lock_store.try_acquire("b", T0, T0 + FIVE_MIN, "node-b") is True
        assert [r.name for r in lock_store.list_records()] == ["a", "b"]

    def test_get_missing(self, lock_store):
        assert lock_store.get("missing") is None


class TestLockRecord:
    def test_is_held_is_strict(self):
        record = LockRecord("r", T0 + FIVE_MIN, T0, "node-a")
        assert record.is_held(T0) is True
        assert record.is_held(T0 + FIVE_MIN) is False

    def test_to_dict(self):
        data = LockRecord("r", T0 + FIVE_MIN, T0, "node-a").to_dict()
        assert data == {
            "name": "r",
            "lock_until": "2026-01-01T12:05:00+00:00",
            "locked_at": "2026-01-01T12:00:00+00:00",
            "locked_by": "node-a",
        }


class TestSqlLockStore:
    def test_stores_naive_utc(self, sql_store):
        sql_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")

        with sql_store.engine.connect() as conn:
            row = conn.execute(select(sql_store.table)).one()
        assert row.lock_until.tzinfo is None
        assert row.lock_until == (T0 + FIVE_MIN).replace(tzinfo=None)

    def test_returns_aware_utc(self, sql_store):
        sql_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")
        record = sql_store.get("report")
        assert record.lock_until.tzinfo is not None
        assert record.lock_until.utcoffset() == timedelta(0)

    def test_custom_table_name(self, sql_engine):
        store = SqlLockStore(sql_engine, table_name="SHEDLOCK")
        store.create_table()
        assert store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a") is True
        assert store.table.name == "SHEDLOCK"

    def test_missing_table_is_unavailable(self, sql_engine):
        store = SqlLockStore(sql_engine, table_name="never_created")
        with pytest.raises(LockUnavailableError) as exc_info:
            store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a")
        assert exc_info.value.context.lock_name == "report"
        assert exc_info.value.context.holder == "node-a"
        assert exc_info.value.retryable is True

    def test_release_failure_raises(self, sql_engine):
        store = SqlLockStore(sql_engine, table_name="never_created")
        with pytest.raises(ReleaseFailedError):
            store.release("report", T0, "node-a", T0)

    def test_reads_on_missing_table(self, sql_engine):
        store = SqlLockStore(sql_engine, table_name="never_created")
        with pytest.raises(LockUnavailableError):
            store.list_records()

    def test_two_stores_share_a_file(self, sqlite_url, sql_store):
        other = SqlLockStore(create_lock_engine(sqlite_url))
        assert sql_store.try_acquire("report", T0, T0 + FIVE_MIN, "node-a") is True
        assert other.try_acquire("report", T0, T0 + FIVE_MIN, "node-b") is False
        assert other.get("report").locked_by == "node-a"


@pytest.mark.integration
class TestConcurrentAcquire:
    """Exactly one of N simultaneous contenders wins."""

    N = 8

    def _race(self, stores, now) -> list[str]:
        barrier = threading.Barrier(len(stores))
        winners: list[str] = []
        winners_lock = threading.Lock()

        def contend(i: int, store) -> None:
            holder = f"node-{i}"
            barrier.wait()
            if store.try_acquire("report", now, now + FIVE_MIN, holder):
                with winners_lock:
                    winners.append(holder)

        threads = [threading.Thread(target=contend, args=(i, s)) for i, s in enumerate(stores)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        return winners

    def test_memory_store_race(self):
        store = InMemoryLockStore()
        winners = self._race([store] * self.N, T0)
        assert len(winners) == 1
        assert store.get("report").locked_by == winners[0]

    def test_sql_insert_race(self, sqlite_url, sql_store):
        stores = [SqlLockStore(create_lock_engine(sqlite_url)) for _ in range(self.N)]
        winners = self._race(stores, T0)
        assert len(winners) == 1
        assert sql_store.get("report").locked_by == winners[0]

    def test_sql_takeover_race(self, sqlite_url, sql_store):
        sql_store.try_acquire("report", T0, T0 + FIVE_MIN, "crashed-node")

        stores = [SqlLockStore(create_lock_engine(sqlite_url)) for _ in range(self.N)]
        winners = self._race(stores, T0 + FIVE_MIN)
        assert len(winners) == 1
        assert sql_store.get("report").locked_by == winners[0]
