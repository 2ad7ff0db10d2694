"""ORM layer for the lock table."""

from cronlock.core.orm.base import CronLockBase
from cronlock.core.orm.engine import create_lock_engine, init_schema
from cronlock.core.orm.tables import DEFAULT_LOCK_TABLE, ShedLockTable, build_lock_table

__all__ = [
    "CronLockBase",
    "ShedLockTable",
    "DEFAULT_LOCK_TABLE",
    "build_lock_table",
    "create_lock_engine",
    "init_schema",
]
