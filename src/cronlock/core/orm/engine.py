"""SQLAlchemy engine factory and schema bootstrap.

Manifesto:
    Every node must talk to the lock table the same way.  SQLite gets WAL
    mode and a busy timeout so concurrent acquire attempts from several
    processes queue on the database lock instead of failing immediately.

Tags:
    cronlock, orm, sqlalchemy, engine

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from cronlock.core.orm.tables import DEFAULT_LOCK_TABLE, build_lock_table

_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def create_lock_engine(
    url: str = "sqlite:///cronlock.db",
    *,
    echo: bool = False,
    busy_timeout_ms: int = 5000,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL.
    busy_timeout_ms:
        SQLite only: how long a writer waits for the database lock.
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
        return _sa_create_engine(url, echo=echo, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    in_memory = url in _MEMORY_URLS
    if in_memory:
        # one shared connection, otherwise every checkout sees an empty database
        kwargs.setdefault("poolclass", StaticPool)

    engine = _sa_create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def init_schema(engine: Engine, table_name: str = DEFAULT_LOCK_TABLE) -> None:
    """Create the lock table if it does not exist."""
    table = build_lock_table(table_name)
    table.create(engine, checkfirst=True)
