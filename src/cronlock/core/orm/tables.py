"""Lock table definition.

One row per named lock, created on first acquisition and updated in place
afterwards.  Column names follow the schema shared by every node::

    name        VARCHAR(64)  PRIMARY KEY
    lock_until  TIMESTAMP    lock is held iff lock_until > now
    locked_at   TIMESTAMP    when the current holder acquired it
    locked_by   VARCHAR(255) holder identity, diagnostics only

Tags:
    cronlock, orm, sqlalchemy, tables, locks

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime

from sqlalchemy import Column, DateTime, MetaData, String, Table
from sqlalchemy.orm import Mapped, mapped_column

from cronlock.core.orm.base import CronLockBase

DEFAULT_LOCK_TABLE = "shedlock"


class ShedLockTable(CronLockBase):
    __tablename__ = DEFAULT_LOCK_TABLE

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    lock_until: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    locked_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    locked_by: Mapped[str] = mapped_column(String(255), nullable=False)


def build_lock_table(table_name: str = DEFAULT_LOCK_TABLE, metadata: MetaData | None = None) -> Table:
    """Return the Core ``Table`` for *table_name*.

    The default name reuses the mapped ``ShedLockTable``; any other name gets
    an identical table on its own ``MetaData``.
    """
    if table_name == DEFAULT_LOCK_TABLE and metadata is None:
        return ShedLockTable.__table__  # type: ignore[return-value]

    return Table(
        table_name,
        metadata if metadata is not None else MetaData(),
        Column("name", String(64), primary_key=True),
        Column("lock_until", DateTime, nullable=False),
        Column("locked_at", DateTime, nullable=False),
        Column("locked_by", String(255), nullable=False),
    )
