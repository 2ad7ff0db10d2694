"""Declarative base for cronlock ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map`` so
mapped columns can use plain Python types.
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import DeclarativeBase


class CronLockBase(DeclarativeBase):
    """Shared declarative base for every cronlock table.

    * ``str``   → ``Text``
    * ``datetime.datetime`` → ``DateTime`` (naive, values are UTC)
    """

    type_annotation_map = {
        str: Text,
        datetime.datetime: DateTime,
    }
