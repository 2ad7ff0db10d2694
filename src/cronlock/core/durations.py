"""
Human-readable duration parsing.

Lock windows are configured as short strings (``"5m"``, ``"1m"``,
``"1h30m"``).  ISO-8601 durations (``"PT5M"``) are delegated to pydantic,
and a bare digit string is read as milliseconds.

Examples:
    >>> parse_duration("5m")
    datetime.timedelta(seconds=300)
    >>> parse_duration("PT1M30S")
    datetime.timedelta(seconds=90)
    >>> format_duration(timedelta(minutes=90))
    '1h30m'
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from cronlock.core.errors import ConfigInvalidError

DurationLike = timedelta | str | int | float

_COMPACT_RE = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|s|m|h|d))+")
_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")

_UNITS = {
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}

_ISO_ADAPTER: TypeAdapter[timedelta] = TypeAdapter(timedelta)


def parse_duration(value: Any, *, key: str = "duration") -> timedelta:
    """Parse *value* into a non-negative ``timedelta``.

    Args:
        value: timedelta, seconds as int/float, or a duration string
        key: Setting name reported in the error

    Raises:
        ConfigInvalidError: If the value is malformed or negative
    """
    if isinstance(value, bool):
        raise ConfigInvalidError(key, value, f"{key} must be a duration, not a boolean")

    if isinstance(value, timedelta):
        result = value
    elif isinstance(value, int | float):
        result = timedelta(seconds=value)
    elif isinstance(value, str):
        result = _parse_text(value.strip(), key)
    else:
        raise ConfigInvalidError(key, value, f"Unsupported duration type for {key}: {type(value).__name__}")

    if result < timedelta(0):
        raise ConfigInvalidError(key, value, f"{key} must not be negative: {value!r}")
    return result


def _parse_text(text: str, key: str) -> timedelta:
    if not text:
        raise ConfigInvalidError(key, text, f"{key} must not be empty")

    if text.isdigit():
        return timedelta(milliseconds=int(text))

    if text[0] in "Pp":
        try:
            return _ISO_ADAPTER.validate_python(text.upper())
        except PydanticValidationError as e:
            raise ConfigInvalidError(key, text, f"Malformed ISO-8601 duration for {key}: {text!r}", cause=e) from e

    lowered = text.lower()
    if not _COMPACT_RE.fullmatch(lowered):
        raise ConfigInvalidError(key, text, f"Malformed duration for {key}: {text!r} (expected e.g. '30s', '5m', '1h30m')")

    total = timedelta(0)
    for amount, unit in _PART_RE.findall(lowered):
        total += _UNITS[unit] * float(amount)
    return total


def format_duration(value: timedelta) -> str:
    """Render a ``timedelta`` in the compact form accepted by ``parse_duration``."""
    total_ms = round(value.total_seconds() * 1000)
    if total_ms == 0:
        return "0s"

    sign = "-" if total_ms < 0 else ""
    remaining = abs(total_ms)
    parts = []
    for unit, size in (("d", 86_400_000), ("h", 3_600_000), ("m", 60_000), ("s", 1000), ("ms", 1)):
        amount, remaining = divmod(remaining, size)
        if amount:
            parts.append(f"{amount}{unit}")
    return sign + "".join(parts)
