"""Cron expression evaluation using croniter.

Two shapes are accepted:

- six fields, seconds first (``"0 */2 * * * *"``), ``?`` allowed as a
  day-of-month / day-of-week wildcard
- classic five fields (``"*/5 * * * *"``), firing at second 0

Next fire times are always computed from the moment asked about, so a
scheduler that was down or busy never replays the ticks it missed.

Tags:
    cronlock, scheduling, cron, croniter

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from cronlock.core.errors import ConfigInvalidError
from cronlock.core.timestamps import ensure_utc


def _to_croniter_syntax(expression: str) -> str:
    fields = expression.replace("?", "*").split()
    if len(fields) == 6:
        # croniter expects seconds as the trailing field
        return " ".join(fields[1:] + fields[:1])
    if len(fields) == 5:
        return " ".join(fields)
    raise ConfigInvalidError(
        "cron",
        expression,
        f"Cron expression must have 5 or 6 fields, got {len(fields)}: {expression!r}",
    )


@dataclass(frozen=True)
class CronSchedule:
    """A parsed, validated cron schedule.

    Example:
        >>> schedule = CronSchedule.parse("0 */2 * * * *")
        >>> schedule.next_fire_after(datetime(2026, 1, 1, 12, 0, 30, tzinfo=UTC))
        datetime.datetime(2026, 1, 1, 12, 2, tzinfo=datetime.timezone.utc)
    """

    expression: str
    timezone: str = "UTC"
    _croniter_expr: str = field(default="", repr=False, compare=False)

    @classmethod
    def parse(cls, expression: str, timezone: str = "UTC") -> CronSchedule:
        """Validate *expression* and return a schedule.

        Raises:
            ConfigInvalidError: If the expression or timezone is malformed
        """
        if not isinstance(expression, str) or not expression.strip():
            raise ConfigInvalidError("cron", expression, "Cron expression must be a non-empty string")

        normalized = _to_croniter_syntax(expression.strip())
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigInvalidError("timezone", timezone, f"Unknown timezone: {timezone!r}", cause=e) from e

        if not croniter.is_valid(normalized):
            raise ConfigInvalidError("cron", expression, f"Malformed cron expression: {expression!r}")

        return cls(expression=expression.strip(), timezone=timezone, _croniter_expr=normalized)

    def next_fire_after(self, moment: datetime) -> datetime:
        """Return the first fire time strictly after *moment*, in UTC."""
        local = ensure_utc(moment).astimezone(ZoneInfo(self.timezone))
        nxt = croniter(self._croniter_expr, local).get_next(datetime)
        return ensure_utc(nxt)

    def upcoming(self, count: int, after: datetime) -> list[datetime]:
        """Return the next *count* fire times after *after*."""
        times: list[datetime] = []
        moment = after
        for _ in range(count):
            moment = self.next_fire_after(moment)
            times.append(moment)
        return times
