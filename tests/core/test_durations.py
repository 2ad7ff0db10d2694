"""Tests for human-readable duration parsing."""

from datetime import timedelta

import pytest

from cronlock.core.durations import format_duration, parse_duration
from cronlock.core.errors import ConfigInvalidError


class TestParseDuration:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("5m", timedelta(minutes=5)),
            ("1m", timedelta(minutes=1)),
            ("30s", timedelta(seconds=30)),
            ("1500ms", timedelta(milliseconds=1500)),
            ("2h", timedelta(hours=2)),
            ("1d", timedelta(days=1)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("1.5s", timedelta(seconds=1.5)),
            (" 10M ", timedelta(minutes=10)),
            ("0s", timedelta(0)),
        ],
    )
    def test_compact_forms(self, text, expected):
        assert parse_duration(text) == expected

    def test_bare_digits_are_milliseconds(self):
        assert parse_duration("300000") == timedelta(minutes=5)

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("PT5M", timedelta(minutes=5)),
            ("PT1M30S", timedelta(seconds=90)),
            ("pt10m", timedelta(minutes=10)),
        ],
    )
    def test_iso8601(self, text, expected):
        assert parse_duration(text) == expected

    def test_numbers_are_seconds(self):
        assert parse_duration(90) == timedelta(seconds=90)
        assert parse_duration(0.5) == timedelta(milliseconds=500)

    def test_timedelta_passthrough(self):
        td = timedelta(minutes=3)
        assert parse_duration(td) is td

    @pytest.mark.parametrize("value", ["", "abc", "5 minutes", "5x", "m5", "PTXM", "-5m"])
    def test_malformed(self, value):
        with pytest.raises(ConfigInvalidError):
            parse_duration(value)

    def test_negative_rejected(self):
        with pytest.raises(ConfigInvalidError, match="negative"):
            parse_duration(timedelta(seconds=-1))
        with pytest.raises(ConfigInvalidError):
            parse_duration(-5)

    def test_bool_rejected(self):
        with pytest.raises(ConfigInvalidError):
            parse_duration(True)

    def test_unsupported_type(self):
        with pytest.raises(ConfigInvalidError, match="Unsupported"):
            parse_duration(["5m"])

    def test_error_names_key(self):
        with pytest.raises(ConfigInvalidError) as exc_info:
            parse_duration("nope", key="lock_at_most_for")
        assert exc_info.value.key == "lock_at_most_for"
        assert "lock_at_most_for" in exc_info.value.message


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("td", "expected"),
        [
            (timedelta(0), "0s"),
            (timedelta(minutes=5), "5m"),
            (timedelta(hours=1, minutes=30), "1h30m"),
            (timedelta(days=1, seconds=1), "1d1s"),
            (timedelta(milliseconds=1500), "1s500ms"),
        ],
    )
    def test_format(self, td, expected):
        assert format_duration(td) == expected

    def test_format_is_parseable(self):
        td = timedelta(hours=2, minutes=3, seconds=4)
        assert parse_duration(format_duration(td)) == td
