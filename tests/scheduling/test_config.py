"""Tests for LockConfiguration, task definitions and YAML task files."""

from datetime import timedelta
from functools import partial

import pytest

from cronlock.core.errors import ConfigInvalidError
from cronlock.core.settings import LockDefaults
from cronlock.demo import poll_job_completed
from cronlock.scheduling.config import (
    LockConfiguration,
    ScheduledTaskDefinition,
    definitions_from_mapping,
    load_task_definitions,
    resolve_target,
)
from tests._support import write_task_file


def noop() -> None:
    pass


class TestLockConfiguration:
    def test_valid(self):
        config = LockConfiguration("shortRunningTask", timedelta(minutes=5), timedelta(minutes=1))
        assert config.lock_at_least_for == timedelta(minutes=1)

    def test_at_least_equal_to_at_most_is_allowed(self):
        LockConfiguration("x", timedelta(minutes=5), timedelta(minutes=5))

    def test_at_least_exceeds_at_most(self):
        with pytest.raises(ConfigInvalidError) as exc_info:
            LockConfiguration("x", timedelta(minutes=5), timedelta(minutes=10))
        assert exc_info.value.key == "lock_at_least_for"
        assert "10m" in exc_info.value.message
        assert exc_info.value.context.lock_name == "x"

    def test_at_most_must_be_positive(self):
        with pytest.raises(ConfigInvalidError, match="positive"):
            LockConfiguration("x", timedelta(0))

    def test_negative_at_least(self):
        with pytest.raises(ConfigInvalidError, match="negative"):
            LockConfiguration("x", timedelta(minutes=5), timedelta(seconds=-1))

    @pytest.mark.parametrize("name", ["", "   ", "x" * 65])
    def test_bad_names(self, name):
        with pytest.raises(ConfigInvalidError):
            LockConfiguration(name, timedelta(minutes=5))

    def test_of_parses_strings(self):
        config = LockConfiguration.of("x", "5m", "PT1M")
        assert config == LockConfiguration("x", timedelta(minutes=5), timedelta(minutes=1))

    def test_of_applies_defaults(self):
        assert LockConfiguration.of("x").lock_at_most_for == timedelta(minutes=10)
        assert LockConfiguration.of("x").lock_at_least_for == timedelta(0)

        defaults = LockDefaults(timedelta(minutes=2), timedelta(seconds=30))
        config = LockConfiguration.of("x", defaults=defaults)
        assert config == LockConfiguration("x", timedelta(minutes=2), timedelta(seconds=30))

    def test_of_rejects_malformed(self):
        with pytest.raises(ConfigInvalidError) as exc_info:
            LockConfiguration.of("x", "five minutes")
        assert exc_info.value.key == "lock_at_most_for"


class TestScheduledTaskDefinition:
    def test_build(self):
        definition = ScheduledTaskDefinition.build("shortRunningTask", "0 */2 * * * *", noop, "5m", "1m")
        assert definition.name == "shortRunningTask"
        assert definition.lock.name == "shortRunningTask"
        assert definition.schedule.expression == "0 */2 * * * *"
        assert definition.task is noop

    def test_custom_lock_name(self):
        definition = ScheduledTaskDefinition.build("a", "0 * * * *", noop, lock_name="shared")
        assert definition.lock.name == "shared"

    def test_bad_cron_names_task(self):
        with pytest.raises(ConfigInvalidError) as exc_info:
            ScheduledTaskDefinition.build("a", "every minute", noop)
        assert exc_info.value.context.task == "a"

    def test_bad_bounds_name_task(self):
        with pytest.raises(ConfigInvalidError) as exc_info:
            ScheduledTaskDefinition.build("a", "0 * * * *", noop, "5m", "10m")
        assert exc_info.value.context.task == "a"

    def test_task_must_be_callable(self):
        with pytest.raises(ConfigInvalidError, match="callable"):
            ScheduledTaskDefinition.build("a", "0 * * * *", "not callable")  # type: ignore[arg-type]


class TestResolveTarget:
    def test_resolves(self):
        assert resolve_target("cronlock.demo:poll_job_completed") is poll_job_completed

    @pytest.mark.parametrize(
        "path",
        ["cronlock.demo", ":poll", "cronlock.demo:", "no_such_module_xyz:run", "cronlock.demo:missing"],
    )
    def test_bad_paths(self, path):
        with pytest.raises(ConfigInvalidError):
            resolve_target(path)

    def test_not_callable(self):
        with pytest.raises(ConfigInvalidError, match="not callable"):
            resolve_target("cronlock:__version__")


class TestTaskFiles:
    def test_load_sample_shape(self, tmp_path):
        path = write_task_file(
            tmp_path,
            [
                {
                    "name": "shortRunningTask",
                    "cron": "0 */2 * * * *",
                    "lock_at_most_for": "5m",
                    "lock_at_least_for": "1m",
                    "target": "cronlock.demo:poll_job_completed",
                    "kwargs": {"duration_seconds": 10},
                }
            ],
        )
        (definition,) = load_task_definitions(path)

        assert definition.name == "shortRunningTask"
        assert definition.lock == LockConfiguration(
            "shortRunningTask", timedelta(minutes=5), timedelta(minutes=1)
        )
        assert isinstance(definition.task, partial)
        assert definition.task.func is poll_job_completed
        assert definition.task.keywords == {"duration_seconds": 10}

    def test_defaults_fill_missing_bounds(self, tmp_path):
        path = write_task_file(
            tmp_path, [{"name": "a", "cron": "0 * * * *", "target": "cronlock.demo:poll_job_completed"}]
        )
        (definition,) = load_task_definitions(path, defaults=LockDefaults(timedelta(minutes=3)))
        assert definition.lock.lock_at_most_for == timedelta(minutes=3)
        assert definition.task is poll_job_completed

    def test_at_least_over_at_most_fails_whole_file(self, tmp_path):
        path = write_task_file(
            tmp_path,
            [
                {"name": "ok", "cron": "0 * * * *", "target": "cronlock.demo:poll_job_completed"},
                {
                    "name": "bad",
                    "cron": "0 * * * *",
                    "target": "cronlock.demo:poll_job_completed",
                    "lock_at_most_for": "5m",
                    "lock_at_least_for": "10m",
                },
            ],
        )
        with pytest.raises(ConfigInvalidError) as exc_info:
            load_task_definitions(path)
        assert exc_info.value.context.task == "bad"

    def test_disabled_entries_are_skipped(self, tmp_path):
        path = write_task_file(
            tmp_path,
            [
                {"name": "on", "cron": "0 * * * *", "target": "cronlock.demo:poll_job_completed"},
                {"name": "off", "cron": "0 * * * *", "target": "cronlock.demo:poll_job_completed", "enabled": False},
            ],
        )
        assert [d.name for d in load_task_definitions(path)] == ["on"]

    def test_duplicate_names(self):
        entry = {"name": "a", "cron": "0 * * * *", "target": "cronlock.demo:poll_job_completed"}
        with pytest.raises(ConfigInvalidError, match="Duplicate"):
            definitions_from_mapping({"tasks": [entry, dict(entry)]})

    def test_unknown_keys_rejected(self):
        entry = {"name": "a", "cron": "0 * * * *", "target": "cronlock.demo:poll_job_completed", "retries": 3}
        with pytest.raises(ConfigInvalidError, match="Invalid task file"):
            definitions_from_mapping({"tasks": [entry]})

    @pytest.mark.parametrize("value", [300, 1.5, "300", " 60000 "])
    def test_bare_number_durations_rejected(self, value):
        entry = {
            "name": "a",
            "cron": "0 * * * *",
            "target": "cronlock.demo:poll_job_completed",
            "lock_at_most_for": value,
        }
        with pytest.raises(ConfigInvalidError, match="needs a unit"):
            definitions_from_mapping({"tasks": [entry]})

    def test_unquoted_yaml_number_rejected(self, tmp_path):
        path = tmp_path / "tasks.yaml"
        path.write_text(
            "tasks:\n"
            "  - name: a\n"
            "    cron: '0 * * * *'\n"
            "    target: cronlock.demo:poll_job_completed\n"
            "    lock_at_least_for: 30\n"
        )
        with pytest.raises(ConfigInvalidError, match="needs a unit"):
            load_task_definitions(path)

    def test_bad_target_names_task(self):
        entry = {"name": "a", "cron": "0 * * * *", "target": "nowhere:nothing"}
        with pytest.raises(ConfigInvalidError) as exc_info:
            definitions_from_mapping({"tasks": [entry]})
        assert exc_info.value.context.task == "a"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_task_definitions(path) == []

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("tasks: [unclosed\n")
        with pytest.raises(ConfigInvalidError, match="Malformed YAML"):
            load_task_definitions(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigInvalidError, match="Cannot read"):
            load_task_definitions(tmp_path / "nope.yaml")
