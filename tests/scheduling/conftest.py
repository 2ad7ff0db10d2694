"""Pytest fixtures for scheduling tests."""

import pytest

from cronlock.scheduling import LockManager, ScheduledTaskDefinition, SchedulerService, ThreadSchedulerBackend


@pytest.fixture
def lock_manager(memory_store, fake_clock):
    """LockManager over an in-memory store with a fake clock."""
    return LockManager(memory_store, instance_id="node-a", clock=fake_clock)


@pytest.fixture
def other_manager(memory_store, fake_clock):
    """A second node sharing the same store and clock."""
    return LockManager(memory_store, instance_id="node-b", clock=fake_clock)


@pytest.fixture
def calls():
    """Records every invocation of ``task``."""
    return []


@pytest.fixture
def task(calls):
    def _task():
        calls.append(1)

    return _task


@pytest.fixture
def definition(task):
    return ScheduledTaskDefinition.build("shortRunningTask", "0 */2 * * * *", task, "5m", "1m")


@pytest.fixture
def backend(fake_clock):
    return ThreadSchedulerBackend(clock=fake_clock)


@pytest.fixture
def scheduler_service(backend, lock_manager):
    """SchedulerService that is never started; drive it with run_pending()."""
    service = SchedulerService(backend=backend, lock_manager=lock_manager)
    yield service
    service.stop()
