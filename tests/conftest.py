"""
Shared pytest fixtures and configuration for cronlock tests.

This module provides:
- Auto-marking of tests by location
- A deterministic clock
- SQLite lock stores on temporary files
- Structlog reset between tests

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments
    (pytest injects them automatically).

    def test_something(fake_clock, sql_store):
        ...
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

# Ensure cronlock and tests._support are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from cronlock.core.orm import create_lock_engine  # noqa: E402
from cronlock.scheduling.lock_store import InMemoryLockStore, SqlLockStore  # noqa: E402
from tests._support.clock import T0, FakeClock  # noqa: E402


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any ``configure_logging`` call and drop bound context."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Clocks and stores
# =============================================================================


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def memory_store() -> InMemoryLockStore:
    return InMemoryLockStore()


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'locks.db'}"


@pytest.fixture
def sql_engine(sqlite_url: str):
    engine = create_lock_engine(sqlite_url)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(sql_engine) -> SqlLockStore:
    store = SqlLockStore(sql_engine)
    store.create_table()
    return store


@pytest.fixture(params=["memory", "sql"])
def lock_store(request: pytest.FixtureRequest):
    """Both store implementations, for behaviour they must share."""
    if request.param == "memory":
        return InMemoryLockStore()
    return request.getfixturevalue("sql_store")
