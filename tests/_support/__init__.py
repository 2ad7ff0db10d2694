"""
Test support utilities for cronlock tests.

Helpers that don't fit as pytest fixtures but are useful across multiple
test files.
"""

from __future__ import annotations

from pathlib import Path

import yaml


def write_task_file(directory: Path, tasks: list[dict], name: str = "tasks.yaml") -> Path:
    """Dump *tasks* as a cronlock task file and return its path."""
    path = directory / name
    path.write_text(yaml.safe_dump({"tasks": tasks}, sort_keys=False), encoding="utf-8")
    return path
