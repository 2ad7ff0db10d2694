"""
CLI layer for cronlock.

Provides a Typer application for operators: start a scheduler node, validate
task files, fire a task manually and inspect the shared lock table.  All
locking logic lives in ``cronlock.scheduling``; this package handles only
argument parsing and terminal output.

Entry point::

    cronlock --help
"""

from cronlock.cli.app import app

__all__ = ["app"]
