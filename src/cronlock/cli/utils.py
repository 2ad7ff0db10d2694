"""
CLI utility helpers - settings, store access and output formatting.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from cronlock.core.errors import CronLockError
from cronlock.core.settings import CronLockSettings
from cronlock.scheduling.lock_manager import LockManager
from cronlock.scheduling.lock_store import LockRecord, SqlLockStore

console = Console()
err_console = Console(stderr=True)


# ── Settings / store helpers ─────────────────────────────────────────────


def load_settings(**overrides: Any) -> CronLockSettings:
    """Build settings from ``CRONLOCK_*`` env vars plus non-None CLI overrides."""
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return CronLockSettings(**values)
    except ValidationError as e:
        err_console.print(f"[bold red]Invalid settings[/bold red]: {e}")
        raise typer.Exit(code=2) from e


def open_store(settings: CronLockSettings) -> SqlLockStore:
    """Open the SQL lock store named by *settings* (no schema changes)."""
    from cronlock.core.orm import create_lock_engine

    return SqlLockStore(create_lock_engine(settings.database_url), table_name=settings.table_name)


def make_manager(settings: CronLockSettings) -> LockManager:
    return LockManager(open_store(settings), instance_id=settings.instance_id)


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: Exception | str, *, code: int = 1) -> NoReturn:
    """Print an error and exit with *code*."""
    if isinstance(error, CronLockError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=code)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def print_records(records: Iterable[LockRecord], *, now: Any, title: str = "") -> None:
    """Render lock rows as a Rich table."""
    records = list(records)
    if not records:
        console.print("[dim]No locks.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in ("name", "locked_by", "locked_at", "lock_until", "held"):
        table.add_column(col, overflow="fold")
    for record in records:
        held = record.is_held(now)
        table.add_row(
            record.name,
            record.locked_by,
            record.locked_at.isoformat(),
            record.lock_until.isoformat(),
            "[green]yes[/green]" if held else "[dim]no[/dim]",
        )
    console.print(table)
