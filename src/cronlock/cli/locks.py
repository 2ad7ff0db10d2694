"""
CLI: ``cronlock locks`` - read-only lock table inspection.
"""

from __future__ import annotations

import typer

from cronlock.cli.utils import console, fail, load_settings, make_manager, print_dict, print_json, print_records
from cronlock.core.errors import CronLockError

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_locks(
    show_all: bool = typer.Option(False, "--all", "-a", help="Include expired lock rows"),
    database_url: str | None = typer.Option(None, "--database-url", "-d", help="Lock store URL"),
    table_name: str | None = typer.Option(None, "--table", help="Lock table name"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List locks currently held (or every row with --all)."""
    settings = load_settings(database_url=database_url, table_name=table_name)
    manager = make_manager(settings)

    try:
        records = manager.list_locks() if show_all else manager.list_active_locks()
    except CronLockError as e:
        fail(e)

    now = manager.clock()
    if json_out:
        print_json([{**r.to_dict(), "held": r.is_held(now)} for r in records])
        return
    print_records(records, now=now, title="Locks" if show_all else "Held Locks")


@app.command("show")
def show_lock(
    name: str = typer.Argument(..., help="Lock name"),
    database_url: str | None = typer.Option(None, "--database-url", "-d", help="Lock store URL"),
    table_name: str | None = typer.Option(None, "--table", help="Lock table name"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one lock row."""
    settings = load_settings(database_url=database_url, table_name=table_name)
    manager = make_manager(settings)

    try:
        record = manager.get_record(name)
    except CronLockError as e:
        fail(e)

    if record is None:
        fail(f"No lock row named {name!r}")

    data = {**record.to_dict(), "held": record.is_held(manager.clock())}
    if json_out:
        print_json(data)
        return
    print_dict(data, title=f"Lock: {name}")
    if not data["held"]:
        console.print("[dim]Lock is free; the next acquirer takes it over.[/dim]")
