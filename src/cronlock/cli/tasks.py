"""
CLI: ``cronlock run`` / ``check`` / ``trigger`` - task file commands.
"""

from __future__ import annotations

import signal
import threading
from pathlib import Path

import typer
from rich.table import Table

from cronlock.cli.utils import console, err_console, fail, load_settings, print_json
from cronlock.core.durations import format_duration
from cronlock.core.errors import ConfigInvalidError, CronLockError
from cronlock.core.settings import CronLockSettings
from cronlock.core.timestamps import utc_now
from cronlock.scheduling.config import ScheduledTaskDefinition, load_task_definitions
from cronlock.scheduling.coordinator import RunOutcome
from cronlock.scheduling.service import SchedulerService


def _load(settings: CronLockSettings) -> list[ScheduledTaskDefinition]:
    if settings.tasks_file is None:
        fail("No task file given (use --tasks or CRONLOCK_TASKS_FILE)", code=2)
    try:
        return load_task_definitions(settings.tasks_file, defaults=settings.lock_defaults())
    except ConfigInvalidError as e:
        fail(e)


def _build_service(settings: CronLockSettings) -> SchedulerService:
    from cronlock.scheduling import create_scheduler

    definitions = _load(settings)
    try:
        service = create_scheduler(settings)
    except CronLockError as e:
        fail(e)
    except Exception as e:
        fail(f"Cannot open lock store {settings.database_url}: {e}")
    service.register_all(definitions)
    return service


def run(
    tasks: Path | None = typer.Option(None, "--tasks", "-t", help="YAML task file"),
    database_url: str | None = typer.Option(None, "--database-url", "-d", help="Lock store URL"),
    instance_id: str | None = typer.Option(None, "--instance-id", help="Holder identity"),
    backend: str | None = typer.Option(None, "--backend", help="thread | apscheduler"),
) -> None:
    """Start a scheduler node and block until interrupted.

    Example::

        cronlock run --tasks examples/audit_tasks.yaml
        CRONLOCK_DATABASE_URL=postgresql://db/locks cronlock run -t tasks.yaml
    """
    from cronlock.core.logging import configure_logging

    settings = load_settings(
        tasks_file=tasks, database_url=database_url, instance_id=instance_id, backend=backend
    )
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    service = _build_service(settings)

    stop_event = threading.Event()

    def _handle_signal(signum, frame) -> None:  # noqa: ARG001
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)

    console.print(
        f"[bold green]Starting cronlock node[/bold green] "
        f"(instance={service.lock_manager.instance_id}, backend={service.backend.name}, "
        f"tasks={len(service.task_names)})"
    )
    service.start()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        console.print("\n[yellow]Scheduler stopped by user[/yellow]")
    finally:
        service.stop()


def check(
    path: Path = typer.Argument(..., help="YAML task file"),
    count: int = typer.Option(3, "--count", "-n", min=1, help="Upcoming fire times to show"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Validate a task file and show upcoming fire times."""
    settings = load_settings(tasks_file=path)
    definitions = _load(settings)

    now = utc_now()
    rows = [
        {
            "name": d.name,
            "cron": d.schedule.expression,
            "lock": d.lock.name,
            "lock_at_most_for": format_duration(d.lock.lock_at_most_for),
            "lock_at_least_for": format_duration(d.lock.lock_at_least_for),
            "next": [t.isoformat() for t in d.schedule.upcoming(count, now)],
        }
        for d in definitions
    ]

    if json_out:
        print_json(rows)
        return
    if not rows:
        console.print("[dim]No enabled tasks.[/dim]")
        return

    table = Table(title=f"Tasks in {path}", pad_edge=False)
    for col in ("name", "cron", "lock", "at most", "at least", "next fire"):
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(
            row["name"],
            row["cron"],
            row["lock"],
            row["lock_at_most_for"],
            row["lock_at_least_for"],
            "\n".join(row["next"]),
        )
    console.print(table)
    console.print(f"[green]OK[/green] {len(rows)} task(s) valid")


def trigger(
    name: str = typer.Argument(..., help="Task name"),
    tasks: Path | None = typer.Option(None, "--tasks", "-t", help="YAML task file"),
    database_url: str | None = typer.Option(None, "--database-url", "-d", help="Lock store URL"),
    instance_id: str | None = typer.Option(None, "--instance-id", help="Holder identity"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one task once now, through its lock."""
    settings = load_settings(tasks_file=tasks, database_url=database_url, instance_id=instance_id)
    service = _build_service(settings)

    try:
        result = service.trigger(name)
    except KeyError:
        fail(f"Task {name!r} is not defined in {settings.tasks_file}")

    if json_out:
        print_json(result.to_dict())
    elif result.outcome is RunOutcome.COMPLETED:
        console.print(f"[green]Completed[/green] {name} (lock released: {result.released})")
    elif result.outcome is RunOutcome.FAILED:
        err_console.print(f"[bold red]Failed[/bold red] {name}: {result.error.message if result.error else ''}")
    else:
        console.print(f"[yellow]Skipped[/yellow] {name}: lock held elsewhere")

    if result.outcome is RunOutcome.FAILED:
        raise typer.Exit(code=1)
