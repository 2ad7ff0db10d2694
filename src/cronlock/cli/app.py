"""
Root Typer application for the cronlock CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="cronlock",
    help="cronlock - cluster-wide at-most-once cron tasks over a shared lock table.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("cronlock")
        except PackageNotFoundError:
            from cronlock import __version__ as v
        typer.echo(f"cronlock {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """cronlock CLI - run scheduler nodes, validate task files, inspect locks."""


# ── Sub-command registration ─────────────────────────────────────────────

from cronlock.cli import tasks  # noqa: E402
from cronlock.cli.db import app as db_app  # noqa: E402
from cronlock.cli.locks import app as locks_app  # noqa: E402

app.command("run")(tasks.run)
app.command("check")(tasks.check)
app.command("trigger")(tasks.trigger)
app.add_typer(locks_app, name="locks", help="Inspect the lock table.")
app.add_typer(db_app, name="db", help="Lock table management.")
