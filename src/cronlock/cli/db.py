"""
CLI: ``cronlock db`` - lock table management.
"""

from __future__ import annotations

import typer
from sqlalchemy.exc import SQLAlchemyError

from cronlock.cli.utils import console, fail, load_settings

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database_url: str | None = typer.Option(None, "--database-url", "-d", help="Lock store URL"),
    table_name: str | None = typer.Option(None, "--table", help="Lock table name"),
) -> None:
    """Create the lock table if it does not exist."""
    from cronlock.core.orm import create_lock_engine, init_schema

    settings = load_settings(database_url=database_url, table_name=table_name)
    try:
        init_schema(create_lock_engine(settings.database_url), settings.table_name)
    except SQLAlchemyError as e:
        fail(f"Cannot create lock table: {e}")

    console.print(
        f"[green]Lock table[/green] [bold]{settings.table_name}[/bold] ready at {settings.database_url}"
    )
