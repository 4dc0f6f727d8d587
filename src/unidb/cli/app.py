# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Typer CLI application root."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

from unidb.cli.commands import db

app = typer.Typer(
    name="unidb",
    help="Uniform async access to PostgreSQL, MySQL, SQLite and MongoDB",
    no_args_is_help=True,
)

app.add_typer(db.app, name="db", help="Migration history and connection details")


@app.command()
def check(
    adapter: Annotated[
        str | None,
        typer.Option("--adapter", "-a", help="Backend kind or alias (overrides UNIDB_DB_ADAPTER)"),
    ] = None,
) -> None:
    """Connect with the configured settings and report health and pool status."""
    healthy = asyncio.run(_async_check(adapter))
    if not healthy:
        raise typer.Exit(code=1)


async def _async_check(adapter: str | None) -> bool:
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    from unidb.core.config import get_settings
    from unidb.core.exceptions import DatabaseError
    from unidb.core.logging import setup_logging
    from unidb.manager import ConnectionManager

    settings = get_settings()
    if adapter:
        settings = settings.model_copy(update={"db_adapter": adapter.strip().lower()})
    setup_logging(settings.log_level, settings.log_format)
    config = settings.database_config()

    console = Console()
    async with ConnectionManager() as manager:
        try:
            status = await manager.connect("default", config)
        except DatabaseError as exc:
            console.print(f"[bold red]Connection failed:[/bold red] {escape(str(exc))}")
            return False

        conn = manager.get_connection()
        health = await conn.health_check()
        pool = conn.get_pool_status()

        table = Table(title="Connection Check")
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Backend", status.kind.value)
        if status.filename is not None:
            table.add_row("File", status.filename)
        else:
            table.add_row("Host", status.host or "-")
            table.add_row("Database", status.database or "-")
        table.add_row("Healthy", "yes" if health.healthy else f"no ({health.error})")
        table.add_row("Latency", f"{health.latency:.1f} ms")
        table.add_row(
            "Pool",
            f"total={pool.total} active={pool.active} idle={pool.idle} waiting={pool.waiting}",
        )
        console.print(table)
        return health.healthy


@app.command()
def version() -> None:
    """Show version information."""
    from unidb import __version__

    typer.echo(f"unidb v{__version__}")
