# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Database inspection commands."""

from __future__ import annotations

import asyncio

import typer

app = typer.Typer()


@app.command()
def history(
    table: str = typer.Option("migrations", "--table", help="History table or collection"),
) -> None:
    """List applied migrations, oldest first."""
    asyncio.run(_show_history(table))


async def _show_history(table_name: str) -> None:
    from rich.console import Console
    from rich.table import Table

    from unidb.core.config import get_settings
    from unidb.database import close_database, get_database, init_database
    from unidb.migrations import MigrationHistory

    settings = get_settings()
    await init_database(settings=settings)
    try:
        log = MigrationHistory(get_database(), table_name)
        await log.ensure()
        records = await log.executed()

        if not records:
            typer.echo("No migrations have been applied.")
            return

        table = Table(title="Migration History")
        table.add_column("Batch", justify="right")
        table.add_column("Name", style="bold")
        table.add_column("Executed At")
        for record in records:
            table.add_row(str(record.batch), record.name, record.executed_at)
        Console().print(table)
    finally:
        await close_database()


@app.command()
def info() -> None:
    """Show the configured default connection (credentials redacted)."""
    from unidb.core.config import get_settings
    from unidb.models.config import parse_config

    settings = get_settings()
    cfg = parse_config(settings.database_config())
    typer.echo(f"Backend:  {cfg.kind.value}")
    for key, value in cfg.display_fields().items():
        typer.echo(f"{key.capitalize() + ':':<10}{value or '-'}")
    typer.echo(f"Pool:     min={cfg.pool.min} max={cfg.pool.max} retries={cfg.pool.max_retries}")
    if settings.db_password:
        typer.echo("Password: [REDACTED]")
