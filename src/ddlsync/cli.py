"""
Command-line interface for ddlsync.
"""

import asyncio
import logging
import sys
from functools import wraps
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import DatabaseSettings, DdlsyncConfig, LoggingConfig
from .database.connection import ConnectionPool
from .exceptions import DdlsyncError
from .schema.model import SchemaModel, render_default
from .schema.reconciler import ReconciliationResult, ReconciliationStatus, SchemaReconciler


console = Console()

config_option = click.option(
    "--config", "-c", type=click.Path(exists=True), required=True, help="ddlsync YAML configuration"
)

STATUS_STYLES = {
    ReconciliationStatus.SUCCESS: "green",
    ReconciliationStatus.PARTIAL: "yellow",
    ReconciliationStatus.FAILED: "red",
    ReconciliationStatus.PLANNED: "cyan",
}


def handle_errors(func):
    """Print ddlsync errors as one line and exit non-zero instead of tracebacking."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DdlsyncError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Aborted[/yellow]")
            sys.exit(130)
    return wrapper


def configure_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Configure the root logger from the logging section."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(
            RotatingFileHandler(
                config.file,
                maxBytes=config.max_size,
                backupCount=config.backup_count,
            )
        )

    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, config.level),
        format=config.format,
        handlers=handlers,
        force=True,
    )


def _load(ctx: click.Context, config: str) -> DdlsyncConfig:
    ddl_config = DdlsyncConfig.from_yaml(config)
    configure_logging(ddl_config.logging, ctx.obj.get("debug", False) or ddl_config.debug)
    return ddl_config


@click.group()
@click.version_option(__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, debug):
    """ddlsync: converge a PostgreSQL schema to declared table definitions."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="ddlsync.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Write a starter configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    config = DdlsyncConfig(database=DatabaseSettings(url="${DATABASE_URL}"))
    config.to_yaml(output)

    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Then:[/yellow]")
    console.print("1. Export DATABASE_URL or edit the database section")
    console.print("2. Declare your tables (an empty list uses the built-in link-shortener schema)")
    console.print(f"3. Run: ddlsync reconcile --config {output}")


@main.command()
@config_option
@click.pass_context
@handle_errors
def validate_config(ctx, config: str):
    """Validate configuration file and table declarations."""
    ddl_config = _load(ctx, config)
    model = ddl_config.schema_model()
    order = [table.qualified_name for table in model.ordered_tables()]

    console.print("[green]✓[/green] Configuration is valid")
    console.print(f"Tables ({len(order)}), in processing order: {', '.join(order)}")


@main.command()
@config_option
@click.pass_context
@handle_errors
def show_schema(ctx, config: str):
    """Show declared tables, columns and constraints."""
    ddl_config = _load(ctx, config)
    _display_schema(ddl_config.schema_model())


@main.command()
@config_option
@click.option(
    "--fix-constraints",
    is_flag=True,
    help="Drop and re-create foreign key and unique constraints",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Log planned statements instead of executing them",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Exit non-zero if any table did not fully succeed",
)
@click.pass_context
@handle_errors
def reconcile(ctx, config: str, fix_constraints: bool, dry_run: bool, strict: bool):
    """Reconcile the database schema with the declared tables."""
    ddl_config = _load(ctx, config)
    fix_constraints = fix_constraints or ddl_config.reconcile.fix_constraints
    dry_run = dry_run or ddl_config.reconcile.dry_run

    model = ddl_config.schema_model()
    connection_config = ddl_config.connection_config()

    console.print("[blue]Schema reconciliation[/blue]")
    console.print(f"Database: {connection_config.safe_dsn}")
    if dry_run:
        console.print("[yellow]Dry run mode - no changes will be made[/yellow]")
    if fix_constraints:
        console.print("[yellow]Fix mode - foreign key and unique constraints will be re-created[/yellow]")

    async def run_reconcile() -> List[ReconciliationResult]:
        pool = ConnectionPool(connection_config)
        await pool.initialize()
        try:
            reconciler = SchemaReconciler(pool, model, dry_run=dry_run)
            return await reconciler.reconcile(fix_constraints=fix_constraints)
        finally:
            await pool.close()

    results = asyncio.run(run_reconcile())
    _display_results(results)

    if strict and any(r.status != ReconciliationStatus.SUCCESS for r in results):
        sys.exit(1)


@main.command()
@config_option
@click.pass_context
@handle_errors
def test_connection(ctx, config: str):
    """Check that the configured database is reachable."""
    ddl_config = _load(ctx, config)
    connection_config = ddl_config.connection_config()
    console.print(f"[blue]Testing connection to {connection_config.safe_dsn}...[/blue]")

    async def run_connection_test() -> str:
        async with ConnectionPool(connection_config) as pool:
            return await pool.server_version()

    version = asyncio.run(run_connection_test())
    console.print(f"[green]✓[/green] Connected: {version}")


def _display_schema(model: SchemaModel) -> None:
    """Render each declared table."""
    for table in model.ordered_tables():
        columns = Table(title=table.qualified_name)
        columns.add_column("Column", style="cyan")
        columns.add_column("Type", style="magenta")
        columns.add_column("Flags", style="green")
        columns.add_column("Default", style="yellow")

        for col in table.columns:
            type_str = col.type.value
            if col.type.is_bounded_text:
                type_str += f"({col.effective_char_limit})"
            flags = []
            if col.primary:
                flags.append("PK")
            if not col.is_nullable:
                flags.append("NOT NULL")
            if col.unique:
                flags.append("unique")
            default = render_default(col.default) if col.default is not None else ""
            columns.add_row(col.name, type_str, " ".join(flags), default)

        console.print(columns)

        for constraint in table.constraints:
            console.print(f"  constraint: {escape(repr(constraint))}")
        for index_columns in table.indexes:
            console.print(f"  index: ({', '.join(index_columns)})")
        if table.seeds:
            console.print(f"  seed statements: {len(table.seeds)}")


def _display_results(results: List[ReconciliationResult]) -> None:
    """Render a per-table summary of a reconciliation run."""
    summary_table = Table(title="Reconciliation Results")
    summary_table.add_column("Table", style="cyan")
    summary_table.add_column("Status")
    summary_table.add_column("Changes", justify="right")
    summary_table.add_column("Failed", justify="right")
    summary_table.add_column("Warnings", justify="right")
    summary_table.add_column("Time (ms)", justify="right")

    for result in results:
        style = STATUS_STYLES.get(result.status, "white")
        summary_table.add_row(
            result.full_name,
            f"[{style}]{result.status.value}[/{style}]",
            str(len(result.changes_applied)),
            str(result.failed_changes),
            str(len(result.warnings)),
            f"{result.execution_time_ms:.1f}",
        )

    console.print(summary_table)

    for result in results:
        for warning in result.warnings:
            console.print(f"[yellow]![/yellow] {escape(warning)}")
        for error in result.errors:
            console.print(f"[red]✗[/red] {result.full_name}: {escape(error)}")

    summary = SchemaReconciler.get_reconciliation_summary(results)
    console.print(
        f"\n[bold]{summary['total_tables']} table(s):[/bold] "
        f"[green]{summary['successful']} succeeded[/green], "
        f"[yellow]{summary['partial']} partial[/yellow], "
        f"[red]{summary['failed']} failed[/red]"
    )


if __name__ == "__main__":
    main()
