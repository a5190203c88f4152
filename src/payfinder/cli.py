"""Command line interface for PayFinder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from payfinder.config import AppConfig
from payfinder.errors import LoadError, PersistenceError
from payfinder.index.search import Searcher
from payfinder.index.storage import SQLitePayrollStore
from payfinder.ingestion.loader import BulkLoader
from payfinder.models import PayrollRecord


console = Console()
app = typer.Typer(help="PayFinder - local payroll lookup")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _records_table(records: List[PayrollRecord]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("RFC")
    table.add_column("Nombre")
    table.add_column("CCT")
    table.add_column("Cheque")
    table.add_column("Período")
    table.add_column("Líquido", justify="right")

    for record in records:
        table.add_row(
            record.rfc,
            record.formatted_name,
            record.cct,
            record.cheque,
            record.period_formatted,
            record.liquido_display,
        )
    return table


@app.command()
def load(
    source: Path = typer.Argument(..., help="Payroll CSV export.", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    force: bool = typer.Option(False, "--force", help="Drop existing records before loading"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Load a payroll export into the database."""
    _setup_logging(verbose)
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path, source_path=source)
    resolved_db = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(resolved_db)

    store = SQLitePayrollStore(resolved_db, batch_size=config.insert_batch_size)
    loader = BulkLoader(config)
    console.print(f"Loading into [bold]{resolved_db}[/bold]...")
    try:
        if force:
            store.drop_and_recreate()
        stats = store.load_if_empty(loader, source)
    except LoadError as exc:
        console.print(f"[red]Load failed:[/red] {exc}")
        raise typer.Exit(code=1)
    except PersistenceError as exc:
        console.print(f"[red]Some records were not stored:[/red] {exc}")
        raise typer.Exit(code=1)
    finally:
        store.close()

    if stats is None:
        console.print("[yellow]Database already populated, use --force to reload.[/yellow]")
        return
    console.print(
        f"Loaded: {stats.loaded}, skipped: {stats.skipped}, "
        f"coerced numbers: {stats.parse.coerced_numbers} ({stats.mode}, {stats.encoding})"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="RFC, name or CCT fragment"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    limit: int = typer.Option(AppConfig().search_limit, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Search the database, best matches first."""
    _setup_logging(verbose)
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    store = SQLitePayrollStore(resolved_db)
    try:
        results = store.search(query, limit=limit, browse_limit=config.browse_limit)
    finally:
        store.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return
    console.print(_records_table(results))


@app.command()
def lookup(
    query: str = typer.Argument(..., help="RFC or name to look up"),
    source: Optional[Path] = typer.Option(None, "--source", help="Payroll CSV export"),
    by: str = typer.Option("auto", "--by", help="rfc, name or auto"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Look up records in the in-memory index built from the CSV export."""
    _setup_logging(verbose)
    if by not in ("rfc", "name", "auto"):
        raise typer.BadParameter("--by must be one of: rfc, name, auto")

    config = AppConfig(source_path=source)
    with Searcher(cache_size=config.cache_size) as searcher:
        try:
            searcher.load(BulkLoader(config), source)
        except LoadError as exc:
            console.print(f"[red]Load failed:[/red] {exc}")
            raise typer.Exit(code=1)

        if by == "rfc":
            results = searcher.search_by_rfc(query.strip())
        elif by == "name":
            results = searcher.search_by_name(query.strip())
        else:
            results = searcher.search(query).records

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return
    console.print(_records_table(results))


@app.command()
def count(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Print the number of stored records."""
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())

    if not resolved_db.exists():
        console.print("[yellow]Database not found.[/yellow]")
        return

    store = SQLitePayrollStore(resolved_db)
    try:
        console.print(f"Records: {store.record_count()}")
    finally:
        store.close()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    source: Optional[Path] = typer.Option(None, "--source", help="Payroll CSV export for lookups"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from payfinder.web.app import app as web_app, configure

    config = AppConfig(db_path=db if db is not None else AppConfig().db_path, source_path=source)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Warning: database not found, searches might fail.[/yellow]")
    configure(config)

    console.print(f"Starting API on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
