"""Command line interface for Folio."""

from __future__ import annotations

import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from folio.config import AppConfig
from folio.errors import FolioError
from folio.services import FolioServices, build_services

console = Console()
app = typer.Typer(help="Folio - semantic search over your knowledge folder")

LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_FORMAT = "[%(levelname)s] %(message)s"


def _setup_logging(verbose: bool, log_file: Path | None = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if log_file is None:
        return
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=3, encoding="utf-8")
    except OSError as exc:
        logging.getLogger(__name__).warning("File logging disabled (%s): %s", log_file, exc)
        return
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logging.getLogger().addHandler(handler)


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _load_config(db: Optional[Path]) -> AppConfig:
    config = AppConfig.from_env()
    if db is not None:
        config.db_path = db
    return config


def _start_services(db: Optional[Path], verbose: bool) -> FolioServices:
    config = _load_config(db)
    _setup_logging(verbose, Path(config.log_path))
    _ensure_db_parent(config.resolve_db_path(Path.cwd()))
    services = build_services(config)
    try:
        services.start()
    except FolioError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return services


@app.command()
def index(
    folder: Optional[Path] = typer.Argument(
        None, help="Folder to index (defaults to the knowledge folder).", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index every supported file below a folder."""
    services = _start_services(db, verbose)
    try:
        target = folder or Path(services.config.knowledge_dir)
        if not target.is_dir():
            console.print(f"[yellow]Folder not found: {target}[/yellow]")
            raise typer.Exit(code=1)

        console.print(f"Indexing [bold]{target}[/bold]...")
        stats = services.indexer.index_directory(target)
        console.print(
            f"Inserted: {stats.inserted}, updated: {stats.updated}, skipped: {stats.skipped}, "
            f"removed: {stats.removed}, failed: {stats.failed}"
        )
    finally:
        services.close()


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    top_k: int = typer.Option(10, help="Number of results to display"),
    rerank: bool = typer.Option(False, "--rerank", help="Rerank candidates with the cross-encoder"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a hybrid search."""
    services = _start_services(db, verbose)
    try:
        results = services.searcher.search(query, top_k=top_k, rerank=rerank)
        if not results:
            console.print("[yellow]No matches found.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Score")
        table.add_column("Document")
        table.add_column("Snippet")

        for result in results:
            snippet = result.text.replace("\n", " ")
            table.add_row(f"{result.score:.4f}", str(result.metadata["path"]), snippet[:180])

        console.print(table)
    finally:
        services.close()


@app.command()
def remove(
    path: str = typer.Argument(..., help="File path or URL to drop from the index"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Remove a file or web page from the index."""
    services = _start_services(db, verbose)
    try:
        deleted = services.indexer.remove_file(path)
        console.print(f"Removed {deleted} record(s) for {path}.")
    finally:
        services.close()


@app.command()
def watch(
    folder: Optional[Path] = typer.Argument(
        None, help="Folder to watch (defaults to the knowledge folder).", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index a folder, then keep the index current until interrupted."""
    services = _start_services(db, verbose)
    services.shutdown.install()
    try:
        target = folder or Path(services.config.knowledge_dir)
        target.mkdir(parents=True, exist_ok=True)
        stats = services.indexer.index_directory(target)
        console.print(f"Initial pass: {stats.inserted + stats.updated} indexed, {stats.removed} removed.")
        services.watch(target)
        console.print(f"Watching [bold]{target}[/bold] (Ctrl+C to stop)")
        while not services.shutdown.has_run:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        services.close()


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    from folio.web.app import app as web_app

    config = _load_config(db)
    _setup_logging(verbose, Path(config.log_path))
    web_app.state.config = config

    console.print(f"Starting API on http://{host}:{port} (database: {config.resolve_db_path(Path.cwd())})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="debug" if verbose else "info",
    )
