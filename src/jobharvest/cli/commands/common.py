"""Helpers shared by the CLI commands."""

from typing import NoReturn

import typer
from rich.console import Console

from jobharvest.config import get_config
from jobharvest.db.database import DatabaseManager
from jobharvest.scraper.session import SessionStore

console = Console()


def open_database() -> DatabaseManager:
    """Open the configured jobs database."""
    return DatabaseManager(get_config().database_path)


def open_session_store() -> SessionStore:
    cfg = get_config()
    return SessionStore(cfg.session_path, cfg.session_max_age_hours)


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    console.print(f"[red]✗ {message}[/red]")
    raise typer.Exit(code=1)
