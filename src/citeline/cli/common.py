"""Helpers shared by the citeline commands: config, scope and database access."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from citeline.cli.errors import err_bad_scope, err_config, err_no_db
from citeline.config import CitelineConfig, load_config
from citeline.db.connection import Database
from citeline.errors import ConfigError
from citeline.models import Scope

console = Console()


def load_cfg(db: Path | None = None) -> CitelineConfig:
    """Load config from the current directory; ``--db`` overrides ``index.db_path``."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    if db is not None:
        cfg.index.db_path = str(db)
    return cfg


def require_db(cfg: CitelineConfig) -> Path:
    """Return the configured database path; exit 1 if it does not exist."""
    db_path = Path(cfg.index.db_path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    return db_path


def parse_scope(value: str) -> Scope:
    try:
        return Scope.parse(value)
    except ValueError:
        console.print(err_bad_scope(value))
        raise typer.Exit(1)


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the database and run migrations."""
    return Database(db_path).connect(migrate=True)
