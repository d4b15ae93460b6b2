"""citeline init — create the project database and config.

Creates:
  .citeline.db             — empty database with schema (index.db_path)
  citeline.yaml            — project config with the defaults spelled out
  ~/.citeline/config.yaml  — global model config (created once, mode 0o600)

An existing .gitignore gets the database entries appended.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from citeline.config import (
    PROJECT_CONFIG_NAME,
    CitelineConfig,
    ensure_global_config,
    render_project_config,
)
from citeline.db.connection import Database
from citeline.db.schema import initialize

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override global config path (for testing)."),
    ] = None,
) -> None:
    """Initialize a citeline project: database, citeline.yaml and global config."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)
    cfg = CitelineConfig()

    console.print(f"\n[bold]Creating citeline project in {project_dir} …[/]\n")

    _create_database(project_dir / cfg.index.db_path)

    cfg_file = project_dir / PROJECT_CONFIG_NAME
    if cfg_file.exists():
        console.print(f"  [dim]✓ {PROJECT_CONFIG_NAME} (kept existing)[/]")
    else:
        cfg_file.write_text(render_project_config(cfg), encoding="utf-8")
        console.print(f"  [green]✓[/] {PROJECT_CONFIG_NAME}")

    _update_gitignore(project_dir, cfg.index.db_path)

    cfg_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\n[bold green]✓ Project initialized.[/]")
    console.print("\nNext steps:")
    console.print("  1. citeline owner add thread <id>          (register a thread)")
    console.print("  2. citeline upload thread <id> <file>      (ground it with files)")
    console.print("  3. citeline ask \"...\" --thread <id>        (chat with grounding)")


def _create_database(db_path: Path) -> None:
    existed = db_path.exists()
    with Database(db_path) as conn:
        initialize(conn)
    if existed:
        console.print(f"  [dim]✓ {db_path.name} (existing data preserved)[/]")
    else:
        console.print(f"  [green]✓[/] {db_path.name}")


def _update_gitignore(project_dir: Path, db_name: str) -> None:
    """Add citeline entries to .gitignore if it already exists."""
    gitignore = project_dir / ".gitignore"
    entries = [db_name, f"{db_name}-wal", f"{db_name}-shm"]

    if gitignore.exists():
        existing = gitignore.read_text(encoding="utf-8").splitlines()
        to_add = [e for e in entries if e not in existing]
        if to_add:
            with gitignore.open("a", encoding="utf-8") as f:
                f.write("\n# citeline\n")
                for entry in to_add:
                    f.write(f"{entry}\n")
            console.print("  [green]✓[/] .gitignore (updated with citeline entries)")
