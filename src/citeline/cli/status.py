"""citeline status command.

Shows project overview: configuration, knowledge indexes and owner records.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from citeline.cli.common import console, load_cfg, open_db
from citeline.config import CitelineConfig
from citeline.db.repository import Repository
from citeline.models import Scope


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the citeline database (default: index.db_path)."),
    ] = None,
) -> None:
    """Show project status: configuration, knowledge indexes and owners."""
    cfg = load_cfg(db)
    db_path = Path(cfg.index.db_path)

    # ---- Panel 1: Configuration ----
    _show_config_panel(db_path, cfg)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  citeline init",
                title="[bold]Knowledge Indexes[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db_path)
    try:
        repo = Repository(conn)
        # ---- Panel 2: Knowledge indexes ----
        _show_indexes_table(repo)
        # ---- Panel 3: Owners ----
        _show_owners_panel(repo)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db_path: Path, cfg: CitelineConfig) -> None:
    db_info = f"{db_path}"
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        db_info = f"{db_path} ({size_mb:.1f} MB)"

    lines = [
        f"Database:    {db_info}",
        f"Embeddings:  {cfg.index.embedding_model} ({cfg.index.dimensions} dims)",
        f"Generation:  {cfg.generation.model}",
        f"Vision:      {cfg.vision.model}",
        f"Retrieval:   {cfg.retrieval.max_results} results, "
        f"{cfg.retrieval.max_excerpt_chars:,} chars, {cfg.retrieval.timeout_seconds}s timeout",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_indexes_table(repo: Repository) -> None:
    indexes = repo.list_indexes()
    if not indexes:
        console.print(
            Panel(
                "[dim]No knowledge indexes yet.[/]\n"
                "  Run:  citeline ensure <scope> <id>  or  citeline upload …",
                title="[bold]Knowledge Indexes[/]",
                expand=False,
            )
        )
        return

    table = Table(title="Knowledge Indexes", show_header=True, header_style="bold")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Documents", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Created", style="dim")
    for record in indexes:
        table.add_row(
            record.id,
            record.name,
            str(repo.count_documents(record.id)),
            f"{repo.count_chunks(record.id):,}",
            (record.created_at or "")[:16],
        )
    console.print(table)


def _show_owners_panel(repo: Repository) -> None:
    lines: list[str] = []
    for scope in Scope:
        owners = repo.list_owners(scope)
        with_index = sum(1 for o in owners if o.index_id)
        lines.append(
            f"{scope.label + 's:':<12} [bold]{len(owners)}[/]  "
            f"[dim]({with_index} with index)[/]"
        )
    console.print(Panel("\n".join(lines), title="[bold]Owners[/]", expand=False))
