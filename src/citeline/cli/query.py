"""citeline query — search one knowledge index directly."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from citeline.cli.common import console, load_cfg, require_db
from citeline.cli.errors import err_index_not_found, err_no_api_key
from citeline.errors import IndexNotFoundError, IndexStoreError
from citeline.index.store import SqliteKnowledgeIndexStore
from citeline.llm import provider_of, validate_api_key

_PREVIEW_CHARS = 160


def query_cmd(
    index_id: Annotated[str, typer.Argument(help="Knowledge index id (see citeline status).")],
    text: Annotated[str, typer.Argument(help="Query text.")],
    top_k: Annotated[
        int,
        typer.Option("--top-k", "-k", help="Maximum results (clamped to 1..50)."),
    ] = 10,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the citeline database (default: index.db_path)."),
    ] = None,
) -> None:
    """Run a hybrid (vector + BM25) query against a knowledge index."""
    cfg = load_cfg(db)
    db_path = require_db(cfg)

    try:
        validate_api_key(cfg.index.embedding_model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(cfg.index.embedding_model)))
        raise typer.Exit(1)

    store = SqliteKnowledgeIndexStore(
        db_path,
        embedding_model=cfg.index.embedding_model,
        dimensions=cfg.index.dimensions,
    )
    try:
        excerpts = asyncio.run(store.query(index_id, text, top_k))
    except IndexNotFoundError:
        console.print(err_index_not_found(index_id))
        raise typer.Exit(1)
    except (IndexStoreError, ValueError) as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)

    if not excerpts:
        console.print("[yellow]No matching excerpts.[/]")
        raise typer.Exit(0)

    table = Table(title=f"Results from {index_id}", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("File", style="bold")
    table.add_column("Excerpt")
    for i, excerpt in enumerate(excerpts, 1):
        preview = excerpt.text.replace("\n", " ")
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[:_PREVIEW_CHARS] + "…"
        table.add_row(str(i), f"{excerpt.score:.4f}", excerpt.source_ref, preview)
    console.print(table)
