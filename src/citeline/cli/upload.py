"""citeline upload — add files to an owner's knowledge index.

The owner's index is created on first use. Files are stored as UTF-8 text;
content already present in the index (same SHA-256) is skipped. Uploading
to a thread marks it as recently updated so sibling threads in the same
workspace can fall back to its index.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from citeline.cli.common import console, load_cfg, parse_scope, require_db
from citeline.cli.errors import (
    err_file_not_found,
    err_index_unavailable,
    err_no_api_key,
    err_owner_not_found,
)
from citeline.config import CitelineConfig
from citeline.errors import IndexStoreError
from citeline.index.chunking import TextChunker
from citeline.index.store import SqliteKnowledgeIndexStore
from citeline.llm import provider_of, validate_api_key
from citeline.models import Scope
from citeline.retrieval.lifecycle import IndexLifecycleManager
from citeline.retrieval.owners import SqliteOwnerStore


def upload_cmd(
    scope: Annotated[str, typer.Argument(help="workspace, thread or project.")],
    owner_id: Annotated[str, typer.Argument(help="Owner id.")],
    files: Annotated[list[Path], typer.Argument(help="Text files to upload.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the citeline database (default: index.db_path)."),
    ] = None,
) -> None:
    """Upload files into the knowledge index of a workspace, thread or project."""
    sc = parse_scope(scope)
    cfg = load_cfg(db)
    db_path = require_db(cfg)

    for path in files:
        if not path.is_file():
            console.print(err_file_not_found(str(path)))
            raise typer.Exit(1)

    try:
        validate_api_key(cfg.index.embedding_model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(cfg.index.embedding_model)))
        raise typer.Exit(1)

    asyncio.run(_upload(cfg, db_path, sc, owner_id, files))


async def _upload(
    cfg: CitelineConfig, db_path: Path, scope: Scope, owner_id: str, files: list[Path]
) -> None:
    owners = SqliteOwnerStore(db_path)
    if await owners.get(scope, owner_id) is None:
        console.print(err_owner_not_found(scope.value, owner_id))
        raise typer.Exit(1)

    store = SqliteKnowledgeIndexStore(
        db_path,
        embedding_model=cfg.index.embedding_model,
        dimensions=cfg.index.dimensions,
        chunker=TextChunker(chunk_size=cfg.index.chunk_size, overlap=cfg.index.overlap),
    )
    manager = IndexLifecycleManager(store, owners, timeout_seconds=cfg.retrieval.timeout_seconds)
    index = await manager.ensure(scope, owner_id)
    if index is None:
        console.print(err_index_unavailable(scope.value, owner_id))
        raise typer.Exit(1)

    for path in files:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Uploading {path.name}…", total=None)
            try:
                await store.upload(index.id, path.read_bytes(), path.name)
            except IndexStoreError as exc:
                console.print(f"  [red]✗[/] {path.name}: {exc}")
                raise typer.Exit(1)
        console.print(f"  [green]✓[/] {path.name} → [bold]{index.id}[/]")

    if scope is Scope.THREAD:
        await owners.touch(scope, owner_id)
