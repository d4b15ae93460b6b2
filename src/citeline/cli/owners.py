"""citeline owner / ensure commands.

Commands:
  citeline owner add SCOPE ID [--workspace-id W]  — register a workspace, thread or project
  citeline owner list SCOPE                       — list owners and their index ids
  citeline ensure SCOPE ID                        — create the owner's index on first use
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from citeline.cli.common import console, load_cfg, open_db, parse_scope, require_db
from citeline.cli.errors import err_index_unavailable, err_owner_not_found
from citeline.db.repository import Repository
from citeline.index.store import SqliteKnowledgeIndexStore
from citeline.models import Scope
from citeline.retrieval.lifecycle import IndexLifecycleManager
from citeline.retrieval.owners import SqliteOwnerStore

owner_app = typer.Typer(
    name="owner",
    help="Manage workspaces, threads and projects (add, list).",
    add_completion=False,
)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the citeline database (default: index.db_path)."),
]


@owner_app.command("add")
def owner_add_cmd(
    scope: Annotated[str, typer.Argument(help="workspace, thread or project.")],
    owner_id: Annotated[str, typer.Argument(help="Owner id.")],
    workspace_id: Annotated[
        str | None,
        typer.Option("--workspace-id", "-w", help="Workspace a thread belongs to."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """Register an owner record (idempotent)."""
    sc = parse_scope(scope)
    if workspace_id and sc is not Scope.THREAD:
        console.print("[red]Error:[/] --workspace-id only applies to threads.")
        raise typer.Exit(1)

    cfg = load_cfg(db)
    owners = SqliteOwnerStore(cfg.index.db_path)
    record = asyncio.run(owners.add(sc, owner_id, workspace_id=workspace_id))
    suffix = f" (workspace {record.workspace_id})" if record.workspace_id else ""
    console.print(f"  [green]✓[/] {sc.value} [bold]{record.id}[/]{suffix}")


@owner_app.command("list")
def owner_list_cmd(
    scope: Annotated[str, typer.Argument(help="workspace, thread or project.")],
    db: _DbOption = None,
) -> None:
    """List owners of one scope with their knowledge index ids."""
    sc = parse_scope(scope)
    db_path = require_db(load_cfg(db))

    conn = open_db(db_path)
    try:
        records = Repository(conn).list_owners(sc)
    finally:
        conn.close()

    if not records:
        console.print(f"[yellow]No {sc.value}s registered.[/]")
        raise typer.Exit(0)

    table = Table(title=f"{sc.label}s", show_header=True, header_style="bold")
    table.add_column("Id", style="bold")
    table.add_column("Index")
    if sc is Scope.THREAD:
        table.add_column("Workspace")
    table.add_column("Updated")
    for rec in records:
        row = [rec.id, rec.index_id or "[dim]—[/]"]
        if sc is Scope.THREAD:
            row.append(rec.workspace_id or "")
        row.append(rec.updated_at or "")
        table.add_row(*row)
    console.print(table)


def ensure_cmd(
    scope: Annotated[str, typer.Argument(help="workspace, thread or project.")],
    owner_id: Annotated[str, typer.Argument(help="Owner id.")],
    db: _DbOption = None,
) -> None:
    """Make sure the owner has a knowledge index, creating it on first use."""
    sc = parse_scope(scope)
    cfg = load_cfg(db)
    db_path = require_db(cfg)
    owners = SqliteOwnerStore(db_path)

    if asyncio.run(owners.get(sc, owner_id)) is None:
        console.print(err_owner_not_found(sc.value, owner_id))
        raise typer.Exit(1)

    manager = IndexLifecycleManager(
        SqliteKnowledgeIndexStore(
            db_path,
            embedding_model=cfg.index.embedding_model,
            dimensions=cfg.index.dimensions,
        ),
        owners,
        timeout_seconds=cfg.retrieval.timeout_seconds,
    )
    index = asyncio.run(manager.ensure(sc, owner_id))
    if index is None:
        console.print(err_index_unavailable(sc.value, owner_id))
        raise typer.Exit(1)

    state = "created" if index.created_at else "existing"
    console.print(f"  [green]✓[/] {sc.value} {owner_id} → [bold]{index.id}[/] [dim]({state})[/]")
