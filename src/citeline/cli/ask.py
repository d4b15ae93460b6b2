"""citeline ask — one grounded chat turn.

Steps:
  1. Resolve the knowledge index for the thread / workspace / project.
  2. Concurrently: create the thread's index on first use, retrieve
     excerpts, analyse attached images.
  3. Call the generation model (skipped with --dry-run).
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from citeline.cli.common import console, load_cfg, require_db
from citeline.cli.errors import err_no_api_key
from citeline.llm import provider_of, validate_api_key
from citeline.pipeline import PreparedTurn, TurnPipeline, TurnRequest


def ask_cmd(
    message: Annotated[str, typer.Argument(help="User message.")],
    thread: Annotated[
        str | None, typer.Option("--thread", "-t", help="Thread id.")
    ] = None,
    workspace: Annotated[
        str | None, typer.Option("--workspace", "-w", help="Workspace id.")
    ] = None,
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Project id.")
    ] = None,
    image: Annotated[
        list[str] | None,
        typer.Option("--image", "-i", help="Image URL to analyse (repeatable)."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show retrieval and the model-facing message without generation."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the citeline database (default: index.db_path)."),
    ] = None,
) -> None:
    """Answer MESSAGE, grounded in the resolved knowledge index."""
    cfg = load_cfg(db)
    require_db(cfg)

    if not dry_run:
        try:
            validate_api_key(cfg.generation.model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(cfg.generation.model)))
            raise typer.Exit(1)

    pipeline = TurnPipeline.from_config(cfg)
    request = TurnRequest(
        message=message,
        thread_id=thread,
        workspace_id=workspace,
        project_id=project,
        image_urls=list(image or []),
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task("Retrieving…", total=None)
        prepared = asyncio.run(pipeline.prepare(request))

    _show_preparation(prepared)

    if dry_run:
        console.print(Panel(prepared.model_message, title="[bold]Model message[/]", expand=False))
        console.print("\n[dim]No LLM generation performed.[/]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task(f"Generating with {cfg.generation.model}…", total=None)
        try:
            answer = asyncio.run(pipeline.complete(prepared))
        except Exception as exc:
            console.print(f"[red]Error:[/] Generation failed: {exc}")
            raise typer.Exit(1)

    if prepared.notice:
        console.print(f"[yellow]⚠[/] {prepared.notice}")
    console.print(answer)


def _show_preparation(prepared: PreparedTurn) -> None:
    if prepared.ensured and prepared.ensured.created_at:
        console.print(f"  [dim]✓ Created index {prepared.ensured.id}[/]")
    if prepared.resolved:
        scope, index_id = prepared.resolved
        console.print(f"  [dim]✓ Grounding against {scope.value} index {index_id}[/]")
    else:
        console.print("  [dim]✓ No knowledge index in scope[/]")

    excerpts = prepared.augment.excerpts_used
    if excerpts:
        files = ", ".join(dict.fromkeys(e.source_ref for e in excerpts))
        console.print(f"  [dim]✓ {len(excerpts)} excerpt(s) from {files}[/]")
    if prepared.vision is not None:
        state = "analysed" if prepared.vision.ok else "failed"
        console.print(f"  [dim]✓ {prepared.vision.image_count} image(s) {state}[/]")
