"""citeline sources — normalize a tool's "sources" payload into citations.

FILE holds the payload as returned by a search tool: JSON (array or any of
the wrapper objects) or the plain-text ``URL: / Title: / Description:``
dialect. Use ``-`` to read from stdin.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from citeline.citations.normalizer import normalize
from citeline.cli.common import console, load_cfg
from citeline.cli.errors import err_file_not_found, err_sources_unreadable


def sources_cmd(
    file: Annotated[str, typer.Argument(help="Payload file, or '-' for stdin.")],
    max_sources: Annotated[
        int | None,
        typer.Option("--max", "-m", help="Maximum citations (default: citations.max_sources)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print citations as JSON."),
    ] = False,
) -> None:
    """Print the deduplicated citation list for a sources payload."""
    cfg = load_cfg()
    raw_text = _read_payload(file)

    # JSON payloads are handed over decoded; anything else is text.
    try:
        payload = json.loads(raw_text)
    except (json.JSONDecodeError, RecursionError):
        payload = raw_text

    citations = normalize(
        payload,
        max_sources if max_sources is not None else cfg.citations.max_sources,
        favicon_template=cfg.citations.favicon_template,
    )

    if as_json:
        typer.echo(json.dumps([c.to_dict() for c in citations], indent=2))
        return

    if not citations:
        console.print("[yellow]No citations found in payload.[/]")
        raise typer.Exit(0)

    table = Table(title="Sources", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Domain", style="bold")
    table.add_column("Title")
    table.add_column("URL", style="dim")
    for i, source in enumerate(citations, 1):
        table.add_row(str(i), source.domain, source.title, source.url)
    console.print(table)


def _read_payload(file: str) -> str:
    if file == "-":
        return sys.stdin.read()
    path = Path(file)
    if not path.is_file():
        console.print(err_file_not_found(file))
        raise typer.Exit(1)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        console.print(err_sources_unreadable(file, str(exc)))
        raise typer.Exit(1)
