"""citeline rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from citeline.cli.errors import err_no_db
    console.print(err_no_db(".citeline.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from citeline.llm import _PROVIDER_ENV


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _PROVIDER_ENV.get(provider.lower()) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".citeline.db") -> str:
    """No citeline database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  citeline init"
    )


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix citeline.yaml or ~/.citeline/config.yaml and retry."
    )


def err_bad_scope(value: str) -> str:
    return (
        f"[red]Error:[/] Unknown scope '{value}'.\n"
        "  Use one of:  workspace, thread, project"
    )


def err_owner_not_found(scope: str, owner_id: str) -> str:
    """Owner record missing — ensure/upload need it first."""
    return (
        f"[red]Error:[/] No {scope} with id '{owner_id}'.\n"
        f"  Run:  citeline owner add {scope} {owner_id}"
    )


def err_index_unavailable(scope: str, owner_id: str) -> str:
    return (
        f"[red]Error:[/] Could not create or look up the knowledge index for {scope} '{owner_id}'.\n"
        "  Re-run with --log-level info to see the cause."
    )


def err_index_not_found(index_id: str) -> str:
    return (
        f"[red]Error:[/] Unknown knowledge index '{index_id}'.\n"
        "  Run:  citeline status  to list known indexes."
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path and retry."
    )


def err_sources_unreadable(path: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Could not read sources file '{path}': {reason}\n"
        "  Pass a JSON or plain-text sources payload."
    )
