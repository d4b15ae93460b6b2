"""Logging bootstrap for the citeline CLI."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(level: str | int) -> int:
    """Return a logging level for a name such as ``"info"`` (ints pass through)."""
    if isinstance(level, int):
        return level
    try:
        return _LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown log level '{level}'. Use one of: {', '.join(_LEVELS)}"
        ) from None


def setup_logging(level: str | int = logging.WARNING) -> None:
    logging.basicConfig(
        level=parse_level(level),
        format="%(name)s | %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False, show_path=False)],
        force=True,
    )
    # litellm logs every request at INFO; keep it quiet unless debugging.
    if parse_level(level) > logging.DEBUG:
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
