"""Per-index sqlite-vec virtual table management.

Each knowledge index owns one vec0 table so a nearest-neighbour search
never returns another index's chunks.
"""

from __future__ import annotations

import re
import sqlite3


def to_slug(value: str) -> str:
    """Convert an identifier to a valid table name suffix.

    Examples:
        "vs_3f2a9c" -> "vs_3f2a9c"
        "ix-Alpha.1" -> "ix_alpha_1"
    """
    return re.sub(r"[^a-z0-9]", "_", value.lower())


def vec_table_name(index_id: str) -> str:
    """Return the vec table name for a knowledge index id."""
    return f"vec_{to_slug(index_id)}"


def ensure_vec_table(
    conn: sqlite3.Connection, index_id: str, dimensions: int, *, commit: bool = True
) -> str:
    """Create the vec table for *index_id* if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        index_id: Knowledge index identifier.
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).
        commit: Commit after creating; pass False to join the caller's transaction.

    Returns:
        The table name.
    """
    if not index_id:
        raise ValueError("index_id must be non-empty")
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(index_id)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])"
        )
        if commit:
            conn.commit()

    return table


def vec_table_exists(conn: sqlite3.Connection, index_id: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (vec_table_name(index_id),),
    ).fetchone() is not None
