"""citeline database layer."""

from citeline.db.connection import Database
from citeline.db.migrations import MIGRATIONS, run_migrations
from citeline.db.schema import initialize
from citeline.db.vectors import ensure_vec_table, to_slug, vec_table_exists, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "to_slug",
    "vec_table_exists",
    "vec_table_name",
]
