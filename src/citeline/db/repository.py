"""Repository pattern for all citeline database operations.

Single interface for: knowledge indexes, documents, chunks, FTS5 search,
vec embeddings, and owner records (workspaces, threads, projects).
Vec tables are index-managed (ensure_vec_table); repository handles read + write.
"""

from __future__ import annotations

import json
import re
import sqlite3

from citeline.db.models import Chunk, Document, IndexRecord, OwnerRecord
from citeline.models import Scope

_OWNER_TABLES: dict[Scope, str] = {
    Scope.WORKSPACE: "workspaces",
    Scope.THREAD: "threads",
    Scope.PROJECT: "projects",
}


class Repository:
    """Data access layer for all citeline database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see citeline.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Knowledge indexes
    # ------------------------------------------------------------------

    def add_index(self, record: IndexRecord, *, commit: bool = True) -> None:
        self._conn.execute(
            """
            INSERT INTO knowledge_indexes (id, name, embedding_model, dimensions)
            VALUES (?, ?, ?, ?)
            """,
            (record.id, record.name, record.embedding_model, record.dimensions),
        )
        if commit:
            self._conn.commit()

    def get_index(self, index_id: str) -> IndexRecord | None:
        row = self._conn.execute(
            "SELECT id, name, embedding_model, dimensions, created_at "
            "FROM knowledge_indexes WHERE id = ?",
            (index_id,),
        ).fetchone()
        return _row_to_index(row) if row else None

    def list_indexes(self) -> list[IndexRecord]:
        """Return all knowledge indexes ordered by creation time (oldest first)."""
        rows = self._conn.execute(
            "SELECT id, name, embedding_model, dimensions, created_at "
            "FROM knowledge_indexes ORDER BY created_at, rowid"
        ).fetchall()
        return [_row_to_index(r) for r in rows]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, document: Document, *, commit: bool = True) -> None:
        self._conn.execute(
            """
            INSERT INTO documents (id, index_id, filename, content_hash)
            VALUES (?, ?, ?, ?)
            """,
            (document.id, document.index_id, document.filename, document.content_hash),
        )
        if commit:
            self._conn.commit()

    def get_document_by_hash(self, index_id: str, content_hash: str) -> Document | None:
        """Return the document in *index_id* with *content_hash*, or None."""
        row = self._conn.execute(
            "SELECT id, index_id, filename, content_hash, created_at FROM documents "
            "WHERE index_id = ? AND content_hash = ?",
            (index_id, content_hash),
        ).fetchone()
        return _row_to_document(row) if row else None

    def count_documents(self, index_id: str | None = None) -> int:
        if index_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM documents WHERE index_id = ?", (index_id,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk, *, commit: bool = True) -> int:
        """Insert chunk + sync FTS5 index. Returns the new rowid."""
        cur = self._conn.execute(
            """
            INSERT INTO chunks (index_id, document_id, chunk_index, text)
            VALUES (?, ?, ?, ?)
            """,
            (chunk.index_id, chunk.document_id, chunk.chunk_index, chunk.text),
        )
        rowid = cur.lastrowid
        # Keep FTS5 in sync with explicit rowid mapping
        self._conn.execute(
            "INSERT INTO chunks_fts(rowid, text) VALUES (?, ?)", (rowid, chunk.text)
        )
        if commit:
            self._conn.commit()
        return rowid

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        row = self._conn.execute(
            """
            SELECT rowid, index_id, document_id, chunk_index, text, created_at
            FROM chunks WHERE rowid = ?
            """,
            (rowid,),
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def count_chunks(self, index_id: str | None = None) -> int:
        if index_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE index_id = ?", (index_id,)
        ).fetchone()[0]

    def source_ref(self, chunk: Chunk) -> str:
        """Return the filename of the document *chunk* came from."""
        row = self._conn.execute(
            "SELECT filename FROM documents WHERE id = ?", (chunk.document_id,)
        ).fetchone()
        return row["filename"] if row else chunk.document_id

    # ------------------------------------------------------------------
    # Vec embeddings
    # ------------------------------------------------------------------

    def add_embedding(
        self, table: str, rowid: int, embedding: list[float], *, commit: bool = True
    ) -> None:
        """Insert an embedding into a vec table with explicit rowid = chunk rowid."""
        self._conn.execute(
            f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)",
            (rowid, json.dumps(embedding)),
        )
        if commit:
            self._conn.commit()

    def search_vec(
        self, table: str, embedding: list[float], limit: int = 10
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search. Returns (chunk, distance) sorted by distance."""
        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? AND k = ? ORDER BY distance",
            (json.dumps(embedding), limit),
        ).fetchall()

        results: list[tuple[Chunk, float]] = []
        for vec_row in vec_rows:
            chunk = self.get_chunk_by_rowid(vec_row["rowid"])
            if chunk is not None:
                results.append((chunk, vec_row["distance"]))
        return results

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(self, index_id: str, query: str, limit: int = 10) -> list[tuple[Chunk, float]]:
        """BM25 full-text search within one index. Returns (chunk, score) best-first.

        bm25() returns negative values; lower (more negative) = better match.
        """
        # FTS5 MATCH rejects punctuation like commas as syntax errors.
        terms = re.sub(r"[^\w\s]", " ", query).split()
        if not terms:
            return []
        fts_query = " OR ".join(f'"{t}"' for t in terms)
        fts_rows = self._conn.execute(
            """
            SELECT chunks_fts.rowid AS rowid, bm25(chunks_fts) AS score
            FROM chunks_fts JOIN chunks ON chunks.rowid = chunks_fts.rowid
            WHERE chunks_fts MATCH ? AND chunks.index_id = ?
            ORDER BY score LIMIT ?
            """,
            (fts_query, index_id, limit),
        ).fetchall()

        results: list[tuple[Chunk, float]] = []
        for fts_row in fts_rows:
            chunk = self.get_chunk_by_rowid(fts_row["rowid"])
            if chunk is not None:
                results.append((chunk, fts_row["score"]))
        return results

    # ------------------------------------------------------------------
    # Owner records
    # ------------------------------------------------------------------

    def add_owner(
        self, scope: Scope, owner_id: str, *, workspace_id: str | None = None
    ) -> None:
        """Insert a workspace, thread or project row (no-op if it exists)."""
        table = _OWNER_TABLES[scope]
        if scope is Scope.THREAD:
            self._conn.execute(
                "INSERT OR IGNORE INTO threads (id, workspace_id) VALUES (?, ?)",
                (owner_id, workspace_id),
            )
        else:
            self._conn.execute(
                f"INSERT OR IGNORE INTO {table} (id) VALUES (?)", (owner_id,)
            )
        self._conn.commit()

    def get_owner(self, scope: Scope, owner_id: str) -> OwnerRecord | None:
        table = _OWNER_TABLES[scope]
        workspace_col = "workspace_id" if scope is Scope.THREAD else "NULL AS workspace_id"
        row = self._conn.execute(
            f"SELECT id, index_id, {workspace_col}, created_at, updated_at "
            f"FROM {table} WHERE id = ?",
            (owner_id,),
        ).fetchone()
        return _row_to_owner(row) if row else None

    def list_owners(self, scope: Scope) -> list[OwnerRecord]:
        table = _OWNER_TABLES[scope]
        workspace_col = "workspace_id" if scope is Scope.THREAD else "NULL AS workspace_id"
        rows = self._conn.execute(
            f"SELECT id, index_id, {workspace_col}, created_at, updated_at "
            f"FROM {table} ORDER BY created_at, id"
        ).fetchall()
        return [_row_to_owner(r) for r in rows]

    def set_owner_index(self, scope: Scope, owner_id: str, index_id: str | None) -> bool:
        """Write the owner's ``index_id`` field. Returns False if the owner is missing."""
        table = _OWNER_TABLES[scope]
        cur = self._conn.execute(
            f"UPDATE {table} SET index_id = ?, updated_at = datetime('now') WHERE id = ?",
            (index_id, owner_id),
        )
        self._conn.commit()
        return cur.rowcount > 0

    def touch_owner(self, scope: Scope, owner_id: str) -> None:
        table = _OWNER_TABLES[scope]
        self._conn.execute(
            f"UPDATE {table} SET updated_at = datetime('now') WHERE id = ?", (owner_id,)
        )
        self._conn.commit()

    def recent_thread_indexes(
        self,
        *,
        exclude_thread_id: str | None,
        workspace_id: str | None,
        window_minutes: int,
        limit: int,
    ) -> list[str]:
        """Index ids of other threads updated within *window_minutes*, newest first.

        When *workspace_id* is given only its threads are considered.
        """
        sql = (
            "SELECT index_id FROM threads "
            "WHERE index_id IS NOT NULL AND index_id != '' "
            "AND updated_at >= datetime('now', ?) AND id != ?"
        )
        params: list[object] = [f"-{int(window_minutes)} minutes", exclude_thread_id or ""]
        if workspace_id is not None:
            sql += " AND workspace_id = ?"
            params.append(workspace_id)
        sql += " ORDER BY updated_at DESC LIMIT ?"
        params.append(limit)
        return [r["index_id"] for r in self._conn.execute(sql, params).fetchall()]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_index(row: sqlite3.Row) -> IndexRecord:
    return IndexRecord(
        id=row["id"],
        name=row["name"],
        embedding_model=row["embedding_model"],
        dimensions=row["dimensions"],
        created_at=row["created_at"],
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        index_id=row["index_id"],
        filename=row["filename"],
        content_hash=row["content_hash"],
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        index_id=row["index_id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        created_at=row["created_at"],
    )


def _row_to_owner(row: sqlite3.Row) -> OwnerRecord:
    return OwnerRecord(
        id=row["id"],
        index_id=row["index_id"],
        workspace_id=row["workspace_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
