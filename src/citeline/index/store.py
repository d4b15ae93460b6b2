"""Knowledge index store: create an index, upload a document, query by text.

``KnowledgeIndexStore`` is the contract the retrieval components consume.
``SqliteKnowledgeIndexStore`` implements it on SQLite: one sqlite-vec table
per index for dense search, a shared FTS5 table for BM25, fused with
Reciprocal Rank Fusion:

  score(d) = 1 / (k + rank_dense) + 1 / (k + rank_bm25)   k = 60

Blocking database work runs in a worker thread with its own connection.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from citeline.db.connection import Database
from citeline.db.models import Chunk, Document, IndexRecord
from citeline.db.repository import Repository
from citeline.db.vectors import ensure_vec_table, vec_table_exists, vec_table_name
from citeline.errors import IndexNotFoundError, IndexStoreError
from citeline.index.chunking import TextChunker
from citeline.llm import aembed
from citeline.models import RetrievedExcerpt

logger = logging.getLogger(__name__)

_RRF_K = 60
MIN_RESULTS = 1
MAX_RESULTS = 50


@runtime_checkable
class KnowledgeIndexStore(Protocol):
    """Remote-style knowledge index API consumed by the retrieval pipeline."""

    async def create(self, name: str) -> str:
        """Create a new index labelled *name* and return its id."""
        ...

    async def upload(self, index_id: str, file: bytes | str, filename: str) -> None:
        """Attach a document to an index."""
        ...

    async def query(
        self, index_id: str, query_text: str, max_results: int = 10
    ) -> list[RetrievedExcerpt]:
        """Ranked semantic search, best match first."""
        ...


def clamp_results(max_results: int) -> int:
    """Clamp a requested result count into the store's supported range."""
    return min(max(max_results, MIN_RESULTS), MAX_RESULTS)


@dataclass
class ScoredChunk:
    """A retrieved chunk together with its RRF fusion score and per-channel ranks."""

    chunk: Chunk
    rrf_score: float
    dense_rank: int | None = None
    bm25_rank: int | None = None


class SqliteKnowledgeIndexStore:
    """``KnowledgeIndexStore`` backed by a local SQLite + sqlite-vec database.

    Args:
        db_path: Database file (created and migrated on first use).
        embedding_model: LiteLLM embedding model string (provider/model format).
        dimensions: Embedding vector size of *embedding_model*.
        chunker: Splits uploaded documents; defaults to 512-token windows.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        embedding_model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        chunker: TextChunker | None = None,
    ) -> None:
        self._db = Database(db_path)
        self.embedding_model = embedding_model
        self.dimensions = dimensions
        self._chunker = chunker or TextChunker()

    # ------------------------------------------------------------------
    # KnowledgeIndexStore
    # ------------------------------------------------------------------

    async def create(self, name: str) -> str:
        if not name:
            raise ValueError("Index name is required")
        index_id = f"vs_{uuid.uuid4().hex}"
        await self._run(self._create_sync, index_id, name)
        logger.info("Created knowledge index %s (%s)", index_id, name)
        return index_id

    async def upload(self, index_id: str, file: bytes | str, filename: str) -> None:
        if not index_id or not filename:
            raise ValueError("Index id and filename are required")
        text = file.decode("utf-8", errors="replace") if isinstance(file, bytes) else file
        content_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()

        if not await self._run(self._index_exists_sync, index_id):
            raise IndexNotFoundError(f"Unknown knowledge index '{index_id}'")
        if await self._run(self._has_document_sync, index_id, content_hash):
            logger.info("Skipping %s: identical content already in %s", filename, index_id)
            return

        segments = self._chunker.split(text)
        if not segments:
            logger.info("Skipping %s: no text content", filename)
            return

        embeddings = await self._embed(segments)
        await self._run(
            self._write_document_sync, index_id, filename, content_hash, segments, embeddings
        )
        logger.info("Uploaded %s to %s (%d chunks)", filename, index_id, len(segments))

    async def query(
        self, index_id: str, query_text: str, max_results: int = 10
    ) -> list[RetrievedExcerpt]:
        if not index_id:
            raise ValueError("Index id is required")
        if not query_text or not isinstance(query_text, str):
            raise ValueError("Query is required and must be a string")
        limit = clamp_results(max_results)

        if not await self._run(self._index_exists_sync, index_id):
            raise IndexNotFoundError(f"Unknown knowledge index '{index_id}'")

        [query_embedding] = await self._embed([query_text])
        return await self._run(self._search_sync, index_id, query_text, query_embedding, limit)

    async def exists(self, index_id: str) -> bool:
        return await self._run(self._index_exists_sync, index_id)

    # ------------------------------------------------------------------
    # Worker-thread helpers (one connection per call)
    # ------------------------------------------------------------------

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(self._with_repo, fn, *args)
        except sqlite3.Error as exc:
            raise IndexStoreError(f"Index database error: {exc}") from exc

    def _with_repo(self, fn, *args):
        conn = self._db.connect(migrate=True)
        try:
            return fn(Repository(conn), *args)
        finally:
            conn.close()

    def _create_sync(self, repo: Repository, index_id: str, name: str) -> None:
        record = IndexRecord(
            id=index_id,
            name=name,
            embedding_model=self.embedding_model,
            dimensions=self.dimensions,
        )
        repo.add_index(record, commit=False)
        ensure_vec_table(repo.conn, index_id, self.dimensions, commit=False)
        repo.conn.commit()

    @staticmethod
    def _index_exists_sync(repo: Repository, index_id: str) -> bool:
        return repo.get_index(index_id) is not None

    @staticmethod
    def _has_document_sync(repo: Repository, index_id: str, content_hash: str) -> bool:
        return repo.get_document_by_hash(index_id, content_hash) is not None

    def _write_document_sync(
        self,
        repo: Repository,
        index_id: str,
        filename: str,
        content_hash: str,
        segments: list[str],
        embeddings: list[list[float]],
    ) -> None:
        record = repo.get_index(index_id)
        if record is None:
            raise IndexNotFoundError(f"Unknown knowledge index '{index_id}'")
        vec_table = ensure_vec_table(repo.conn, index_id, record.dimensions)

        document_id = uuid.uuid4().hex
        try:
            repo.add_document(
                Document(
                    id=document_id,
                    index_id=index_id,
                    filename=filename,
                    content_hash=content_hash,
                ),
                commit=False,
            )
            for i, (segment, embedding) in enumerate(zip(segments, embeddings)):
                rowid = repo.add_chunk(
                    Chunk(index_id=index_id, document_id=document_id, chunk_index=i, text=segment),
                    commit=False,
                )
                repo.add_embedding(vec_table, rowid, embedding, commit=False)
            repo.conn.commit()
        except Exception:
            repo.conn.rollback()
            raise

    def _search_sync(
        self,
        repo: Repository,
        index_id: str,
        query_text: str,
        query_embedding: list[float],
        limit: int,
    ) -> list[RetrievedExcerpt]:
        dense: list[tuple[Chunk, float]] = []
        if vec_table_exists(repo.conn, index_id):
            dense = repo.search_vec(vec_table_name(index_id), query_embedding, limit=limit)
        bm25 = repo.search_fts(index_id, query_text, limit=limit)
        fused = rrf_fuse(dense, bm25, top_k=limit)
        return [
            RetrievedExcerpt(
                text=sc.chunk.text,
                source_ref=repo.source_ref(sc.chunk),
                score=sc.rrf_score,
            )
            for sc in fused
        ]

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        try:
            return await aembed(self.embedding_model, texts)
        except Exception as exc:
            raise IndexStoreError(f"Embedding failed for model '{self.embedding_model}': {exc}") from exc


# ------------------------------------------------------------------
# RRF fusion
# ------------------------------------------------------------------


def rrf_fuse(
    dense_results: list[tuple[Chunk, float]],
    bm25_results: list[tuple[Chunk, float]],
    top_k: int,
) -> list[ScoredChunk]:
    """Combine dense and BM25 ranked lists via Reciprocal Rank Fusion.

    score(d) = 1/(k + rank_dense) + 1/(k + rank_bm25)   k = 60
    A chunk missing from one channel gets rank len(channel) + k there.
    """
    dense_rank: dict[int, int] = {}
    for i, (chunk, _) in enumerate(dense_results):
        if chunk.rowid is not None:
            dense_rank[chunk.rowid] = i + 1

    bm25_rank: dict[int, int] = {}
    for i, (chunk, _) in enumerate(bm25_results):
        if chunk.rowid is not None:
            bm25_rank[chunk.rowid] = i + 1

    chunk_map: dict[int, Chunk] = {}
    for chunk, _ in dense_results + bm25_results:
        if chunk.rowid is not None and chunk.rowid not in chunk_map:
            chunk_map[chunk.rowid] = chunk

    scored: list[ScoredChunk] = []
    n_dense = len(dense_results)
    n_bm25 = len(bm25_results)

    for rowid, chunk in chunk_map.items():
        dr = dense_rank.get(rowid, n_dense + _RRF_K)
        br = bm25_rank.get(rowid, n_bm25 + _RRF_K)
        score = 1.0 / (_RRF_K + dr) + 1.0 / (_RRF_K + br)
        scored.append(
            ScoredChunk(
                chunk=chunk,
                rrf_score=score,
                dense_rank=dense_rank.get(rowid),
                bm25_rank=bm25_rank.get(rowid),
            )
        )

    scored.sort(key=lambda s: s.rrf_score, reverse=True)
    return scored[:top_k]
