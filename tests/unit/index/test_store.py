"""Tests for SqliteKnowledgeIndexStore (create / upload / query) and RRF fusion."""

from __future__ import annotations

import sqlite3
from unittest.mock import AsyncMock, patch

import pytest

from citeline.db.connection import Database
from citeline.db.models import Chunk
from citeline.db.repository import Repository
from citeline.db.vectors import vec_table_exists
from citeline.errors import IndexNotFoundError, IndexStoreError
from citeline.index.chunking import TextChunker
from citeline.index.store import (
    MAX_RESULTS,
    KnowledgeIndexStore,
    SqliteKnowledgeIndexStore,
    clamp_results,
    rrf_fuse,
)

_KEYWORDS = ("alpha", "beta", "gamma")


async def _fake_embed(model, texts, num_retries=2):
    """4-dim vectors: one axis per keyword plus a constant axis."""
    return [[float(k in t.lower()) for k in _KEYWORDS] + [1.0] for t in texts]


@pytest.fixture
def store(db_path):
    return SqliteKnowledgeIndexStore(db_path, dimensions=4, chunker=TextChunker(chunk_size=512))


@pytest.fixture
def fake_embed():
    with patch("citeline.index.store.aembed", new=AsyncMock(side_effect=_fake_embed)) as mock_e:
        yield mock_e


def _repo_counts(db_path, index_id):
    with Database(db_path) as conn:
        repo = Repository(conn)
        return repo.count_documents(index_id), repo.count_chunks(index_id)


# ------------------------------------------------------------------
# Protocol / helpers
# ------------------------------------------------------------------


def test_sqlite_store_satisfies_protocol(store):
    assert isinstance(store, KnowledgeIndexStore)


@pytest.mark.parametrize("requested,expected", [(0, 1), (-5, 1), (10, 10), (50, 50), (51, 50), (999, MAX_RESULTS)])
def test_clamp_results(requested, expected):
    assert clamp_results(requested) == expected


# ------------------------------------------------------------------
# create
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_returns_new_id(store, db_path):
    index_id = await store.create("Thread-1")
    assert index_id.startswith("vs_")
    assert await store.exists(index_id)
    with Database(db_path) as conn:
        record = Repository(conn).get_index(index_id)
        assert record.name == "Thread-1"
        assert record.dimensions == 4
        assert vec_table_exists(conn, index_id)


@pytest.mark.asyncio
async def test_create_twice_gives_distinct_ids(store):
    assert await store.create("Thread-1") != await store.create("Thread-1")


@pytest.mark.asyncio
async def test_create_requires_name(store):
    with pytest.raises(ValueError):
        await store.create("")


@pytest.mark.asyncio
async def test_create_leaves_no_record_when_vec_table_fails(store, db_path):
    failing = patch(
        "citeline.index.store.ensure_vec_table",
        side_effect=sqlite3.OperationalError("disk I/O error"),
    )
    with failing, pytest.raises(IndexStoreError):
        await store.create("Thread-1")
    with Database(db_path) as conn:
        assert Repository(conn).list_indexes() == []


@pytest.mark.asyncio
async def test_exists_false_for_unknown(store):
    assert await store.exists("vs_missing") is False


# ------------------------------------------------------------------
# upload
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_upload_writes_document_and_chunks(store, db_path, fake_embed):
    index_id = await store.create("Thread-1")
    await store.upload(index_id, b"alpha particles and beta decay", "physics.txt")
    assert _repo_counts(db_path, index_id) == (1, 1)


@pytest.mark.asyncio
async def test_upload_accepts_str(store, db_path, fake_embed):
    index_id = await store.create("Thread-1")
    await store.upload(index_id, "gamma rays", "rays.txt")
    assert _repo_counts(db_path, index_id) == (1, 1)


@pytest.mark.asyncio
async def test_upload_duplicate_content_skipped(store, db_path, fake_embed):
    index_id = await store.create("Thread-1")
    await store.upload(index_id, b"alpha", "a.txt")
    await store.upload(index_id, b"alpha", "a-copy.txt")
    assert _repo_counts(db_path, index_id) == (1, 1)
    assert fake_embed.await_count == 1


@pytest.mark.asyncio
async def test_upload_same_content_to_two_indexes(store, db_path, fake_embed):
    first = await store.create("Thread-1")
    second = await store.create("Thread-2")
    await store.upload(first, b"alpha", "a.txt")
    await store.upload(second, b"alpha", "a.txt")
    assert _repo_counts(db_path, second) == (1, 1)


@pytest.mark.asyncio
async def test_upload_empty_file_is_noop(store, db_path, fake_embed):
    index_id = await store.create("Thread-1")
    await store.upload(index_id, b"   ", "blank.txt")
    assert _repo_counts(db_path, index_id) == (0, 0)
    fake_embed.assert_not_awaited()


@pytest.mark.asyncio
async def test_upload_unknown_index(store, fake_embed):
    with pytest.raises(IndexNotFoundError):
        await store.upload("vs_missing", b"alpha", "a.txt")


@pytest.mark.asyncio
async def test_upload_embedding_failure_writes_nothing(store, db_path):
    index_id = await store.create("Thread-1")
    with patch("citeline.index.store.aembed", new=AsyncMock(side_effect=RuntimeError("rate limited"))):
        with pytest.raises(IndexStoreError, match="Embedding failed"):
            await store.upload(index_id, b"alpha", "a.txt")
    assert _repo_counts(db_path, index_id) == (0, 0)


@pytest.mark.asyncio
async def test_upload_splits_long_documents(db_path, fake_embed):
    store = SqliteKnowledgeIndexStore(
        db_path, dimensions=4, chunker=TextChunker(chunk_size=4, overlap=0.0)
    )
    index_id = await store.create("Thread-1")
    await store.upload(index_id, b"alpha alpha alpha alpha beta beta beta beta", "long.txt")
    documents, chunks = _repo_counts(db_path, index_id)
    assert documents == 1
    assert chunks > 1


# ------------------------------------------------------------------
# query
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_query_returns_best_match_first(store, fake_embed):
    index_id = await store.create("Thread-1")
    await store.upload(index_id, b"notes about gamma radiation", "gamma.txt")
    await store.upload(index_id, b"notes about alpha decay", "alpha.txt")

    results = await store.query(index_id, "alpha")
    assert results[0].source_ref == "alpha.txt"
    assert results[0].text == "notes about alpha decay"
    assert results[0].score >= results[-1].score


@pytest.mark.asyncio
async def test_query_is_scoped_to_index(store, fake_embed):
    first = await store.create("Thread-1")
    second = await store.create("Thread-2")
    await store.upload(first, b"alpha in the first index", "one.txt")
    await store.upload(second, b"alpha in the second index", "two.txt")

    results = await store.query(second, "alpha")
    assert {r.source_ref for r in results} == {"two.txt"}


@pytest.mark.asyncio
async def test_query_clamps_max_results(store, fake_embed):
    index_id = await store.create("Thread-1")
    await store.upload(index_id, b"alpha one", "1.txt")
    await store.upload(index_id, b"alpha two", "2.txt")
    assert len(await store.query(index_id, "alpha", max_results=0)) == 1


@pytest.mark.asyncio
async def test_query_empty_index_returns_empty(store, fake_embed):
    index_id = await store.create("Thread-1")
    assert await store.query(index_id, "alpha") == []


@pytest.mark.asyncio
async def test_query_unknown_index(store, fake_embed):
    with pytest.raises(IndexNotFoundError):
        await store.query("vs_missing", "alpha")


@pytest.mark.asyncio
async def test_query_requires_text(store):
    with pytest.raises(ValueError):
        await store.query("vs_any", "")


# ------------------------------------------------------------------
# rrf_fuse
# ------------------------------------------------------------------


def _c(rowid):
    return Chunk(index_id="vs_1", document_id="d", chunk_index=rowid, text=f"t{rowid}", rowid=rowid)


def test_rrf_fuse_rewards_agreement():
    dense = [(_c(1), 0.1), (_c(2), 0.2)]
    bm25 = [(_c(2), -3.0), (_c(3), -1.0)]
    fused = rrf_fuse(dense, bm25, top_k=3)
    assert fused[0].chunk.rowid == 2
    assert fused[0].dense_rank == 2 and fused[0].bm25_rank == 1


def test_rrf_fuse_respects_top_k():
    dense = [(_c(i), float(i)) for i in range(1, 6)]
    assert len(rrf_fuse(dense, [], top_k=2)) == 2


def test_rrf_fuse_empty():
    assert rrf_fuse([], [], top_k=5) == []
