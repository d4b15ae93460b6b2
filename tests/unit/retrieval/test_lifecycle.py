"""Tests for IndexLifecycleManager.ensure (lazy, persisted, fail-soft)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from citeline.index.store import SqliteKnowledgeIndexStore
from citeline.models import Scope
from citeline.retrieval.lifecycle import IndexLifecycleManager, index_name
from citeline.retrieval.owners import SqliteOwnerStore


class MemoryOwners:
    """In-memory OwnerStore."""

    def __init__(self, initial=None):
        self.fields = dict(initial or {})
        self.set_calls = []

    async def get_index_id(self, scope, owner_id):
        return self.fields.get((scope, owner_id))

    async def set_index_id(self, scope, owner_id, index_id):
        self.set_calls.append((scope, owner_id, index_id))
        self.fields[(scope, owner_id)] = index_id


def _store(index_id="vs_new"):
    store = AsyncMock()
    store.create = AsyncMock(return_value=index_id)
    return store


@pytest.mark.parametrize("scope,expected", [
    (Scope.THREAD, "Thread-42"),
    (Scope.WORKSPACE, "Workspace-42"),
    (Scope.PROJECT, "Project-42"),
])
def test_index_name(scope, expected):
    assert index_name(scope, "42") == expected


@pytest.mark.asyncio
async def test_ensure_creates_and_persists_on_first_use():
    store, owners = _store(), MemoryOwners()
    manager = IndexLifecycleManager(store, owners)

    index = await manager.ensure(Scope.THREAD, "42")

    assert index.id == "vs_new"
    assert index.scope is Scope.THREAD
    assert index.owner_id == "42"
    assert index.created_at is not None
    store.create.assert_awaited_once_with("Thread-42")
    assert owners.set_calls == [(Scope.THREAD, "42", "vs_new")]


@pytest.mark.asyncio
async def test_ensure_twice_creates_once():
    store, owners = _store(), MemoryOwners()
    manager = IndexLifecycleManager(store, owners)

    first = await manager.ensure(Scope.THREAD, "42")
    second = await manager.ensure(Scope.THREAD, "42")

    assert first.id == second.id == "vs_new"
    assert store.create.await_count == 1
    assert second.created_at is None


@pytest.mark.asyncio
async def test_ensure_existing_index_makes_no_store_call():
    store = _store()
    owners = MemoryOwners({(Scope.WORKSPACE, "w1"): "vs_existing"})

    index = await IndexLifecycleManager(store, owners).ensure(Scope.WORKSPACE, "w1")

    assert index.id == "vs_existing"
    store.create.assert_not_awaited()
    assert owners.set_calls == []


@pytest.mark.asyncio
async def test_ensure_accepts_scope_string():
    index = await IndexLifecycleManager(_store(), MemoryOwners()).ensure("project", "p1")
    assert index.scope is Scope.PROJECT


@pytest.mark.asyncio
async def test_ensure_create_failure_returns_none_and_leaves_field_empty():
    store = _store()
    store.create.side_effect = RuntimeError("service down")
    owners = MemoryOwners()

    assert await IndexLifecycleManager(store, owners).ensure(Scope.THREAD, "42") is None
    assert owners.fields == {}


@pytest.mark.asyncio
async def test_ensure_lookup_failure_returns_none():
    owners = MemoryOwners()
    owners.get_index_id = AsyncMock(side_effect=RuntimeError("db locked"))
    store = _store()

    assert await IndexLifecycleManager(store, owners).ensure(Scope.THREAD, "42") is None
    store.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_persist_failure_returns_none():
    owners = MemoryOwners()
    owners.set_index_id = AsyncMock(side_effect=RuntimeError("write failed"))

    assert await IndexLifecycleManager(_store(), owners).ensure(Scope.THREAD, "42") is None


@pytest.mark.asyncio
async def test_ensure_timeout_returns_none():
    async def _slow_create(name):
        await asyncio.sleep(1)
        return "vs_late"

    store = _store()
    store.create = AsyncMock(side_effect=_slow_create)
    owners = MemoryOwners()
    manager = IndexLifecycleManager(store, owners, timeout_seconds=0.01)

    assert await manager.ensure(Scope.THREAD, "42") is None
    assert owners.fields == {}


@pytest.mark.asyncio
async def test_ensure_bad_scope_or_owner_returns_none():
    manager = IndexLifecycleManager(_store(), MemoryOwners())
    assert await manager.ensure("team", "1") is None
    assert await manager.ensure(Scope.THREAD, "") is None


@pytest.mark.asyncio
async def test_ensure_with_sqlite_collaborators(db_path):
    owners = SqliteOwnerStore(db_path)
    await owners.add(Scope.THREAD, "t1")
    store = SqliteKnowledgeIndexStore(db_path, dimensions=4)
    manager = IndexLifecycleManager(store, owners)

    first = await manager.ensure(Scope.THREAD, "t1")
    second = await manager.ensure(Scope.THREAD, "t1")

    assert first is not None
    assert second.id == first.id
    assert await owners.get_index_id(Scope.THREAD, "t1") == first.id
    assert await store.exists(first.id)


@pytest.mark.asyncio
async def test_ensure_unknown_owner_in_sqlite_returns_none(db_path):
    manager = IndexLifecycleManager(
        SqliteKnowledgeIndexStore(db_path, dimensions=4), SqliteOwnerStore(db_path)
    )
    assert await manager.ensure(Scope.THREAD, "ghost") is None
