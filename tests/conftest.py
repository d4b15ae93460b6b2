"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from citeline.db.connection import Database
from citeline.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".citeline.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def db_path(tmp_path):
    """Path of an initialized, closed database for components that open their own connections."""
    path = tmp_path / ".citeline.db"
    with Database(path) as conn:
        initialize(conn)
    return path


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep developer CITELINE_* overrides out of the tests."""
    for var in (
        "CITELINE_GENERATION_MODEL",
        "CITELINE_VISION_MODEL",
        "CITELINE_EMBEDDING_MODEL",
        "CITELINE_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
