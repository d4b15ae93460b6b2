"""Row models for the citeline database layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class IndexRecord:
    id: str
    name: str
    embedding_model: str
    dimensions: int
    created_at: str | None = None


@dataclass
class Document:
    id: str
    index_id: str
    filename: str
    content_hash: str
    created_at: str | None = None


@dataclass
class Chunk:
    index_id: str
    document_id: str
    chunk_index: int
    text: str
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks


@dataclass
class OwnerRecord:
    """A workspace, thread or project row; only ``index_id`` matters to retrieval."""

    id: str
    index_id: str | None = None
    workspace_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
