"""Knowledge index storage: chunking, embedding and hybrid search."""

from citeline.index.chunking import TextChunker
from citeline.index.store import KnowledgeIndexStore, SqliteKnowledgeIndexStore

__all__ = ["KnowledgeIndexStore", "SqliteKnowledgeIndexStore", "TextChunker"]
