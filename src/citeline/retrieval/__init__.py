"""Scope resolution, index lifecycle and retrieval injection."""

from citeline.retrieval.injector import RetrievalInjector
from citeline.retrieval.lifecycle import IndexLifecycleManager, index_name
from citeline.retrieval.owners import OwnerStore, SqliteOwnerStore
from citeline.retrieval.scope import ScopeResolver

__all__ = [
    "IndexLifecycleManager",
    "OwnerStore",
    "RetrievalInjector",
    "ScopeResolver",
    "SqliteOwnerStore",
    "index_name",
]
