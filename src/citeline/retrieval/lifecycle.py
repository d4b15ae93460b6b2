"""Index lifecycle: make sure a scope owns a knowledge index before first use.

``ensure()`` reads the owner's persisted index id and only creates a new
index when the field is empty, writing the new id back straight away.

Idempotency is best-effort. Two ``ensure()`` calls racing on the same owner
can both see an empty field and both create a remote index; the later
write wins and the other index is orphaned. Every call that starts after a
successful write returns the persisted id without touching the store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import TypeVar

from citeline.errors import IndexUnavailable
from citeline.index.store import KnowledgeIndexStore
from citeline.models import KnowledgeIndex, Scope
from citeline.retrieval.owners import OwnerStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def index_name(scope: Scope, owner_id: str) -> str:
    """Deterministic, human-readable index label, e.g. ``Thread-42``."""
    return f"{scope.label}-{owner_id}"


class IndexLifecycleManager:
    """Lazily creates one knowledge index per (scope, owner).

    Args:
        store: Index store used to create indexes.
        owners: Persistence of the owner's ``index_id`` field.
        timeout_seconds: Bound on each collaborator call; None disables it.
    """

    def __init__(
        self,
        store: KnowledgeIndexStore,
        owners: OwnerStore,
        *,
        timeout_seconds: float | None = 5.0,
    ) -> None:
        self._store = store
        self._owners = owners
        self._timeout = timeout_seconds

    async def ensure(self, scope: Scope | str, owner_id: str) -> KnowledgeIndex | None:
        """Return the owner's index, creating it on first use.

        Returns None when the index cannot be looked up or created; callers
        treat that as "no grounding available for this scope".
        """
        try:
            scope = Scope.parse(scope)
            return await self._ensure(scope, owner_id)
        except (IndexUnavailable, ValueError) as exc:
            logger.warning("No knowledge index for %s %s: %s", scope, owner_id, exc)
            return None

    async def _ensure(self, scope: Scope, owner_id: str) -> KnowledgeIndex:
        if not owner_id:
            raise IndexUnavailable("owner id is empty")

        try:
            existing = await self._bounded(self._owners.get_index_id(scope, owner_id))
        except Exception as exc:
            raise IndexUnavailable(f"owner lookup failed: {exc!r}") from exc

        if existing:
            logger.debug("Using existing index %s for %s %s", existing, scope.value, owner_id)
            return KnowledgeIndex(id=existing, scope=scope, owner_id=owner_id)

        name = index_name(scope, owner_id)
        try:
            index_id = await self._bounded(self._store.create(name))
        except Exception as exc:
            raise IndexUnavailable(f"index creation failed: {exc!r}") from exc
        created_at = datetime.now(timezone.utc)

        try:
            await self._bounded(self._owners.set_index_id(scope, owner_id, index_id))
        except Exception as exc:
            logger.error("Created index %s but could not persist it on %s %s", index_id, scope.value, owner_id)
            raise IndexUnavailable(f"persisting index id failed: {exc!r}") from exc

        logger.info("Created index %s (%s)", index_id, name)
        return KnowledgeIndex(id=index_id, scope=scope, owner_id=owner_id, created_at=created_at)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        if self._timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self._timeout)
