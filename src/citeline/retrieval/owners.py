"""Owner-record persistence: the nullable ``index_id`` field on each owner.

``OwnerStore`` is the persistence contract the lifecycle manager consumes.
``SqliteOwnerStore`` keeps workspaces, threads and projects in the same
database as the knowledge indexes.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol, runtime_checkable

from citeline.db.connection import Database
from citeline.db.models import OwnerRecord
from citeline.db.repository import Repository
from citeline.errors import OwnerNotFoundError
from citeline.models import RetrievalContext, Scope


@runtime_checkable
class OwnerStore(Protocol):
    """Read/write of one nullable string field on a thread/workspace/project."""

    async def get_index_id(self, scope: Scope, owner_id: str) -> str | None:
        ...

    async def set_index_id(self, scope: Scope, owner_id: str, index_id: str) -> None:
        ...


class SqliteOwnerStore:
    """``OwnerStore`` over the citeline SQLite database."""

    def __init__(self, db_path: Path | str) -> None:
        self._db = Database(db_path)

    # ------------------------------------------------------------------
    # OwnerStore
    # ------------------------------------------------------------------

    async def get_index_id(self, scope: Scope, owner_id: str) -> str | None:
        owner = await self.get(scope, owner_id)
        if owner is None:
            raise OwnerNotFoundError(f"No {scope.value} with id '{owner_id}'")
        return owner.index_id or None

    async def set_index_id(self, scope: Scope, owner_id: str, index_id: str) -> None:
        updated = await self._run(lambda repo: repo.set_owner_index(scope, owner_id, index_id))
        if not updated:
            raise OwnerNotFoundError(f"No {scope.value} with id '{owner_id}'")

    # ------------------------------------------------------------------
    # Record management
    # ------------------------------------------------------------------

    async def add(
        self, scope: Scope, owner_id: str, *, workspace_id: str | None = None
    ) -> OwnerRecord:
        """Create the owner row if missing and return it."""

        def _add(repo: Repository) -> OwnerRecord:
            if workspace_id is not None:
                repo.add_owner(Scope.WORKSPACE, workspace_id)
            repo.add_owner(scope, owner_id, workspace_id=workspace_id)
            return repo.get_owner(scope, owner_id)

        return await self._run(_add)

    async def get(self, scope: Scope, owner_id: str) -> OwnerRecord | None:
        return await self._run(lambda repo: repo.get_owner(scope, owner_id))

    async def touch(self, scope: Scope, owner_id: str) -> None:
        await self._run(lambda repo: repo.touch_owner(scope, owner_id))

    async def build_context(
        self,
        query: str,
        *,
        thread_id: str | None = None,
        workspace_id: str | None = None,
        project_id: str | None = None,
        image_urls: list[str] | None = None,
        fallback_window_minutes: int = 10,
        fallback_limit: int = 5,
    ) -> RetrievalContext:
        """Assemble a ``RetrievalContext`` from the owners' persisted index ids.

        A thread's workspace is used when *workspace_id* is not given. Missing
        owners contribute no index id. Fallback ids are the indexes of sibling
        threads with recent uploads.
        """

        def _build(repo: Repository) -> RetrievalContext:
            thread = repo.get_owner(Scope.THREAD, thread_id) if thread_id else None
            ws_id = workspace_id or (thread.workspace_id if thread else None)
            workspace = repo.get_owner(Scope.WORKSPACE, ws_id) if ws_id else None
            project = repo.get_owner(Scope.PROJECT, project_id) if project_id else None
            fallback: list[str] = []
            if fallback_limit > 0 and (thread_id or ws_id):
                fallback = repo.recent_thread_indexes(
                    exclude_thread_id=thread_id,
                    workspace_id=ws_id,
                    window_minutes=fallback_window_minutes,
                    limit=fallback_limit,
                )
            return RetrievalContext(
                query=query,
                workspace_index_id=workspace.index_id if workspace else None,
                thread_index_id=thread.index_id if thread else None,
                project_index_id=project.index_id if project else None,
                image_urls=list(image_urls or []),
                fallback_index_ids=fallback,
            )

        return await self._run(_build)

    # ------------------------------------------------------------------
    # Worker-thread helper (one connection per call)
    # ------------------------------------------------------------------

    async def _run(self, fn):
        def _call():
            conn = self._db.connect(migrate=True)
            try:
                return fn(Repository(conn))
            finally:
                conn.close()

        return await asyncio.to_thread(_call)
