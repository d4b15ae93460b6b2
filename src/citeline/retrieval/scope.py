"""Scope resolution: pick the one knowledge index a turn is grounded against.

Precedence is fixed: workspace, then thread, then project. Workspace
knowledge is curated and shared across threads; thread knowledge holds the
files uploaded to this conversation; project is the legacy tier.
"""

from __future__ import annotations

from citeline.models import RetrievalContext, Scope

PRECEDENCE: tuple[Scope, ...] = (Scope.WORKSPACE, Scope.THREAD, Scope.PROJECT)


def _index_id_for(context: RetrievalContext, scope: Scope) -> str | None:
    if scope is Scope.WORKSPACE:
        return context.workspace_index_id
    if scope is Scope.THREAD:
        return context.thread_index_id
    return context.project_index_id


class ScopeResolver:
    """Pure, synchronous selection of the index id to query."""

    def resolve_with_scope(self, context: RetrievalContext) -> tuple[Scope, str] | None:
        """Return ``(scope, index_id)`` of the winning tier, or None."""
        for scope in PRECEDENCE:
            index_id = _index_id_for(context, scope)
            if index_id:
                return scope, index_id
        return None

    def resolve(self, context: RetrievalContext) -> str | None:
        """Return the first non-empty index id in precedence order, or None."""
        winner = self.resolve_with_scope(context)
        return winner[1] if winner else None


def resolve(context: RetrievalContext) -> str | None:
    return ScopeResolver().resolve(context)
