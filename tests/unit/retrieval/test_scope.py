"""Tests for ScopeResolver precedence (workspace > thread > project)."""

from __future__ import annotations

import itertools

import pytest

from citeline.models import RetrievalContext, Scope
from citeline.retrieval.scope import PRECEDENCE, ScopeResolver, resolve


def _ctx(workspace=None, thread=None, project=None):
    return RetrievalContext(
        query="q",
        workspace_index_id=workspace,
        thread_index_id=thread,
        project_index_id=project,
    )


def _expected(workspace, thread, project):
    return workspace or thread or project or None


@pytest.mark.parametrize(
    "workspace,thread,project",
    list(itertools.product([None, "ws_idx"], [None, "th_idx"], [None, "pr_idx"])),
)
def test_resolve_all_presence_combinations(workspace, thread, project):
    assert ScopeResolver().resolve(_ctx(workspace, thread, project)) == _expected(
        workspace, thread, project
    )


def test_workspace_beats_thread():
    assert resolve(_ctx(workspace="W", thread="T")) == "W"


def test_thread_beats_project():
    assert resolve(_ctx(thread="T", project="P")) == "T"


def test_project_only():
    assert resolve(_ctx(project="P")) == "P"


def test_none_present():
    assert resolve(_ctx()) is None


def test_empty_string_is_treated_as_absent():
    assert resolve(_ctx(workspace="", thread="T")) == "T"


def test_resolve_with_scope_reports_tier():
    assert ScopeResolver().resolve_with_scope(_ctx(thread="T", project="P")) == (Scope.THREAD, "T")
    assert ScopeResolver().resolve_with_scope(_ctx()) is None


def test_precedence_order():
    assert PRECEDENCE == (Scope.WORKSPACE, Scope.THREAD, Scope.PROJECT)


def test_resolve_does_not_touch_images_or_fallbacks():
    ctx = _ctx(thread="T")
    ctx.image_urls.append("https://img/1.png")
    ctx.fallback_index_ids.append("other")
    assert resolve(ctx) == "T"
    assert ctx.image_urls == ["https://img/1.png"]
