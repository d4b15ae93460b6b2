"""Tests for citeline rich error messages."""

from __future__ import annotations

import pytest

from citeline.cli.errors import (
    err_bad_scope,
    err_config,
    err_file_not_found,
    err_index_not_found,
    err_index_unavailable,
    err_no_api_key,
    err_no_db,
    err_owner_not_found,
    err_sources_unreadable,
)


def _has_action(msg: str) -> bool:
    """Every error must name an actionable instruction."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "set:", "use one of:", "fix ", "check ", "re-run", "pass "])


ALL_MESSAGES = [
    err_no_api_key("openai"),
    err_no_db(),
    err_config("bad value"),
    err_bad_scope("team"),
    err_owner_not_found("thread", "t1"),
    err_index_unavailable("thread", "t1"),
    err_index_not_found("vs_x"),
    err_file_not_found("missing.txt"),
    err_sources_unreadable("s.json", "not utf-8"),
]


@pytest.mark.parametrize("msg", ALL_MESSAGES)
def test_every_error_is_marked_and_actionable(msg):
    assert msg.startswith("[red]Error:[/]")
    assert _has_action(msg)


def test_err_no_api_key_known_provider_env_var():
    msg = err_no_api_key("openai")
    assert "'openai'" in msg
    assert "OPENAI_API_KEY" in msg


def test_err_no_api_key_unknown_provider_fallback():
    assert "MYPROVIDER_API_KEY" in err_no_api_key("myprovider")


def test_err_no_db_mentions_path_and_init():
    msg = err_no_db("data/x.db")
    assert "data/x.db" in msg
    assert "citeline init" in msg


def test_err_owner_not_found_suggests_owner_add():
    assert "citeline owner add thread t1" in err_owner_not_found("thread", "t1")


def test_err_bad_scope_lists_choices():
    msg = err_bad_scope("team")
    assert "'team'" in msg
    assert "workspace, thread, project" in msg


def test_err_index_not_found_mentions_status():
    assert "citeline status" in err_index_not_found("vs_x")
