"""Tests for citeline status and the version flags."""

from __future__ import annotations

from typer.testing import CliRunner

from citeline.cli.main import app

runner = CliRunner()


def _init(project_dir):
    result = runner.invoke(
        app, ["init", str(project_dir), "--global-config", str(project_dir / "g.yaml")]
    )
    assert result.exit_code == 0, result.output


# ---------------------------------------------------------------------------
# --version / version
# ---------------------------------------------------------------------------


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("citeline ")


def test_version_command():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "citeline" in result.output


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


def test_status_without_database():
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "No database found" in result.output
    assert "citeline init" in result.output


def test_status_shows_project_panel():
    result = runner.invoke(app, ["status"])
    assert "openai/text-embedding-3-small" in result.output
    assert "openai/gpt-4o" in result.output


def test_status_empty_database(project_dir):
    _init(project_dir)
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "No knowledge indexes yet" in result.output
    assert "Threads:" in result.output


def test_status_lists_indexes_and_owner_counts(project_dir):
    _init(project_dir)
    assert runner.invoke(app, ["owner", "add", "thread", "t1", "-w", "w1"]).exit_code == 0
    assert runner.invoke(app, ["ensure", "thread", "t1"]).exit_code == 0

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "Thread-t1" in result.output
    assert "(1 with index)" in result.output
    assert "(0 with index)" in result.output


def test_status_respects_db_option(project_dir):
    _init(project_dir)
    result = runner.invoke(app, ["status", "--db", str(project_dir / "other.db")])
    assert "No database found" in result.output
