"""CLI fixtures: run every command inside an isolated project directory."""

from __future__ import annotations

import pytest

from citeline.cli.common import console


@pytest.fixture(autouse=True)
def project_dir(tmp_path, monkeypatch):
    """chdir into tmp_path and point the global config at a file inside it."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("citeline.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    # wide enough that table cells are never wrapped
    monkeypatch.setattr(console, "width", 200)
    return tmp_path
