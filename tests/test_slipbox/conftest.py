"""Shared fixtures for the slipbox tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from slipbox.db import IndexStore


@pytest.fixture()
def root(tmp_path: Path) -> Path:
    """An empty note tree."""
    path = tmp_path / "zettelkasten"
    path.mkdir()
    return path


@pytest.fixture()
def store() -> Iterator[IndexStore]:
    """An initialised in-memory index."""
    s = IndexStore.open()
    yield s
    s.close()


@pytest.fixture()
def file_store(root: Path) -> Iterator[IndexStore]:
    """An initialised index stored inside the note tree, as the CLI keeps it."""
    s = IndexStore.open(root / ".slipbox.db")
    yield s
    s.close()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the user's configuration and environment out of every test."""
    for var in ("SLIPBOX_CONFIG", "SLIPBOX_ROOT", "XDG_CONFIG_HOME"):
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
