"""Shared pytest fixtures for depusage tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from depusage.core.config import Settings
from depusage.engine.usage import usage_patterns


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Create *files* (relative path -> content) under *root*; returns the resolved root."""
    for rel, content in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    return root.resolve()


@pytest.fixture
def make_repo(tmp_path):
    def _make(files: dict[str, str]) -> Path:
        return write_tree(tmp_path, files)

    return _make


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture(autouse=True)
def _clear_patterns():
    usage_patterns.clear()
    yield
    usage_patterns.clear()
