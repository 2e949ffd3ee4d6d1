"""Shared fixtures for the shading helper test suite."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create an isolated workspace and set ``SHADE_WORKSPACE`` accordingly."""
    root = tmp_path / "workspace"
    root.mkdir()
    monkeypatch.setenv("SHADE_WORKSPACE", str(root))
    return root


@pytest.fixture
def maven_repo(tmp_path: Path) -> Path:
    """Provide an empty directory laid out as a Maven repository."""
    root = tmp_path / "m2"
    root.mkdir()
    return root
