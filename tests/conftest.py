"""Pytest configuration and fixtures for workspace-monitor tests.

This module ensures the workspace_monitor package is importable during
tests without requiring installation.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

# Add src directory to path for development testing
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace root."""
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def make_project(workspace: Path):
    """Create a project directory with the given files.

    Dict values are written as JSON, strings as-is.
    """

    def _make(name: str, files: dict[str, object] | None = None) -> Path:
        project = workspace / name
        project.mkdir()
        for filename, content in (files or {}).items():
            text = content if isinstance(content, str) else json.dumps(content)
            (project / filename).write_text(text, encoding="utf-8")
        return project

    return _make
