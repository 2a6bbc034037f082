"""Pytest configuration and fixtures."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FAKE_CLI = Path(__file__).parent / "fixtures" / "fake_cli.py"


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Temporary working directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def fake_cli_args():
    """Build the argument string that runs fake_cli.py with the interpreter."""

    def build(*args: str) -> str:
        return " ".join(shlex.quote(a) for a in (str(FAKE_CLI), *args))

    return build
