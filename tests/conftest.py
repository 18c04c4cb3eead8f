"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from unittest import mock

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path (development checkouts)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from cmdctl.config import reload_config  # noqa: E402


@pytest.fixture(autouse=True)
def clean_config():
    """Run every test with default CMDCTL_* configuration."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("CMDCTL_")}
    with mock.patch.dict(os.environ, env, clear=True):
        reload_config()
        yield
    reload_config()


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Temporary working directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace
