"""Shared helpers for integration tests."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest


def require_tools(*names: str) -> None:
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        pytest.skip(f"missing host tools: {', '.join(missing)}")


@pytest.fixture
def patches_dir() -> Path:
    """Directory with the gcc header patches, from CROSSGCC_PATCHES_DIR."""
    value = os.environ.get("CROSSGCC_PATCHES_DIR")
    if not value:
        pytest.skip("set CROSSGCC_PATCHES_DIR to run real toolchain builds")
    return Path(value)
