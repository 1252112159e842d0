"""Shared fixtures for exactblock tests."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from exactblock.config import DATA_DIR_ENV, ExactBlockConfig


@pytest.fixture
def config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ExactBlockConfig:
    """Config whose storage lives under tmp_path and has no reload command."""
    monkeypatch.delenv(DATA_DIR_ENV, raising=False)
    return ExactBlockConfig(data_dir=str(tmp_path / "data"))


@pytest.fixture
def short_dir() -> Iterator[Path]:
    """Short directory for Unix sockets (pytest's tmp_path can exceed the path limit)."""
    path = Path(tempfile.mkdtemp(prefix="eb-", dir="/tmp"))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
