"""
Request handler for the native blocking engine.

The engine asks for its filter list when it (re)loads. A missing list is
answered with an empty one so a fresh install never fails to load.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from exactblock.config import ExactBlockConfig

logger = logging.getLogger(__name__)

EMPTY_FILTER_LIST = b"[]"


def load_filter_list(config: ExactBlockConfig) -> bytes:
    """Return the compiled filter list for the engine."""
    return read_filter_list_bytes(config.filter_list_path())


def read_filter_list_bytes(path: Path) -> bytes:
    if not path.exists():
        logger.warning("Filter list does not exist at %s, returning empty list", path)
        return EMPTY_FILTER_LIST

    with open(path, "rb") as f:
        data = f.read()

    logger.debug("Returning filter list %s (%d bytes)", path, len(data))
    return data


def load_filter_entries(config: ExactBlockConfig) -> list[dict[str, Any]]:
    """Decoded filter list, as the engine would see it."""
    entries = json.loads(load_filter_list(config).decode("utf-8"))
    if not isinstance(entries, list):
        raise ValueError("Filter list must be a JSON array")
    return entries
