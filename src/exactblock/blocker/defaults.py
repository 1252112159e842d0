"""
Keyed durable storage shared between processes.

Each key is stored as its own JSON file so values can be written and read
independently. Writes go to a temporary file in the same directory and are
moved into place with ``os.replace``, so a reader in another process sees
either the old value or the new one, never a partial write.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from exactblock.exceptions import StorageError

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` atomically."""
    # Write within the destination directory so os.replace is atomic on POSIX.
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = ""
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb", delete=False, dir=path.parent, prefix=".tmp-"
        ) as f:
            tmp_path = f.name
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = ""
    finally:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError as e:
                logger.debug("Failed to remove temp file %s: %s", tmp_path, e)


class KeyValueStore:
    """Directory-backed keyed storage (one JSON document per key)."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value, returning ``default`` when the key was never written."""
        path = self._path_for(key)
        if not path.exists():
            return default

        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {key!r} from {path}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        """Write a value atomically."""
        path = self._path_for(key)
        try:
            data = json.dumps(value, ensure_ascii=False, indent=2).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot encode value for {key!r}: {e}") from e

        try:
            atomic_write_bytes(path, data)
        except OSError as e:
            raise StorageError(f"Cannot write {key!r} to {path}: {e}") from e

        logger.debug("Stored %s (%d bytes)", key, len(data))

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot delete {key!r}: {e}") from e

    def __contains__(self, key: str) -> bool:
        return self._path_for(key).exists()
