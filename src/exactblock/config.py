"""
Configuration and path management for exactblock.
"""

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path

# Environment variable to relocate all persisted state (tests, sandboxes)
DATA_DIR_ENV = "EXACTBLOCK_DATA_DIR"

# Default settings
DEFAULT_GROUP_ID = "group.exactblock"
DEFAULT_ENGINE_ID = "exactblock.blocker"
DEFAULT_FILTER_LIST_NAME = "blockerList.json"
DEFAULT_CHANNEL_TIMEOUT = 2.0  # seconds


@dataclass
class ExactBlockConfig:
    """Main configuration."""

    # Shared storage
    group_id: str = DEFAULT_GROUP_ID
    filter_list_name: str = DEFAULT_FILTER_LIST_NAME
    data_dir: str | None = None  # None = platform default

    # Blocking engine
    engine_id: str = DEFAULT_ENGINE_ID
    reload_command: list[str] | None = None  # e.g. ["blockerctl", "reload", "{engine_id}"]

    # Message channel
    channel_timeout: float = DEFAULT_CHANNEL_TIMEOUT

    # Rules
    normalize_host_case: bool = True

    @classmethod
    def load(cls, path: Path | None = None) -> "ExactBlockConfig":
        """Load configuration from file."""
        if path is None:
            path = get_config_dir() / "config.json"

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        return cls(
            group_id=data.get("group_id", DEFAULT_GROUP_ID),
            filter_list_name=data.get("filter_list_name", DEFAULT_FILTER_LIST_NAME),
            data_dir=data.get("data_dir"),
            engine_id=data.get("engine_id", DEFAULT_ENGINE_ID),
            reload_command=data.get("reload_command"),
            channel_timeout=float(data.get("channel_timeout", DEFAULT_CHANNEL_TIMEOUT)),
            normalize_host_case=data.get("normalize_host_case", True),
        )

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = get_config_dir() / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "group_id": self.group_id,
            "filter_list_name": self.filter_list_name,
            "data_dir": self.data_dir,
            "engine_id": self.engine_id,
            "reload_command": self.reload_command,
            "channel_timeout": self.channel_timeout,
            "normalize_host_case": self.normalize_host_case,
        }

        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    def resolve_data_dir(self) -> Path:
        """Data directory, honouring the environment override first."""
        env_dir = os.environ.get(DATA_DIR_ENV)
        if env_dir:
            return Path(env_dir).expanduser()
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return get_data_dir()

    def app_defaults_dir(self) -> Path:
        """Keyed storage private to the editing process."""
        return self.resolve_data_dir() / "defaults"

    def group_container_dir(self) -> Path:
        """Container shared between the editor, the engine and the channel responder."""
        return self.resolve_data_dir() / "groups" / self.group_id

    def group_defaults_dir(self) -> Path:
        """Keyed storage inside the shared group container."""
        return self.group_container_dir() / "defaults"

    def filter_list_path(self) -> Path:
        """Location of the compiled filter list read by the blocking engine."""
        return self.group_container_dir() / self.filter_list_name


def get_config_dir() -> Path:
    """Get config directory following platform conventions."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    return base / "exactblock"


def get_data_dir() -> Path:
    """Get data directory for rule storage and shared containers."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "exactblock"
