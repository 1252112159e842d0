"""Unit tests for configuration and the engine-side filter list handler."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from exactblock.config import DATA_DIR_ENV, ExactBlockConfig


class TestConfig:
    """Tests for loading and saving config."""

    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        config = ExactBlockConfig.load(tmp_path / "config.json")
        assert config.group_id == "group.exactblock"
        assert config.filter_list_name == "blockerList.json"
        assert config.reload_command is None
        assert config.normalize_host_case is True

    def test_load_values(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.json"
        with open(config_path, "w") as f:
            json.dump(
                {
                    "group_id": "group.custom",
                    "engine_id": "custom.blocker",
                    "reload_command": ["blockerctl", "reload", "{engine_id}"],
                    "channel_timeout": 5,
                    "normalize_host_case": False,
                },
                f,
            )

        config = ExactBlockConfig.load(config_path)
        assert config.group_id == "group.custom"
        assert config.engine_id == "custom.blocker"
        assert config.reload_command == ["blockerctl", "reload", "{engine_id}"]
        assert config.channel_timeout == 5.0
        assert config.normalize_host_case is False

    def test_save_round_trip(self, tmp_path: Path) -> None:
        config = ExactBlockConfig(group_id="group.saved", data_dir=str(tmp_path / "d"))
        config.save(tmp_path / "nested" / "config.json")

        assert ExactBlockConfig.load(tmp_path / "nested" / "config.json") == config

    def test_paths(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(DATA_DIR_ENV, raising=False)
        config = ExactBlockConfig(group_id="group.x", data_dir=str(tmp_path))

        assert config.app_defaults_dir() == tmp_path / "defaults"
        assert config.group_container_dir() == tmp_path / "groups" / "group.x"
        assert config.group_defaults_dir() == tmp_path / "groups" / "group.x" / "defaults"
        assert config.filter_list_path() == tmp_path / "groups" / "group.x" / "blockerList.json"

    def test_env_overrides_data_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "env"))
        config = ExactBlockConfig(data_dir=str(tmp_path / "configured"))
        assert config.resolve_data_dir() == tmp_path / "env"


class TestContentBlockerHandler:
    """Tests for the engine-side filter list request."""

    def test_missing_list_returns_empty(self, config: ExactBlockConfig) -> None:
        from exactblock.blocker.content_blocker import load_filter_entries, load_filter_list

        assert load_filter_list(config) == b"[]"
        assert load_filter_entries(config) == []

    def test_returns_written_list(self, config: ExactBlockConfig) -> None:
        from exactblock.blocker import RuleStore, load_filter_entries

        store = RuleStore.from_config(config)
        store.add_host("reddit.com")

        entries = load_filter_entries(config)
        assert entries[0]["trigger"]["url-filter"] == "^https?://(www\\.)?reddit\\.com/?$"
