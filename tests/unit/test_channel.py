"""Unit tests for the getRules message channel."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from exactblock.blocker.defaults import KeyValueStore
from exactblock.blocker.propagation import CHANNEL_RULES_KEY
from exactblock.exceptions import SocketError
from exactblock.protocol.channel import RuleChannelClient, RuleChannelServer
from exactblock.protocol.transport import SOCKET_DIR_ENV, get_socket_path


class TestRuleChannelServer:
    """Tests for request handling."""

    def test_no_data(self, tmp_path: Path) -> None:
        server = RuleChannelServer(KeyValueStore(tmp_path), tmp_path / "s.sock")
        assert server.handle_request({"type": "getRules"}) == {"status": "no_data", "rules": []}

    def test_success(self, tmp_path: Path) -> None:
        kv = KeyValueStore(tmp_path)
        kv.set(CHANNEL_RULES_KEY, [{"domain": "a.com", "selector": ".x"}])
        server = RuleChannelServer(kv, tmp_path / "s.sock")

        assert server.handle_request({"type": "getRules"}) == {
            "status": "success",
            "rules": [{"domain": "a.com", "selector": ".x"}],
        }

    def test_unsupported_request(self, tmp_path: Path) -> None:
        server = RuleChannelServer(KeyValueStore(tmp_path), tmp_path / "s.sock")
        assert server.handle_request({"greeting": "hello"})["status"] == "error"
        assert server.handle_request(["getRules"])["status"] == "error"


class TestRuleChannelRoundTrip:
    """Tests over a real Unix socket."""

    @pytest.mark.asyncio
    async def test_get_rules(self, short_dir: Path) -> None:
        kv = KeyValueStore(short_dir / "kv")
        kv.set(CHANNEL_RULES_KEY, [{"domain": "youtube.com", "selector": "#content"}])
        socket_path = short_dir / "rules.sock"

        server = RuleChannelServer(kv, socket_path)
        await server.start()
        try:
            client = RuleChannelClient(socket_path, timeout=2.0)
            assert await client.get_rules() == [{"domain": "youtube.com", "selector": "#content"}]

            # Served fresh on every request
            kv.set(CHANNEL_RULES_KEY, [])
            assert await client.get_rules() == []
        finally:
            await server.close()

        assert not socket_path.exists()

    @pytest.mark.asyncio
    async def test_invalid_json_request(self, short_dir: Path) -> None:
        socket_path = short_dir / "rules.sock"
        server = RuleChannelServer(KeyValueStore(short_dir / "kv"), socket_path)
        await server.start()
        try:
            reader, writer = await asyncio.open_unix_connection(str(socket_path))
            writer.write(b"{oops\n")
            await writer.drain()
            response = json.loads(await reader.readline())
            writer.close()
            await writer.wait_closed()
        finally:
            await server.close()

        assert response == {"status": "error", "error": "invalid JSON"}

    @pytest.mark.asyncio
    async def test_client_without_server(self, short_dir: Path) -> None:
        """No listener means zero rules, not an exception."""
        client = RuleChannelClient(short_dir / "missing.sock", timeout=1.0)
        assert await client.get_rules() == []

    @pytest.mark.asyncio
    async def test_client_timeout(self, short_dir: Path) -> None:
        """A responder that never answers counts as zero rules."""
        socket_path = short_dir / "slow.sock"

        async def silent(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await asyncio.sleep(5)

        server = await asyncio.start_unix_server(silent, path=str(socket_path))
        try:
            client = RuleChannelClient(socket_path, timeout=0.2)
            assert await client.get_rules() == []
        finally:
            server.close()


class TestSocketPath:
    """Tests for socket path resolution."""

    def test_env_override(self, short_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(SOCKET_DIR_ENV, str(short_dir))
        assert get_socket_path("group.test") == short_dir / "exactblock-group.test.sock"

    def test_path_too_long(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(SOCKET_DIR_ENV, "/tmp/" + "x" * 200)
        with pytest.raises(SocketError):
            get_socket_path("group.test")
