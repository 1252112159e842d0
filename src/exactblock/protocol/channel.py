"""
Message channel between in-page rule application and the shared rule payload.

Protocol: one JSON object per line. A ``{"type": "getRules"}`` request is
answered with ``{"status": "success", "rules": [...]}``, or with
``{"status": "no_data", "rules": []}`` while nothing has been published.
The responder reads the published payload on every request, so it never
holds a copy that could go stale.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from exactblock.blocker.defaults import KeyValueStore
from exactblock.blocker.propagation import read_channel_rules
from exactblock.config import ExactBlockConfig
from exactblock.exceptions import SocketError, StorageError

from .transport import (
    ClientConnection,
    UnixSocketClientTransport,
    UnixSocketServerTransport,
    get_socket_path,
)

logger = logging.getLogger(__name__)

GET_RULES = "getRules"


class RuleChannelServer:
    """Answers ``getRules`` requests from the group's published payload."""

    def __init__(self, channel_store: KeyValueStore, socket_path: Path) -> None:
        self._channel_store = channel_store
        self._transport = UnixSocketServerTransport(socket_path, self._handle_connection)

    @classmethod
    def from_config(cls, config: ExactBlockConfig) -> RuleChannelServer:
        return cls(
            KeyValueStore(config.group_defaults_dir()),
            get_socket_path(config.group_id),
        )

    @property
    def address(self) -> str:
        return self._transport.get_address()

    async def start(self) -> None:
        await self._transport.start()
        logger.info("Rule channel listening on %s", self.address)

    async def close(self) -> None:
        await self._transport.close()

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.close()

    def handle_request(self, request: Any) -> dict[str, Any]:
        """Build the response for one decoded request."""
        if not isinstance(request, dict) or request.get("type") != GET_RULES:
            return {"status": "error", "error": "unsupported request"}

        try:
            rules = read_channel_rules(self._channel_store)
        except StorageError as e:
            logger.warning("Cannot read published rules: %s", e)
            return {"status": "error", "error": "rules unavailable"}

        if rules is None:
            logger.debug("No rules published yet")
            return {"status": "no_data", "rules": []}

        return {"status": "success", "rules": rules}

    async def _handle_connection(self, connection: ClientConnection) -> None:
        while True:
            line = await connection.recv_line()
            if line is None:
                return
            if not line.strip():
                continue

            try:
                request = json.loads(line)
            except json.JSONDecodeError:
                response: dict[str, Any] = {"status": "error", "error": "invalid JSON"}
            else:
                response = self.handle_request(request)

            await connection.send_line(json.dumps(response, ensure_ascii=False))


class RuleChannelClient:
    """Requests element rules; any failure counts as zero rules."""

    def __init__(self, socket_path: Path, timeout: float) -> None:
        self.socket_path = socket_path
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: ExactBlockConfig) -> RuleChannelClient:
        return cls(get_socket_path(config.group_id), config.channel_timeout)

    async def get_rules(self) -> list[dict[str, Any]]:
        try:
            return await asyncio.wait_for(self._request_rules(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug("Rule channel timed out after %.1fs", self.timeout)
        except (SocketError, ConnectionError) as e:
            logger.debug("Rule channel unavailable: %s", e)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.debug("Malformed rule channel response: %s", e)
        return []

    async def _request_rules(self) -> list[dict[str, Any]]:
        transport = UnixSocketClientTransport(self.socket_path)
        await transport.connect()
        try:
            await transport.send_line(json.dumps({"type": GET_RULES}))
            line = await transport.recv_line()
        finally:
            await transport.close()

        response = json.loads(line) if line else None
        if not isinstance(response, dict):
            return []

        rules = response.get("rules")
        if not isinstance(rules, list):
            return []
        return rules
