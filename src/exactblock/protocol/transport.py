"""
Transport layer for the rule message channel, using Unix Domain Sockets.

Works on POSIX and on Windows 10 build 17063 or later.
"""

import asyncio
import logging
import os
import socket
import sys
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path

from exactblock.exceptions import SocketError

logger = logging.getLogger(__name__)

# Environment variable to override socket directory
SOCKET_DIR_ENV = "EXACTBLOCK_SOCKET_DIR"
MAX_SOCKET_PATH_LENGTH = 104  # Conservative limit for Unix sockets


class ClientConnection(ABC):
    """Represents a single client connection on the server side."""

    @abstractmethod
    async def send_line(self, data: str) -> None: ...

    @abstractmethod
    async def recv_line(self) -> str | None: ...

    @abstractmethod
    async def close(self) -> None: ...


ClientHandler = Callable[["ClientConnection"], Awaitable[None]]


class StreamClientConnection(ClientConnection):
    """Client connection using asyncio streams."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer

    async def send_line(self, data: str) -> None:
        self._writer.write((data + "\n").encode())
        await self._writer.drain()

    async def recv_line(self) -> str | None:
        try:
            line = await self._reader.readline()
        except (ConnectionError, asyncio.LimitOverrunError, ValueError):
            return None
        if not line:
            return None
        return line.decode(errors="replace").rstrip("\n")

    async def close(self) -> None:
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except ConnectionError:
            pass


# === Socket Path Resolution ===


def get_socket_path(channel_name: str) -> Path:
    """
    Get socket path with priority:
    1. EXACTBLOCK_SOCKET_DIR env var (directory, channel name appended)
    2. OS-specific default
    """
    filename = f"exactblock-{channel_name}.sock"

    env_dir = os.getenv(SOCKET_DIR_ENV)
    if env_dir:
        path = Path(env_dir) / filename
    elif sys.platform == "win32":
        temp = os.environ.get("TEMP", os.environ.get("TMP", "C:\\Windows\\Temp"))
        path = Path(temp) / filename
    else:
        runtime_dir = Path(f"/run/user/{os.getuid()}")
        if runtime_dir.exists():
            path = runtime_dir / filename
        else:
            path = Path("/tmp") / filename

    if len(str(path)) > MAX_SOCKET_PATH_LENGTH:
        raise SocketError(
            f"Socket path too long ({len(str(path))} > {MAX_SOCKET_PATH_LENGTH} chars): {path}\n"
            f"Set {SOCKET_DIR_ENV} to a shorter path."
        )

    return path


# === Unix Socket Transport ===


class UnixSocketServerTransport:
    """Unix domain socket server (responder side)."""

    def __init__(self, socket_path: Path, client_handler: ClientHandler) -> None:
        self.socket_path = socket_path
        self._server: asyncio.Server | None = None
        self._client_handler = client_handler

    async def start(self) -> None:
        if self.socket_path.exists():
            self.socket_path.unlink()

        try:
            self.socket_path.parent.mkdir(parents=True, exist_ok=True)
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.setblocking(False)
            sock.bind(str(self.socket_path))
            sock.listen()
            self._server = await asyncio.start_server(self._handle_client, sock=sock)
        except OSError as e:
            raise SocketError(f"Cannot create socket: {self.socket_path}\nError: {e}") from e

        if sys.platform != "win32":
            os.chmod(self.socket_path, 0o600)

        logger.debug("Listening on %s", self.socket_path)

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        connection = StreamClientConnection(reader, writer)
        try:
            await self._client_handler(connection)
        except ConnectionError as e:
            logger.debug("Client disconnected: %s", e)
        finally:
            await connection.close()

    async def close(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        if self.socket_path.exists():
            self.socket_path.unlink()

    def get_address(self) -> str:
        return str(self.socket_path)


class UnixSocketClientTransport:
    """Unix domain socket client (requesting side)."""

    def __init__(self, socket_path: Path):
        self.socket_path = socket_path
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    async def connect(self) -> None:
        try:
            self._reader, self._writer = await asyncio.open_unix_connection(
                str(self.socket_path)
            )
        except OSError as e:
            raise SocketError(
                f"Cannot connect to socket: {self.socket_path}\nError: {e}"
            ) from e

    async def send_line(self, data: str) -> None:
        if self._writer:
            self._writer.write((data + "\n").encode())
            await self._writer.drain()

    async def recv_line(self) -> str:
        if self._reader:
            line = await self._reader.readline()
            return line.decode(errors="replace").rstrip("\n")
        return ""

    async def close(self) -> None:
        if self._writer:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except ConnectionError:
                pass
            self._writer = None
