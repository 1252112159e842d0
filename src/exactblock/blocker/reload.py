"""
Signalling the native blocking engine to reload its filter list.

The engine may not be registered or enabled yet, so a reload failure is an
outcome to report, not an exception.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

RELOAD_TIMEOUT = 10.0  # seconds


@dataclass
class ReloadResult:
    """Outcome of a reload request."""

    ok: bool
    message: str = ""


class EngineReloader(ABC):
    @abstractmethod
    async def reload(self, engine_id: str) -> ReloadResult: ...


class NullReloader(EngineReloader):
    """Used when no reload mechanism is configured."""

    async def reload(self, engine_id: str) -> ReloadResult:
        return ReloadResult(ok=False, message="no reload command configured")


class CommandReloader(EngineReloader):
    """Reload by running an external command.

    ``{engine_id}`` in any argument is replaced by the engine identifier.
    """

    def __init__(self, command: list[str], timeout: float = RELOAD_TIMEOUT) -> None:
        if not command:
            raise ValueError("Reload command must not be empty")
        self.command = list(command)
        self.timeout = timeout

    async def reload(self, engine_id: str) -> ReloadResult:
        argv = [arg.replace("{engine_id}", engine_id) for arg in self.command]
        logger.debug("Reloading blocking engine %s: %s", engine_id, argv)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ReloadResult(ok=False, message=f"cannot run {argv[0]}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ReloadResult(ok=False, message=f"reload timed out after {self.timeout:g}s")

        combined = (stdout or b"").decode(errors="replace").strip()
        err = (stderr or b"").decode(errors="replace").strip()
        if err:
            combined = f"{combined}\n{err}" if combined else err

        if proc.returncode != 0:
            return ReloadResult(
                ok=False, message=combined or f"exited with status {proc.returncode}"
            )
        return ReloadResult(ok=True, message=combined)


def get_reloader(command: list[str] | None) -> EngineReloader:
    """Pick a reloader for the configured command."""
    if command:
        return CommandReloader(command)
    return NullReloader()
