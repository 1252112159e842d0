"""
Propagation of the rule store to its two independent sinks.

Sink A is the compiled filter list file read by the native blocking engine,
followed by a reload signal. Sink B is the element-rule payload served to
in-page scripts over the message channel. The sinks are independent caches
of the same state: a failure in one never stops the other from being
written.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from exactblock.config import ExactBlockConfig
from exactblock.exceptions import PropagationError, SerializationError, StorageError

from .compiler import compile_rules, serialize_filter_list
from .defaults import KeyValueStore, atomic_write_bytes
from .model import RuleSet
from .reload import EngineReloader, ReloadResult, get_reloader

logger = logging.getLogger(__name__)

# Key under which Sink B is stored in the group's shared storage
CHANNEL_RULES_KEY = "ElementRulesForExtension"


@dataclass
class PropagationResult:
    """Per-sink outcome of one propagation."""

    entries_written: int = 0
    rules_published: int = 0
    filter_list_error: Exception | None = None
    channel_error: Exception | None = None
    reload_task: asyncio.Task[ReloadResult] | None = None
    reload_result: ReloadResult | None = None

    @property
    def ok(self) -> bool:
        return self.filter_list_error is None and self.channel_error is None

    async def reload_outcome(self) -> ReloadResult | None:
        """Wait for the reload signal, if one was sent."""
        if self.reload_task is not None:
            return await self.reload_task
        return self.reload_result

    def raise_for_errors(self) -> None:
        if self.ok:
            return

        failed = []
        if self.filter_list_error is not None:
            kind = (
                "serialization"
                if isinstance(self.filter_list_error, SerializationError)
                else "write"
            )
            failed.append(f"filter list {kind} failed: {self.filter_list_error}")
        if self.channel_error is not None:
            failed.append(f"channel payload failed: {self.channel_error}")

        raise PropagationError("; ".join(failed), self)


class Propagator:
    """Writes compiled rule data to both sinks and signals the engine."""

    def __init__(
        self,
        filter_list_path: Path,
        channel_store: KeyValueStore,
        engine_id: str,
        reloader: EngineReloader,
    ) -> None:
        self.filter_list_path = Path(filter_list_path)
        self.channel_store = channel_store
        self.engine_id = engine_id
        self.reloader = reloader
        self._pending: set[asyncio.Task[ReloadResult]] = set()

    @classmethod
    def from_config(cls, config: ExactBlockConfig) -> Propagator:
        return cls(
            filter_list_path=config.filter_list_path(),
            channel_store=KeyValueStore(config.group_defaults_dir()),
            engine_id=config.engine_id,
            reloader=get_reloader(config.reload_command),
        )

    def propagate(self, rule_set: RuleSet) -> PropagationResult:
        """Update both sinks from a rule set snapshot.

        Errors are recorded on the returned result rather than raised.
        """
        result = PropagationResult()

        try:
            result.entries_written = self._write_filter_list(rule_set)
        except (SerializationError, OSError) as e:
            logger.error("Could not write filter list %s: %s", self.filter_list_path, e)
            result.filter_list_error = e

        try:
            result.rules_published = self._write_channel_payload(rule_set)
        except StorageError as e:
            logger.error("Could not publish element rules for in-page script: %s", e)
            result.channel_error = e

        # An unchanged filter list needs no reload
        if result.filter_list_error is None:
            self._signal_reload(result)

        logger.info(
            "Propagated %d filter entries, %d in-page rules",
            result.entries_written,
            result.rules_published,
        )
        return result

    def _write_filter_list(self, rule_set: RuleSet) -> int:
        entries = compile_rules(rule_set)
        # Serialize fully before touching the file so a failure leaves the old list intact
        data = serialize_filter_list(entries)
        atomic_write_bytes(self.filter_list_path, data)
        logger.debug("Wrote %s (%d bytes)", self.filter_list_path, len(data))
        return len(entries)

    def _write_channel_payload(self, rule_set: RuleSet) -> int:
        # Host rules never reach the in-page script; blocked pages don't load
        payload = [rule.to_dict() for rule in rule_set.element_rules]
        self.channel_store.set(CHANNEL_RULES_KEY, payload)
        return len(payload)

    def _signal_reload(self, result: PropagationResult) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            outcome = asyncio.run(self._reload())
            _log_reload(self.engine_id, outcome)
            result.reload_result = outcome
            return

        task = loop.create_task(self._reload())
        self._pending.add(task)
        task.add_done_callback(self._on_reload_done)
        result.reload_task = task

    async def _reload(self) -> ReloadResult:
        try:
            return await self.reloader.reload(self.engine_id)
        except Exception as e:
            logger.debug("Reloader %r raised", self.reloader, exc_info=True)
            return ReloadResult(ok=False, message=f"reload raised {type(e).__name__}: {e}")

    def _on_reload_done(self, task: asyncio.Task[ReloadResult]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        _log_reload(self.engine_id, task.result())


def _log_reload(engine_id: str, outcome: ReloadResult) -> None:
    if outcome.ok:
        logger.debug("Blocking engine %s reloaded", engine_id)
    else:
        logger.warning(
            "Blocking engine %s reload failed: %s (is it enabled?)",
            engine_id,
            outcome.message,
        )


def read_channel_rules(channel_store: KeyValueStore) -> list[dict[str, str]] | None:
    """Read the Sink B payload, or None if it was never written."""
    return channel_store.get(CHANNEL_RULES_KEY)
