"""
Rule store: the single source of truth for host and element rules.

All mutation goes through the methods here. Each effective mutation is
persisted (atomic replace), propagated to both sinks and then announced to
subscribers before the call returns. Calls that change nothing (duplicates,
empty input) skip all three.
"""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path

from exactblock.config import ExactBlockConfig
from exactblock.exceptions import ImportSourceError, InvalidRuleError, StorageError

from .defaults import KeyValueStore
from .model import ElementRule, HostRule, RuleSet
from .parser import format_document, parse_document
from .propagation import PropagationResult, Propagator

logger = logging.getLogger(__name__)

# Keys in the editing process's own storage
HOSTS_KEY = "Hosts"
ELEMENT_RULES_KEY = "ElementRules"

IMPORT_TIMEOUT = 60  # seconds, for http(s) import sources

Subscriber = Callable[[RuleSet], None]


class RuleStore:
    """Ordered, deduplicated collection of host rules and element rules."""

    def __init__(
        self,
        defaults: KeyValueStore,
        propagator: Propagator | None = None,
        normalize_host_case: bool = True,
    ) -> None:
        self._defaults = defaults
        self._propagator = propagator
        self._normalize_host_case = normalize_host_case
        self._hosts: list[HostRule] = []
        self._element_rules: list[ElementRule] = []
        self._subscribers: list[Subscriber] = []
        self.last_propagation: PropagationResult | None = None

    @classmethod
    def from_config(cls, config: ExactBlockConfig) -> RuleStore:
        """Create a store wired to the configured storage and sinks, and load it."""
        store = cls(
            KeyValueStore(config.app_defaults_dir()),
            Propagator.from_config(config),
            normalize_host_case=config.normalize_host_case,
        )
        store.load()
        return store

    # === Reading ===

    @property
    def hosts(self) -> tuple[HostRule, ...]:
        return tuple(self._hosts)

    @property
    def element_rules(self) -> tuple[ElementRule, ...]:
        return tuple(self._element_rules)

    def snapshot(self) -> RuleSet:
        return RuleSet(hosts=tuple(self._hosts), element_rules=tuple(self._element_rules))

    def load(self) -> None:
        """Rehydrate from persisted storage, dropping unusable or duplicate entries.

        Stored hostnames are normalized the same way as new ones.
        """
        raw_hosts = self._defaults.get(HOSTS_KEY, []) or []
        raw_rules = self._defaults.get(ELEMENT_RULES_KEY, []) or []

        hosts: list[HostRule] = []
        for name in raw_hosts:
            if not isinstance(name, str) or not name.strip():
                continue
            rule = HostRule(self._normalize_host(name))
            if rule not in hosts:
                hosts.append(rule)

        rules: list[ElementRule] = []
        for item in raw_rules:
            try:
                rule = ElementRule.from_dict(item)
            except (InvalidRuleError, AttributeError):
                logger.warning("Skipping unreadable stored element rule: %r", item)
                continue
            if rule not in rules:
                rules.append(rule)

        self._hosts = hosts
        self._element_rules = rules
        logger.debug("Loaded %d host rules, %d element rules", len(hosts), len(rules))

    # === Observation ===

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` with the new snapshot after every mutation.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # === Host rules ===

    def _normalize_host(self, name: str) -> str:
        name = name.strip()
        if self._normalize_host_case:
            name = name.lower()
        return name

    def add_host(self, name: str) -> bool:
        """Add a host rule. Returns False if empty or already present."""
        name = self._normalize_host(name)
        if not name:
            return False

        rule = HostRule(name)
        if rule in self._hosts:
            return False

        self._mutate(HOSTS_KEY, lambda: self._hosts.append(rule))
        return True

    def remove_host(self, name: str) -> int:
        """Remove every host rule equal to ``name``. Returns the number removed."""
        names = {name.strip(), self._normalize_host(name)}
        count = sum(1 for h in self._hosts if h.hostname in names)
        if not count:
            return 0

        self._mutate(
            HOSTS_KEY,
            lambda: self._replace_hosts([h for h in self._hosts if h.hostname not in names]),
        )
        return count

    # === Element rules ===

    def add_element_rule(self, rule: ElementRule) -> bool:
        """Add an element rule. Returns False if an equal rule exists."""
        if rule in self._element_rules:
            return False

        self._mutate(ELEMENT_RULES_KEY, lambda: self._element_rules.append(rule))
        return True

    def remove_element_rule(self, rule: ElementRule) -> int:
        """Remove every element rule equal to ``rule``. Returns the number removed."""
        count = self._element_rules.count(rule)
        if not count:
            return 0

        self._mutate(
            ELEMENT_RULES_KEY,
            lambda: self._replace_element_rules([r for r in self._element_rules if r != rule]),
        )
        return count

    def remove_element_rule_by_key(self, key: str) -> int:
        try:
            rule = ElementRule.from_key(key)
        except InvalidRuleError:
            return 0
        return self.remove_element_rule(rule)

    def import_element_rules(self, text: str) -> int:
        """Parse a rule document and add the rules not already present.

        Returns the number of rules actually added, not the number parsed.
        """
        new_rules: list[ElementRule] = []
        for rule in parse_document(text):
            if rule not in self._element_rules and rule not in new_rules:
                new_rules.append(rule)

        if new_rules:
            self._mutate(ELEMENT_RULES_KEY, lambda: self._element_rules.extend(new_rules))

        logger.info("Imported %d new element rules", len(new_rules))
        return len(new_rules)

    def import_element_rules_from(self, source: str | Path) -> int:
        """Import a rule document from a file path or an http(s) URL."""
        text = _read_import_source(source)
        return self.import_element_rules(text)

    def export_element_rules(self) -> str:
        return format_document(self._element_rules)

    def clear_element_rules(self) -> None:
        """Remove all element rules, leaving host rules untouched."""
        if not self._element_rules:
            return
        self._mutate(ELEMENT_RULES_KEY, lambda: self._replace_element_rules([]))

    # === Propagation ===

    def republish(self) -> PropagationResult | None:
        """Propagate the current state again without changing it."""
        return self._propagate()

    # === Internals ===

    def _replace_hosts(self, hosts: list[HostRule]) -> None:
        self._hosts = hosts

    def _replace_element_rules(self, rules: list[ElementRule]) -> None:
        self._element_rules = rules

    def _mutate(self, key: str, change: Callable[[], None]) -> None:
        previous_hosts = list(self._hosts)
        previous_rules = list(self._element_rules)

        change()

        try:
            self._persist(key)
        except StorageError:
            self._hosts = previous_hosts
            self._element_rules = previous_rules
            raise

        snapshot = self.snapshot()
        try:
            self._propagate(snapshot)
        finally:
            for callback in list(self._subscribers):
                callback(snapshot)

    def _persist(self, key: str) -> None:
        # Write only the key the mutation changed
        if key == HOSTS_KEY:
            self._defaults.set(HOSTS_KEY, [h.hostname for h in self._hosts])
        else:
            self._defaults.set(ELEMENT_RULES_KEY, [r.to_dict() for r in self._element_rules])

    def _propagate(self, snapshot: RuleSet | None = None) -> PropagationResult | None:
        if self._propagator is None:
            return None

        result = self._propagator.propagate(snapshot if snapshot is not None else self.snapshot())
        self.last_propagation = result
        result.raise_for_errors()
        return result


def _read_import_source(source: str | Path) -> str:
    """Read rule text from a local file or an http(s) URL."""
    source_str = str(source)

    if source_str.startswith(("http://", "https://")):
        logger.debug("Fetching rule document from %s", source_str)
        try:
            req = urllib.request.Request(source_str, headers={"User-Agent": "exactblock/1.0"})
            with urllib.request.urlopen(req, timeout=IMPORT_TIMEOUT) as response:
                data: bytes = response.read()
            return data.decode("utf-8")
        except (urllib.error.URLError, TimeoutError, UnicodeDecodeError) as e:
            raise ImportSourceError(f"Error reading {source_str}: {e}") from e

    path = Path(source_str).expanduser()
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ImportSourceError(f"Error reading file {path}: {e}") from e
