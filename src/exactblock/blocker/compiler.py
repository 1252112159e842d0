"""
Compile a rule set into the declarative filter-list format read by the
native blocking engine.

Host rules become document ``block`` entries anchored at the site root;
element rules become ``css-display-none`` entries scoped with ``if-domain``.
All block entries precede all hide entries and insertion order is kept
within each group; consumers may rely on that ordering.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Union

from exactblock.exceptions import SerializationError

from .model import RuleSet

logger = logging.getLogger(__name__)

# Characters with special meaning in the engine's url-filter regex dialect
_REGEX_SPECIAL = set("\\^$.|?*+()[]{}/")

WWW_PREFIX = "www."


def escape_url_filter(text: str) -> str:
    """Escape regex metacharacters so ``text`` matches literally."""
    escaped = ""
    for c in text:
        if c in _REGEX_SPECIAL:
            escaped += "\\" + c
        else:
            escaped += c
    return escaped


def strip_www(domain: str) -> str:
    """Drop a single leading ``www.``."""
    if domain.startswith(WWW_PREFIX):
        return domain[len(WWW_PREFIX) :]
    return domain


@dataclass(frozen=True)
class BlockEntry:
    """Block the root document of a host."""

    hostname: str

    @property
    def url_filter(self) -> str:
        # Anchored so only the site root is blocked, not sub-paths
        return f"^https?://(www\\.)?{escape_url_filter(self.hostname)}/?$"

    def to_json(self) -> dict[str, Any]:
        return {
            "trigger": {"url-filter": self.url_filter, "resource-type": ["document"]},
            "action": {"type": "block"},
        }


@dataclass(frozen=True)
class HideCSSEntry:
    """Hide elements matching ``selector`` on any page of ``domain_pattern``."""

    domain_pattern: str
    selector: str

    def to_json(self) -> dict[str, Any]:
        return {
            "trigger": {"url-filter": ".*", "if-domain": [self.domain_pattern]},
            "action": {"type": "css-display-none", "selector": self.selector},
        }


CompiledFilterEntry = Union[BlockEntry, HideCSSEntry]


def compile_rules(rule_set: RuleSet) -> list[CompiledFilterEntry]:
    """Compile a rule set into ordered filter-list entries."""
    entries: list[CompiledFilterEntry] = []

    # 1. Host blocking rules (block entire page)
    for host in rule_set.hosts:
        entries.append(BlockEntry(hostname=host.hostname))

    # 2. Element hiding rules
    for rule in rule_set.element_rules:
        domain = strip_www(rule.domain)
        entries.append(HideCSSEntry(domain_pattern=f"*{domain}", selector=rule.selector))

    logger.debug(
        "Compiled %d entries (%d block, %d css-display-none)",
        len(entries),
        len(rule_set.hosts),
        len(rule_set.element_rules),
    )

    return entries


def serialize_filter_list(entries: list[CompiledFilterEntry]) -> bytes:
    """Encode compiled entries as the UTF-8 JSON filter list."""
    try:
        text = json.dumps([e.to_json() for e in entries], ensure_ascii=False, indent=2)
        return text.encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot encode filter list: {e}") from e
