"""
Rule model: host-block rules, element-hide rules and rule-set snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from exactblock.exceptions import InvalidRuleError

# Delimiter between domain and selector in rule text and rule keys
RULE_DELIMITER = "##"


@dataclass(frozen=True)
class HostRule:
    """Block every page load for an exact hostname."""

    hostname: str

    def __post_init__(self) -> None:
        if not self.hostname:
            raise InvalidRuleError("Host rule requires a hostname")


@dataclass(frozen=True)
class ElementRule:
    """Hide elements matching a CSS selector on pages of a domain."""

    domain: str
    selector: str

    def __post_init__(self) -> None:
        if not self.domain or not self.selector:
            raise InvalidRuleError("Element rule requires both a domain and a selector")
        # key() must stay injective
        if RULE_DELIMITER in self.domain:
            raise InvalidRuleError(f"Element rule domain may not contain {RULE_DELIMITER!r}")

    @property
    def key(self) -> str:
        """Stable identifier used for list operations."""
        return f"{self.domain}{RULE_DELIMITER}{self.selector}"

    @classmethod
    def from_key(cls, key: str) -> ElementRule:
        """Rebuild a rule from its key."""
        domain, sep, selector = key.partition(RULE_DELIMITER)
        if not sep:
            raise InvalidRuleError(f"Not an element rule key: {key!r}")
        return cls(domain=domain, selector=selector)

    def to_dict(self) -> dict[str, str]:
        return {"domain": self.domain, "selector": self.selector}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElementRule:
        domain = data.get("domain")
        selector = data.get("selector")
        if not isinstance(domain, str) or not isinstance(selector, str):
            raise InvalidRuleError(f"Malformed element rule mapping: {data!r}")
        return cls(domain=domain, selector=selector)


@dataclass(frozen=True)
class RuleSet:
    """Immutable snapshot of the rule store contents, in insertion order."""

    hosts: tuple[HostRule, ...] = ()
    element_rules: tuple[ElementRule, ...] = ()

    def __len__(self) -> int:
        return len(self.hosts) + len(self.element_rules)
