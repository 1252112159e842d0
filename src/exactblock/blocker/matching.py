"""
Domain matching and stylesheet building shared by rule consumers.

A rule for ``example.com`` applies to ``example.com``, ``www.example.com``
and any subdomain such as ``shop.example.com``, but not to
``notexample.com`` or ``example.com.evil.com``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from exactblock.exceptions import InvalidRuleError

from .compiler import strip_www
from .model import ElementRule

logger = logging.getLogger(__name__)

HIDE_DECLARATION = "display: none !important;"


def domain_matches(rule_domain: str, hostname: str) -> bool:
    """Check if a rule's domain applies to a page hostname."""
    rule_domain = strip_www(rule_domain)
    hostname = strip_www(hostname)

    if not rule_domain or not hostname:
        return False

    return hostname == rule_domain or hostname.endswith("." + rule_domain)


def coerce_rules(payload: Iterable[Any]) -> list[ElementRule]:
    """Turn a channel payload into rules, skipping malformed items."""
    rules: list[ElementRule] = []
    for item in payload:
        if isinstance(item, ElementRule):
            rules.append(item)
            continue
        if not isinstance(item, dict):
            continue
        try:
            rules.append(ElementRule.from_dict(item))
        except InvalidRuleError:
            logger.debug("Ignoring malformed rule in payload: %r", item)
    return rules


def select_applicable_rules(payload: Iterable[Any], hostname: str) -> list[ElementRule]:
    """Filter rules down to those that apply to ``hostname``, keeping order."""
    return [r for r in coerce_rules(payload) if domain_matches(r.domain, hostname)]


def build_stylesheet(selectors: Iterable[str]) -> str:
    """Build CSS with one hide rule per selector."""
    return "\n".join(f"{sel} {{ {HIDE_DECLARATION} }}" for sel in selectors)
