"""
Parser for the ``domain##selector`` element rule syntax.

Malformed lines are dropped rather than reported, so importing a large
community rule file degrades gracefully instead of aborting.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .model import RULE_DELIMITER, ElementRule

logger = logging.getLogger(__name__)

COMMENT_PREFIX = "!"


def parse_line(line: str) -> ElementRule | None:
    """Parse one rule line, returning None for blanks, comments and bad syntax."""
    line = line.strip()

    # Skip empty lines and comments
    if not line or line.startswith(COMMENT_PREFIX):
        return None

    parts = line.split(RULE_DELIMITER)
    if len(parts) != 2:
        return None

    domain = parts[0].strip()
    selector = parts[1].strip()

    if not domain or not selector:
        return None

    return ElementRule(domain=domain, selector=selector)


def parse_document(text: str) -> list[ElementRule]:
    """Parse a multi-line rule document, keeping source order.

    Duplicates are kept; the rule store drops them on insert.
    """
    rules: list[ElementRule] = []
    skipped = 0

    for line in text.splitlines():
        rule = parse_line(line)
        if rule is None:
            if line.strip() and not line.strip().startswith(COMMENT_PREFIX):
                skipped += 1
            continue
        rules.append(rule)

    logger.debug("Parsed rule document: %d rules, %d malformed lines skipped", len(rules), skipped)

    return rules


def format_document(rules: Iterable[ElementRule], header: str | None = None) -> str:
    """Render rules back to rule text, one per line."""
    lines: list[str] = []

    if header:
        lines.extend(f"{COMMENT_PREFIX} {h}".rstrip() for h in header.splitlines())

    lines.extend(rule.key for rule in rules)

    return "\n".join(lines) + "\n" if lines else ""
