"""
Rule handling for exactblock.

Provides the rule model, the ``domain##selector`` parser, the rule store,
the filter-list compiler, propagation to the blocking engine and in-page
script, and the handler that serves the compiled list to the engine.
"""

from .compiler import BlockEntry, HideCSSEntry, compile_rules, serialize_filter_list
from .content_blocker import load_filter_entries, load_filter_list
from .model import ElementRule, HostRule, RuleSet
from .parser import format_document, parse_document, parse_line
from .propagation import PropagationResult, Propagator
from .store import RuleStore

__all__ = [
    "BlockEntry",
    "ElementRule",
    "HideCSSEntry",
    "HostRule",
    "PropagationResult",
    "Propagator",
    "RuleSet",
    "RuleStore",
    "compile_rules",
    "format_document",
    "load_filter_entries",
    "load_filter_list",
    "parse_document",
    "parse_line",
    "serialize_filter_list",
]
