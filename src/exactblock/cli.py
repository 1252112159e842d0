"""
Command-line rule editor for exactblock.

The CLI parses arguments and delegates to the rule store; every editing
command persists and propagates before it exits.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from exactblock.blocker.content_blocker import load_filter_list
from exactblock.blocker.model import ElementRule
from exactblock.blocker.parser import parse_line
from exactblock.blocker.propagation import PropagationResult
from exactblock.blocker.store import RuleStore
from exactblock.config import ExactBlockConfig
from exactblock.exceptions import ExactBlockError, PropagationError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PROPAGATION_FAILED = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exactblock",
        description="Block exact sites and hide page elements",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Override the data directory (primarily for testing).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add-host", help="Block a website by exact hostname")
    p.add_argument("hostname")

    p = sub.add_parser("remove-host", help="Stop blocking a website")
    p.add_argument("hostname")

    p = sub.add_parser("add-rule", help="Hide an element: domain##selector")
    p.add_argument("rule")

    p = sub.add_parser("remove-rule", help="Remove an element rule: domain##selector")
    p.add_argument("rule")

    p = sub.add_parser("import", help="Import element rules from a file or http(s) URL")
    p.add_argument("source")

    p = sub.add_parser("export", help="Write element rules as domain##selector text")
    p.add_argument("--output", "-o", type=Path, default=None, help="Output file (default: stdout)")

    sub.add_parser("clear-rules", help="Remove all element rules (host rules are kept)")
    sub.add_parser("list", help="Show all rules")
    sub.add_parser("reload", help="Rewrite both sinks and ask the blocking engine to reload")
    sub.add_parser("filter-list", help="Print the compiled filter list as the engine loads it")
    sub.add_parser("serve", help="Answer getRules requests from in-page scripts")

    return parser


def _load_config(args: argparse.Namespace) -> ExactBlockConfig:
    config = ExactBlockConfig.load(args.config)
    if args.data_dir:
        config.data_dir = args.data_dir
    return config


def _report_reload(result: PropagationResult | None) -> None:
    if result is None or result.reload_result is None:
        return
    if not result.reload_result.ok:
        print(f"warning: blocking engine reload failed: {result.reload_result.message}", file=sys.stderr)


def _run_edit(store: RuleStore, args: argparse.Namespace) -> int:
    if args.command == "add-host":
        if store.add_host(args.hostname):
            print(f"Blocked {store.hosts[-1].hostname}")
        else:
            print("Nothing added (empty or already blocked)")

    elif args.command == "remove-host":
        removed = store.remove_host(args.hostname)
        print(f"Removed {removed} host rule(s)")

    elif args.command == "add-rule":
        rule = parse_line(args.rule)
        if rule is None:
            print(f"ERROR: not a domain##selector rule: {args.rule!r}", file=sys.stderr)
            return EXIT_ERROR
        if store.add_element_rule(rule):
            print(f"Added {rule.key}")
        else:
            print("Rule already present")

    elif args.command == "remove-rule":
        rule = parse_line(args.rule)
        removed = store.remove_element_rule(rule) if rule is not None else 0
        print(f"Removed {removed} element rule(s)")

    elif args.command == "import":
        count = store.import_element_rules_from(args.source)
        print(f"Imported {count} new rules")

    elif args.command == "clear-rules":
        store.clear_element_rules()
        print("Cleared all element rules")

    elif args.command == "reload":
        store.republish()
        total = len(store.hosts) + len(store.element_rules)
        print(f"Content blocker refreshed with {total} rules")

    _report_reload(store.last_propagation)
    return EXIT_OK


def _print_rules(store: RuleStore) -> None:
    print("Blocked websites:")
    for host in store.hosts:
        print(f"  {host.hostname}")
    print("Hidden elements:")
    for rule in store.element_rules:
        print(f"  {rule.key}")
    print(f"{len(store.hosts)} website rules, {len(store.element_rules)} element rules")


def _export(rules: tuple[ElementRule, ...], text: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(text)
        return
    output.write_text(text, encoding="utf-8")
    print(f"Exported {len(rules)} rules to {output}")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _load_config(args)

        if args.command == "serve":
            from exactblock.protocol.channel import RuleChannelServer

            server = RuleChannelServer.from_config(config)
            try:
                asyncio.run(server.serve_forever())
            except KeyboardInterrupt:
                pass
            return EXIT_OK

        if args.command == "filter-list":
            sys.stdout.write(load_filter_list(config).decode("utf-8") + "\n")
            return EXIT_OK

        store = RuleStore.from_config(config)

        if args.command == "list":
            _print_rules(store)
            return EXIT_OK

        if args.command == "export":
            _export(store.element_rules, store.export_element_rules(), args.output)
            return EXIT_OK

        return _run_edit(store, args)

    except PropagationError as exc:
        print(f"warning: rules saved but not fully propagated: {exc}", file=sys.stderr)
        return EXIT_PROPAGATION_FAILED
    except (ExactBlockError, OSError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR
