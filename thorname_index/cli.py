"""Command-line interface for THORName lookups.

The CLI is a thin façade over the resolver and the reverse lookups so that
operators can inspect a local event log without writing Python.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from .config import ConfigurationError, IndexConfig, load_index_config
from .context import QueryCancelled, QueryContext
from .event_log import DataSourceError, SQLiteEventLog
from .resolver import get_thorname
from .reverse import OWNER_CHECK_MODES, names_bound_to, names_owned_by
from .thornode import ThorNodeClient

logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="thorname-index",
        description="Resolve THORNames and reverse-lookup addresses from a change-event log.",
    )
    parser.add_argument("--config", help="Path to a YAML config file (default ~/.thorname-index.yaml)")
    parser.add_argument("--db", dest="db_path", help="SQLite event log to query")
    parser.add_argument("--root-chain", help="Chain whose record governs expiry (default THOR)")
    parser.add_argument("--max-workers", type=int, help="Concurrent candidate validations for reverse lookups")
    parser.add_argument("--timeout", type=float, dest="query_timeout", help="Abort the query after this many seconds")
    height_group = parser.add_mutually_exclusive_group()
    height_group.add_argument("--height", type=int, help="Chain height to evaluate expiry against")
    height_group.add_argument(
        "--thornode",
        action="store_true",
        help="Read the current height from THORNode instead of the event log",
    )
    parser.add_argument("--json", dest="as_json", action="store_true", help="Emit JSON output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    lookup_parser = subparsers.add_parser("lookup", help="Resolve a THORName to its owner and entries")
    lookup_parser.add_argument("name")

    by_address_parser = subparsers.add_parser("by-address", help="List THORNames currently bound to an address")
    by_address_parser.add_argument("address")

    by_owner_parser = subparsers.add_parser("by-owner", help="List THORNames currently owned by an address")
    by_owner_parser.add_argument("address")
    by_owner_parser.add_argument(
        "--owner-check",
        choices=OWNER_CHECK_MODES,
        help="'live' ignores expired names; 'latest' checks the newest root record regardless of expiry",
    )

    subparsers.add_parser("height", help="Print the height used for expiry checks")
    return parser


def _config_from_args(args: argparse.Namespace) -> IndexConfig:
    overrides = {
        "db_path": args.db_path,
        "root_chain": args.root_chain,
        "max_workers": args.max_workers,
        "query_timeout": args.query_timeout,
        "owner_check": getattr(args, "owner_check", None),
    }
    return load_index_config(config_path=args.config, overrides=overrides)


def _resolve_height(args: argparse.Namespace, config: IndexConfig, log: SQLiteEventLog, ctx: QueryContext) -> int:
    if args.height is not None:
        if args.height < 0:
            raise CLIError("--height must be non-negative")
        return args.height
    if args.thornode:
        return ThorNodeClient.from_config(config).current_height(ctx=ctx)
    return log.current_height(ctx=ctx)


def _print_names(names: set[str], *, as_json: bool, empty_message: str) -> None:
    ordered = sorted(names)
    if as_json:
        print(json.dumps(ordered, indent=2))
        return
    if not ordered:
        print(empty_message)
        return
    for name in ordered:
        print(name)


def cmd_lookup(args: argparse.Namespace, config: IndexConfig, log: SQLiteEventLog, ctx: QueryContext) -> None:
    height = _resolve_height(args, config, log, ctx)
    thorname = get_thorname(log, args.name, height, root_chain=config.root_chain, ctx=ctx)

    if args.as_json:
        payload: Any = thorname.to_dict() if thorname else None
        print(json.dumps(payload, indent=2))
        return

    if thorname is None:
        print(f"{args.name} is not registered or has expired at height {height}.")
        return

    print(f"name:   {thorname.name}")
    print(f"owner:  {thorname.owner}")
    print(f"expire: {thorname.expire}")
    print(" chain | address")
    print("-------+-" + "-" * 42)
    for entry in thorname.entries:
        print(f"{entry.chain:>6} | {entry.address}")


def cmd_by_address(args: argparse.Namespace, config: IndexConfig, log: SQLiteEventLog, ctx: QueryContext) -> None:
    height = _resolve_height(args, config, log, ctx)
    names = names_bound_to(
        log,
        args.address,
        height,
        root_chain=config.root_chain,
        case_insensitive_chains=config.case_insensitive_chains,
        max_workers=config.max_workers,
        ctx=ctx,
    )
    _print_names(names, as_json=args.as_json, empty_message=f"No THORNames bound to {args.address}.")


def cmd_by_owner(args: argparse.Namespace, config: IndexConfig, log: SQLiteEventLog, ctx: QueryContext) -> None:
    height = _resolve_height(args, config, log, ctx)
    names = names_owned_by(
        log,
        args.address,
        height,
        root_chain=config.root_chain,
        owner_check=config.owner_check,
        max_workers=config.max_workers,
        ctx=ctx,
    )
    _print_names(names, as_json=args.as_json, empty_message=f"No THORNames owned by {args.address}.")


def cmd_height(args: argparse.Namespace, config: IndexConfig, log: SQLiteEventLog, ctx: QueryContext) -> None:
    height = _resolve_height(args, config, log, ctx)
    if args.as_json:
        print(json.dumps({"height": height}))
    else:
        print(height)


COMMANDS = {
    "lookup": cmd_lookup,
    "by-address": cmd_by_address,
    "by-owner": cmd_by_owner,
    "height": cmd_height,
}


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        command = COMMANDS.get(args.command)
        if command is None:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
        config = _config_from_args(args)
        log = SQLiteEventLog(config.db_path)
        ctx = QueryContext.with_timeout(config.query_timeout)
        command(args, config, log, ctx)
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (CLIError, ConfigurationError, DataSourceError, QueryCancelled) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
