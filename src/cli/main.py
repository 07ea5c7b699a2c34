"""Tidemark CLI entry points.
This module exposes read-mostly commands for inspecting a table timeline.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from typing import Any, Sequence

from core.config import TidemarkConfig, normalize_table_root
from core.types import COMPLETED, INSTANT_STATES, VALID_ACTIONS, Instant
from timeline.active_timeline import ActiveTimeline, open_timeline
from timeline.extensions import ACTIVE_TIMELINE_EXTENSIONS


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="tidemark", description="Tidemark timeline CLI")
    parser.add_argument("--table-root", help="Override TIDEMARK_TABLE_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_instants_command(subparsers)
    _add_show_command(subparsers)
    _add_extensions_command(subparsers)
    _add_new_instant_time_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Tidemark CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "extensions":
        return _run_extensions_command()
    config = _build_config(args.table_root)
    if args.command == "instants":
        return _run_instants_command(config, args)
    if args.command == "show":
        return _run_show_command(config, args)
    if args.command == "new-instant-time":
        return _run_new_instant_time_command(config, args)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(table_root: str | None) -> TidemarkConfig:
    """Build config with optional table-root override.

    Args:
        table_root: Optional override path or S3 URI.

    Returns:
        Runtime config.
    """
    config = TidemarkConfig.from_env()
    if table_root:
        config = replace(config, table_root=normalize_table_root(table_root))
    return config


def _run_instants_command(config: TidemarkConfig, args: argparse.Namespace) -> int:
    """Handle instants command.

    Args:
        config: Runtime config.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    timeline = open_timeline(config, apply_layout_filter=not args.all_states)
    view = timeline
    if args.completed:
        view = timeline.filter_completed_instants()
    elif args.pending:
        view = timeline.filter_pending_instants()
    for instant in view:
        print(
            f"{instant.requested_time}\t"
            f"{instant.action}\t"
            f"{instant.state}\t"
            f"{instant.completion_time or '-'}"
        )
    return 0


def _run_show_command(config: TidemarkConfig, args: argparse.Namespace) -> int:
    """Handle show command.

    Args:
        config: Runtime config.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    timeline: ActiveTimeline = open_timeline(config)
    instant = Instant(state=args.state, action=args.action, requested_time=args.requested_time)
    content = timeline.get_instant_details(instant)
    print(content.decode("utf-8", errors="replace"))
    return 0


def _run_extensions_command() -> int:
    """Handle extensions command."""
    for action, state in ACTIVE_TIMELINE_EXTENSIONS.pairs():
        extension = ACTIVE_TIMELINE_EXTENSIONS.extension_for(action, state)
        print(f"{extension}\t{action}\t{state}")
    return 0


def _run_new_instant_time_command(config: TidemarkConfig, args: argparse.Namespace) -> int:
    """Handle new-instant-time command."""
    timeline = open_timeline(config)
    print(timeline.create_new_instant_time(should_lock=not args.no_lock))
    return 0


def _add_instants_command(subparsers: Any) -> None:
    """Register instants subcommand."""
    parser = subparsers.add_parser("instants", help="List timeline instants")
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--completed", action="store_true", help="Only completed instants")
    selection.add_argument("--pending", action="store_true", help="Only pending instants")
    parser.add_argument(
        "--all-states",
        action="store_true",
        help="Show every stage file instead of each instant's latest state",
    )


def _add_show_command(subparsers: Any) -> None:
    """Register show subcommand."""
    parser = subparsers.add_parser("show", help="Print an instant's payload")
    parser.add_argument("requested_time", help="Requested time of the instant")
    parser.add_argument("--action", required=True, choices=VALID_ACTIONS, help="Instant action")
    parser.add_argument(
        "--state",
        default=COMPLETED,
        choices=INSTANT_STATES,
        help="Instant state",
    )


def _add_extensions_command(subparsers: Any) -> None:
    """Register extensions subcommand."""
    subparsers.add_parser("extensions", help="List registered timeline file extensions")


def _add_new_instant_time_command(subparsers: Any) -> None:
    """Register new-instant-time subcommand."""
    parser = subparsers.add_parser("new-instant-time", help="Mint a new instant time")
    parser.add_argument(
        "--no-lock",
        action="store_true",
        help="Skip the configured timeline lock",
    )
