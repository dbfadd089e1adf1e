"""
CLI entry point for staggered cleanup.

Recommended: run once daily, outside business hours.

    python -m src.cleanup run --server sql01 --minutes-to-run 240 --percentage-to-keep 50
    python -m src.cleanup plan --server sql01
"""

import argparse
import json
import logging
import os
import signal
import sys
from typing import List, Optional

from pydantic import ValidationError

from src.control_plane.query_store import QueryStorePlatform
from src.infra.logging_config import LOGGER_NAME, setup_logging
from src.infra.settings import load_run_config, load_sqlcmd_settings

from .errors import CleanupRunError, DiscoveryError
from .report import plan_to_response, result_to_report
from .scheduler import CleanupScheduler


# Exit codes
EXIT_SUCCESS = 0
EXIT_RUN_FAILED = 1
EXIT_DISCOVERY_FAILED = 2
EXIT_INVALID_INPUT = 3
EXIT_INTERRUPTED = 130


logger = logging.getLogger(LOGGER_NAME)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stagger Query Store size-based cleanup across databases"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Directory for daily log files (default: LOG_DIR or logs)"
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        default=False,
        help="Log to the console only"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("run", "Run a staggered cleanup"),
        ("plan", "Print the lowering timeline without changing anything"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--server",
            type=str,
            default=None,
            help="SQL Server instance (default: SQLCMD_SERVER)"
        )
        sub.add_argument(
            "--minutes-to-run",
            type=int,
            default=None,
            help="Maximum runtime; cleanup is staggered across it (default: 240)"
        )
        sub.add_argument(
            "--percentage-to-keep",
            type=int,
            default=None,
            help="Percentage of the max size kept during cleanup, 1-100 (default: 50)"
        )
        sub.add_argument(
            "--minutes-per-resource",
            type=int,
            default=None,
            help="Minutes size-based cleanup needs per database (default: 35)"
        )
        sub.add_argument(
            "--json",
            action="store_true",
            default=False,
            help="Print the result as JSON"
        )

    return parser


def _build_scheduler(args: argparse.Namespace) -> CleanupScheduler:
    config = load_run_config(
        minutes_to_run=args.minutes_to_run,
        percentage_to_keep=args.percentage_to_keep,
        minutes_per_resource=args.minutes_per_resource,
    )
    platform = QueryStorePlatform(load_sqlcmd_settings(args.server))
    return CleanupScheduler(platform, config)


def cmd_plan(scheduler: CleanupScheduler, as_json: bool) -> int:
    steps = scheduler.plan()
    planned = plan_to_response(steps)

    if as_json:
        print(json.dumps([entry.model_dump() for entry in planned], indent=2))
        return EXIT_SUCCESS

    if not planned:
        print("No eligible databases found.")
        return EXIT_SUCCESS

    for entry in planned:
        minutes = entry.offset_seconds / 60
        print(
            f"+{minutes:7.1f} min  {entry.resource_id}  "
            f"-> {entry.target_capacity} MB"
        )
    return EXIT_SUCCESS


def _raise_interrupt(signum, frame):
    """SIGTERM handler: unwind the run like Ctrl-C so pending resources get restored."""
    raise KeyboardInterrupt(f"received signal {signum}")


def cmd_run(scheduler: CleanupScheduler, as_json: bool) -> int:
    previous_handler = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        result = scheduler.run()
    except CleanupRunError as e:
        if as_json and e.result is not None:
            print(result_to_report(e.result).model_dump_json(indent=2))
        print(f"Error {e.code}: {e.message}", file=sys.stderr)
        return EXIT_RUN_FAILED
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    if as_json:
        print(result_to_report(result).model_dump_json(indent=2))
    else:
        print(f"Databases: {len(result.resources)}")
        print(f"Completed: {len(result.completed)}")
        if result.force_restored:
            print(f"Force-restored: {', '.join(result.force_restored)}")
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_INVALID_INPUT

    log_dir = None if args.no_log_file else (args.log_dir or os.getenv("LOG_DIR", "logs"))
    setup_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"), log_dir=log_dir)

    try:
        scheduler = _build_scheduler(args)
    except (ValidationError, ValueError) as e:
        logger.error(f"Invalid input: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    try:
        if args.command == "plan":
            return cmd_plan(scheduler, args.json)
        return cmd_run(scheduler, args.json)
    except DiscoveryError as e:
        logger.error(f"Discovery failed: {e}")
        print(f"Error: discovery failed: {e}", file=sys.stderr)
        return EXIT_DISCOVERY_FAILED
    except KeyboardInterrupt:
        logger.warning("Cleanup interrupted")
        print("Interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception:
        logger.exception("Unexpected error during cleanup")
        raise
