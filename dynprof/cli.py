"""dynprof CLI - inspect configuration and trigger on-demand profiling.

This module provides command-line tools for:
- Showing how a configuration file is parsed
- Showing the resolved controller settings
- Triggering an on-demand profiling session in a running process

Example:
    # Show the parsed base configuration
    dynprof show --file /etc/dynprof.conf

    # Ask process 1234 for a 2 second activity trace
    dynprof trigger --pid 1234 --text "ACTIVITIES_DURATION_MSECS=2000"
"""

import argparse
import json
import logging
import os
import signal
import sys
from typing import Any

import psutil

from dynprof.config import ConfigSnapshot, load_settings, read_config_file, write_config_file
from dynprof.errors import DynprofError
from dynprof.observability import configure_logging

logger = logging.getLogger(__name__)


def _print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def show_config(args: argparse.Namespace) -> int:
    """Parse a configuration file and print the resulting snapshot.

    Args:
        args: Parsed command-line arguments with optional 'file' attribute

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        path = args.file or load_settings().base_config_path
    except DynprofError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    snapshot = ConfigSnapshot().parse(read_config_file(path))
    _print_json({"path": str(path), "config": snapshot.to_dict()})
    return 0


def show_settings(args: argparse.Namespace) -> int:
    """Print the resolved controller settings."""
    try:
        settings = load_settings(args.settings_file)
    except DynprofError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    _print_json(settings.model_dump())
    return 0


def trigger(args: argparse.Namespace) -> int:
    """Send the on-demand signal to a running process.

    If --text or --config-file is given, the on-demand config file is written
    first so the target process picks it up when the signal arrives.

    Args:
        args: Parsed command-line arguments with 'pid', 'text', 'config_file'

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    signum = getattr(signal, "SIGUSR2", None)
    if signum is None:
        print("Error: SIGUSR2 is not available on this platform", file=sys.stderr)
        return 1

    if not psutil.pid_exists(args.pid):
        print(f"Error: no process with pid {args.pid}", file=sys.stderr)
        return 1

    text = args.text
    if args.config_file:
        text = read_config_file(args.config_file)
        if not text:
            print(f"Error: could not read {args.config_file}", file=sys.stderr)
            return 1

    try:
        if text is not None:
            on_demand_path = load_settings().on_demand_config_path
            write_config_file(on_demand_path, text if text.endswith("\n") else f"{text}\n")
            logger.info("Wrote on-demand config to %s", on_demand_path)
        os.kill(args.pid, signum)
    except DynprofError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: failed to signal pid {args.pid}: {e}", file=sys.stderr)
        return 1

    print(f"Sent on-demand profiling request to pid {args.pid}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dynprof",
        description="Dynamic profiling configuration tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dynprof show --file /etc/dynprof.conf
  dynprof settings
  dynprof trigger --pid 1234 --text "EVENTS_DURATION_SECS=10"
        """,
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Set logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    show_parser = subparsers.add_parser("show", help="Parse and print a configuration file")
    show_parser.add_argument(
        "--file", "-f", help="Config file (default: the base config path)"
    )
    show_parser.set_defaults(func=show_config)

    settings_parser = subparsers.add_parser("settings", help="Print controller settings")
    settings_parser.add_argument("--settings-file", help="Alternative settings YAML file")
    settings_parser.set_defaults(func=show_settings)

    trigger_parser = subparsers.add_parser(
        "trigger", help="Request on-demand profiling from a running process"
    )
    trigger_parser.add_argument("--pid", "-p", type=int, required=True, help="Target process id")
    source = trigger_parser.add_mutually_exclusive_group()
    source.add_argument("--text", "-t", help="On-demand config text to write before signalling")
    source.add_argument("--config-file", "-c", help="File whose contents become the on-demand config")
    trigger_parser.set_defaults(func=trigger)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(getattr(logging, args.log_level))

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
