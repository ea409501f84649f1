"""CLI dispatcher: argument parsing and routing to the command modules."""

import argparse
import sys
from typing import Callable

from .common import add_verbosity_args


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="rdump",
        description="Snapshot, checksum and archive filesystems with borg",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    add_verbosity_args(parser)

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands (use 'command --help' for details)",
    )

    # backup command
    backup_parser = subparsers.add_parser(
        "backup",
        help="Back up the configured volumes",
        description="Snapshot each volume, run its actions, and clean up",
    )
    backup_parser.add_argument(
        "-n",
        "--dry-run",
        "--pretend",
        dest="dry_run",
        action="store_true",
        help="Show what would be done without running any command",
    )
    backup_parser.add_argument(
        "names",
        metavar="NAME",
        nargs="*",
        help="Only back up the named volume(s)",
    )

    # list command
    subparsers.add_parser(
        "list",
        help="Show configured volumes",
        description="List every configured volume with its kind and actions",
    )

    # config command with subcommands
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Validate or initialize configuration",
    )
    config_subs = config_parser.add_subparsers(dest="config_action")

    config_subs.add_parser(
        "validate",
        help="Validate configuration file",
    )

    init_parser = config_subs.add_parser(
        "init",
        help="Generate example configuration",
    )
    init_parser.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        help="Output file (default: stdout)",
    )

    return parser


def run_subcommand(args: argparse.Namespace) -> int:
    """Run the specified subcommand.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    from .. import __version__

    if args.version:
        print(f"rdump {__version__}")
        return 0

    if not args.command:
        print("No command specified. Use --help for usage information.")
        return 1

    handlers: dict[str, Callable] = {
        "backup": cmd_backup,
        "list": cmd_list,
        "config": cmd_config,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


def cmd_backup(args: argparse.Namespace) -> int:
    """Execute backup command."""
    from .backup import execute_backup

    return execute_backup(args)


def cmd_list(args: argparse.Namespace) -> int:
    """Execute list command."""
    from .list_cmd import execute_list

    return execute_list(args)


def cmd_config(args: argparse.Namespace) -> int:
    """Execute config command."""
    from .config_cmd import execute_config

    return execute_config(args)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the rdump CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    return run_subcommand(args)
