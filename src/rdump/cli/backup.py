"""Backup command: run every selected volume through its actions."""

import argparse
import logging
import time

from rich.console import Console
from rich.table import Table

from .. import __util__
from ..config import Config, ConfigError
from ..core import Orchestrator, RunContext, RunSummary
from ..tools import Toolkit
from .common import load_for_command, setup_logging

logger = logging.getLogger(__name__)


def execute_backup(args: argparse.Namespace) -> int:
    """Execute the backup command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 when every selected volume succeeded)
    """
    setup_logging(args)

    config = load_for_command(args)
    if config is None:
        return 1
    if config.global_config.log_file:
        setup_logging(args, config.global_config.log_file)

    names = getattr(args, "names", None) or []
    unknown = config.unknown_names(names)
    if unknown:
        logger.error("Unknown volume(s): %s", ", ".join(unknown))
        return 1

    volumes = config.select(names)
    if not volumes:
        logger.error("No volumes to back up")
        return 1

    context = RunContext(
        global_config=config.global_config,
        tools=Toolkit.from_config(config.global_config),
    )
    orchestrator = Orchestrator(context)

    try:
        if getattr(args, "dry_run", False):
            return _dry_run(orchestrator, config, volumes)

        logger.info(__util__.log_heading(f"Started at {time.ctime()}"))
        with orchestrator.deferred_signals():
            summary = orchestrator.run_all(volumes)
        logger.info(__util__.log_heading(f"Finished at {time.ctime()}"))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1

    print_summary(summary)
    return summary.exit_code


def _dry_run(orchestrator: Orchestrator, config: Config, volumes) -> int:
    """Show what would be done without running any command."""
    print("Dry run mode - showing what would be done:")
    print("")
    print(f"Run stamp: {orchestrator.context.stamp}")
    print(f"Borg wrapper: {config.global_config.borg}")
    print("")

    for name, steps in orchestrator.describe(volumes):
        print(f"Volume: {name}")
        for step in steps:
            print(f"  {step}")
        print("")

    return 0


def print_summary(summary: RunSummary, console: Console | None = None) -> None:
    """Render the per-volume outcome table."""
    console = console or Console()
    table = Table(title="Backup summary")
    table.add_column("Volume")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Actions")
    table.add_column("Time", justify="right")

    for outcome in summary.outcomes:
        if outcome.success:
            status = "[green]ok[/green]"
        elif outcome.failed_stage is None:
            status = f"[yellow]{outcome.status}[/yellow]"
        else:
            status = f"[red]{outcome.status}[/red]"
        table.add_row(
            outcome.name,
            outcome.kind,
            status,
            ", ".join(outcome.completed) or "-",
            f"{outcome.duration_seconds:.1f}s",
        )

    console.print(table)
    for outcome in summary.outcomes:
        if outcome.error is not None:
            console.print(f"[red]{outcome.name}[/red]: {outcome.error}")
    if summary.leaked:
        console.print("[bold red]Manual cleanup required:[/bold red]")
        for desc in summary.leaked:
            console.print(f"  {desc}")
