"""List command: Show configured volumes."""

import argparse
import logging

from rich.console import Console
from rich.table import Table

from ..config.schema import ZfsReplication
from .common import load_for_command, setup_logging

logger = logging.getLogger(__name__)


def _location(volume) -> str:
    if isinstance(volume, ZfsReplication):
        return f"{volume.source} -> {volume.destination}"
    return volume.mount


def execute_list(args: argparse.Namespace) -> int:
    """Execute the list command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    setup_logging(args)

    config = load_for_command(args)
    if config is None:
        return 1

    table = Table(title="Configured volumes")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Location")
    table.add_column("Actions")
    table.add_column("Mirror")

    for volume in config.volumes:
        table.add_row(
            volume.name,
            volume.kind,
            _location(volume),
            ", ".join(volume.actions) or "-",
            volume.mirror.volume if volume.mirror else "-",
        )

    Console().print(table)
    return 0
