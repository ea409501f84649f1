"""Shared CLI utilities and argument parsers."""

import argparse
import logging

from ..__logger__ import create_logger
from ..config import ConfigError, find_config_file, load_config

logger = logging.getLogger(__name__)


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add verbosity-related arguments to a parser."""
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings and errors",
    )
    group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output, including every command executed",
    )


def get_log_level(args: argparse.Namespace) -> str:
    """Determine log level from parsed arguments.

    Args:
        args: Parsed command line arguments

    Returns:
        Log level string (DEBUG, INFO, WARNING)
    """
    if getattr(args, "debug", False):
        return "DEBUG"
    elif getattr(args, "quiet", False):
        return "WARNING"
    elif getattr(args, "verbose", False):
        return "DEBUG"
    else:
        return "INFO"


def load_for_command(args: argparse.Namespace):
    """Find and load the configuration a command works on.

    Logs every loader warning. Returns None, after logging why, when no
    usable configuration exists.
    """
    try:
        config_path = find_config_file(getattr(args, "config", None))
        if config_path is None:
            logger.error("No configuration file found")
            logger.error("Create one with: rdump config init -o rdump.toml")
            return None

        logger.info("Loading configuration from: %s", config_path)
        config, warnings = load_config(config_path)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return None

    for warning in warnings:
        logger.warning("Config: %s", warning)
    return config


def setup_logging(args: argparse.Namespace, log_file: str | None = None) -> None:
    create_logger(get_log_level(args), log_file)
