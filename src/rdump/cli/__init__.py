"""Command line interface for rdump."""

from .dispatcher import main

__all__ = ["main"]
