# pyright: standard

"""rdump: rdump/tools/borg.py
Borg archives, created through a site-specific wrapper script.

The wrapper supplies the repository location and passphrase, so rdump
never sees either.
"""

from pathlib import Path

from rdump.__logger__ import logger

from .base import BackupTool
from .common import CommandRunner


class ShellBorg(BackupTool):
    """BackupTool invoking ``<wrapper> create``."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    @staticmethod
    def build_create_command(mount_path, wrapper_path, archive_name) -> list[str]:
        return [
            wrapper_path,
            "create",
            "--exclude-caches",
            "-x",
            "--stat",
            f"::{archive_name}",
            str(mount_path),
        ]

    def archive(self, mount_path: Path, wrapper_path, archive_name) -> None:
        logger.info("Running borg backup of %s as %s", mount_path, archive_name)
        cmd = self.build_create_command(mount_path, wrapper_path, archive_name)
        # borg holds its own repository lock, and can run for hours
        self.runner.run(cmd, locked=False)
