# pyright: standard

"""rdump: rdump/tools/rsync.py
Mirroring a tree into a ZFS dataset with rsync.
"""

from pathlib import Path

from rdump.__logger__ import logger

from .base import SyncTool
from .common import CommandRunner

RSYNC = "rsync"


class ShellRsync(SyncTool):
    """SyncTool running ``rsync -aHx --delete``."""

    def __init__(self, runner: CommandRunner, acls=True, verbose=False) -> None:
        self.runner = runner
        self.acls = acls
        self.verbose = verbose

    def build_command(self, src: Path, dest: Path) -> list[str]:
        cmd = [RSYNC, "-aHx", "--delete"]
        if self.verbose:
            cmd.append("-i")
        if self.acls:
            cmd.append("-AX")
        # Trailing "/." copies the contents, never the directory itself
        cmd += [f"{src}/.", f"{dest}/."]
        return cmd

    def sync(self, src: Path, dest: Path) -> None:
        logger.info("Rsyncing from %s to %s", src, dest)
        self.runner.run(self.build_command(src, dest), locked=False)
