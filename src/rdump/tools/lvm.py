# pyright: standard

"""rdump: rdump/tools/lvm.py
LVM2 snapshot volumes through lvcreate/lvremove and mount/umount.
"""

from pathlib import Path

from rdump.__logger__ import logger

from .base import LvmTool
from .common import CommandRunner


class ShellLvm(LvmTool):
    """LvmTool running the LVM2 command line tools."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def snapshot_exists(self, vg, lv_snap) -> bool:
        return self.runner.succeeds(
            ["lvs", "--noheadings", "-o", "lv_name", f"{vg}/{lv_snap}"]
        )

    def create_snapshot(self, vg, lv, lv_snap, size) -> None:
        logger.info("LVM2 snapshot of %s/%s to %s", vg, lv, lv_snap)
        self.runner.run(["lvcreate", "-L", size, "-s", "-n", lv_snap, f"{vg}/{lv}"])

    def remove_snapshot(self, vg, lv_snap) -> None:
        logger.info("Removing LVM2 snapshot %s/%s", vg, lv_snap)
        self.runner.run(["lvremove", "-f", f"{vg}/{lv_snap}"])

    def mount(self, device, path: Path, options) -> None:
        logger.info("Mounting %s at %s", device, path)
        self.runner.run(["mkdir", "-p", str(path)])
        self.runner.run(["mount", device, "-o", options, str(path)])

    def unmount(self, path: Path) -> None:
        logger.info("Unmounting %s", path)
        self.runner.run(["umount", str(path)])
