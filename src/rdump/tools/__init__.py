# pyright: standard

"""rdump: rdump/tools/__init__.py."""

from dataclasses import dataclass

from .base import (
    BackupTool,
    IntegrityTool,
    LvmTool,
    ManifestHandle,
    SyncTool,
    ZfsTool,
)
from .borg import ShellBorg
from .common import CommandRunner, ToolError
from .lvm import ShellLvm
from .rsure import ShellRsure
from .rsync import ShellRsync
from .zfs import ShellZfs


@dataclass
class Toolkit:
    """The set of tool adapters a run uses."""

    backup: BackupTool
    integrity: IntegrityTool
    lvm: LvmTool
    zfs: ZfsTool
    sync: SyncTool

    @classmethod
    def from_config(cls, global_config, runner=None) -> "Toolkit":
        """Build the shell-command adapters for ``global_config``."""
        runner = runner or CommandRunner(sudo=global_config.sudo)
        return cls(
            backup=ShellBorg(runner),
            integrity=ShellRsure(runner, executable=global_config.rsure),
            lvm=ShellLvm(runner),
            zfs=ShellZfs(runner),
            sync=ShellRsync(runner),
        )


__all__ = [
    "BackupTool",
    "CommandRunner",
    "IntegrityTool",
    "LvmTool",
    "ManifestHandle",
    "SyncTool",
    "Toolkit",
    "ToolError",
    "ZfsTool",
]
