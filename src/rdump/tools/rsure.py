# pyright: standard

"""rdump: rdump/tools/rsure.py
Integrity manifests maintained by rsure.
"""

from pathlib import Path

from rdump.__logger__ import logger

from .base import IntegrityTool, ManifestHandle
from .common import CommandRunner


class ShellRsure(IntegrityTool):
    """IntegrityTool running the rsure command line.

    A fresh ``scan`` is made when the mount has no manifest yet, otherwise
    the existing one is ``update``d so rsure can reuse unchanged hashes.
    """

    def __init__(self, runner: CommandRunner, executable="rsure") -> None:
        self.runner = runner
        self.executable = executable

    def build_command(self, surefile: Path, mount_path: Path, update, tags):
        cmd = [
            self.executable,
            "--file",
            str(surefile),
            "--dir",
            str(mount_path),
            "update" if update else "scan",
        ]
        for key, value in sorted(tags.items()):
            cmd += ["--tag", f"{key}={value}"]
        return cmd

    def update_manifest(self, mount_path: Path, manifest_name, tags) -> ManifestHandle:
        surefile = Path(mount_path) / manifest_name
        is_update = surefile.is_file()
        logger.info("Rsure scan of %s to %s", mount_path, surefile)
        self.runner.run(
            self.build_command(surefile, Path(mount_path), is_update, tags),
            locked=False,
        )
        return ManifestHandle(path=surefile, updated=is_update)
