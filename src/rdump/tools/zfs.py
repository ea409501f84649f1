# pyright: standard

"""rdump: rdump/tools/zfs.py
ZFS snapshots, clones and send/receive replication.
"""

import subprocess
from pathlib import Path

from rdump.__logger__ import logger

from .base import ZfsTool
from .common import CommandRunner, ToolError

ZFS = "zfs"


class ShellZfs(ZfsTool):
    """ZfsTool running the zfs command, locally or over ssh."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def exists(self, name, host=None) -> bool:
        return self.runner.succeeds(
            [ZFS, "list", "-H", "-o", "name", "-t", "all", name], host=host
        )

    def snapshot(self, dataset, name) -> None:
        logger.info("Zfs snapshot %s@%s", dataset, name)
        self.runner.run([ZFS, "snapshot", f"{dataset}@{name}"])

    def clone(self, snapshot, dataset, mountpoint: Path) -> None:
        logger.info("Zfs clone %s to %s (mounted at %s)", snapshot, dataset, mountpoint)
        self.runner.run(
            [ZFS, "clone", "-o", f"mountpoint={mountpoint}", snapshot, dataset]
        )

    def destroy(self, name) -> None:
        logger.info("Zfs destroy %s", name)
        self.runner.run([ZFS, "destroy", name])

    def list_snapshots(self, dataset, host=None) -> list[str]:
        cmd = [ZFS, "list", "-H", "-t", "snapshot", "-o", "name", "-s", "createtxg"]
        cmd += ["-d", "1", dataset]
        result = self.runner.run(cmd, capture=True, check=False, host=host)
        if result.returncode != 0:
            if "does not exist" in (result.stderr or ""):
                return []
            raise ToolError(
                self.runner.build(cmd, host=host), result.returncode, result.stderr
            )

        snaps = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            volume, sep, snap = line.partition("@")
            if not sep or volume != dataset:
                raise ToolError(cmd, None, f"unexpected zfs list output: {line!r}")
            snaps.append(snap)
        return snaps

    def send_receive(self, source, destination) -> None:
        """Replicate ``source`` into ``destination``.

        An empty destination first receives the oldest source snapshot in
        full; after that every snapshot between the newest one both sides
        share and the newest source snapshot is sent incrementally. The
        destination must not carry snapshots the source no longer has.
        """
        src_snaps = self.list_snapshots(source.volume, host=source.host)
        if not src_snaps:
            raise ToolError(
                [ZFS, "send", source.volume], None, "source volume has no snapshots"
            )
        dest_snaps = self.list_snapshots(destination.volume, host=destination.host)

        if dest_snaps:
            base = dest_snaps[-1]
            if base not in src_snaps:
                raise ToolError(
                    [ZFS, "send", source.volume],
                    None,
                    f"last destination snapshot {base!r} not present in source",
                )
        else:
            base = src_snaps[0]
            logger.info("Full send of %s@%s to %s", source, base, destination)
            self._pipe(source, destination, None, base)

        newest = src_snaps[-1]
        if base == newest:
            logger.info("%s is up to date with %s", destination, source)
            return

        logger.info(
            "Incremental send of %s from @%s to @%s into %s",
            source,
            base,
            newest,
            destination,
        )
        self._pipe(source, destination, base, newest)

    def _pipe(self, source, destination, base, snap) -> None:
        send_cmd = [ZFS, "send"]
        if base:
            send_cmd += ["-I", f"@{base}"]
        send_cmd.append(f"{source.volume}@{snap}")
        recv_cmd = [ZFS, "receive", "-vF", "-x", "mountpoint", destination.volume]

        sender = self.runner.popen(send_cmd, host=source.host, stdout=subprocess.PIPE)
        try:
            receiver = self.runner.popen(
                recv_cmd, host=destination.host, stdin=sender.stdout
            )
        except ToolError:
            sender.kill()
            sender.wait()
            raise
        finally:
            # The receiver holds its own copy of the pipe
            if sender.stdout is not None:
                sender.stdout.close()

        recv_rc = receiver.wait()
        send_rc = sender.wait()
        if send_rc != 0:
            raise ToolError(send_cmd, send_rc, "zfs send error")
        if recv_rc != 0:
            raise ToolError(recv_cmd, recv_rc, "zfs receive error")
