"""Configuration schema definitions using dataclasses.

Defines the structure for TOML configuration. Every volume kind carries
``name``, ``mount`` and an ordered ``actions`` list; the snapshot-capable
kinds add what their lifecycle needs.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .. import encode_name


@dataclass(frozen=True)
class MirrorConfig:
    """Secondary ZFS dataset that receives an rsync copy of a volume.

    Attributes:
        volume: ZFS dataset name of the mirror (e.g. "tank/mirror/root")
        mount: Where that dataset is mounted
    """

    volume: str
    mount: str


@dataclass
class SimpleVolume:
    """A volume backed up straight from its live mount.

    No isolation is provided: rsure and borg see the filesystem while it
    changes underneath them.

    Attributes:
        name: Unique identifier, used for logs and archive names
        mount: Live filesystem path
        actions: Ordered action kinds
        mirror: Optional ZFS mirror block
    """

    name: str
    mount: str
    actions: list[str] = field(default_factory=list)
    mirror: Optional[MirrorConfig] = None

    kind = "simple"


@dataclass
class LvmVolume:
    """A volume on an LVM2 logical volume, backed up from a snapshot LV.

    Attributes:
        name: Unique identifier
        mount: Live filesystem path
        actions: Ordered action kinds
        snap: Mount point for the snapshot LV
        vg: Volume group
        lv: Logical volume being backed up
        lv_snap: Name given to the transient snapshot LV
        fs: Filesystem type ("ext4", "xfs", ...)
        mirror: Optional ZFS mirror block
    """

    name: str
    mount: str
    actions: list[str]
    snap: str
    vg: str
    lv: str
    lv_snap: str
    fs: str
    mirror: Optional[MirrorConfig] = None

    kind = "lvm"

    @property
    def device(self) -> str:
        return f"/dev/{self.vg}/{self.lv_snap}"

    @property
    def mount_options(self) -> str:
        # xfs refuses to mount a second filesystem with the same uuid
        if self.fs == "xfs":
            return "nouuid,noatime"
        return "noatime"


@dataclass
class ZfsVolume:
    """A local ZFS dataset, backed up from a writable clone of a snapshot.

    Attributes:
        name: Unique identifier
        mount: Live mountpoint of ``volume``
        actions: Ordered action kinds
        volume: Dataset being backed up
        clone_mount: Mountpoint given to the clone
        clone: Clone dataset name; derived from ``name`` when not set
        manifest_snapshot: Snapshot ``volume`` again after the manifest
            has been copied back
        mirror: Optional ZFS mirror block
    """

    name: str
    mount: str
    actions: list[str]
    volume: str
    clone_mount: str
    clone: str = ""
    manifest_snapshot: bool = False
    mirror: Optional[MirrorConfig] = None

    kind = "zfs"

    def __post_init__(self):
        if not self.clone:
            pool = self.volume.split("/", 1)[0]
            self.clone = f"{pool}/{encode_name(self.name)}-rdump-clone"

    def snapshot_name(self, stamp: str) -> str:
        return f"rdump-{encode_name(self.name)}-{stamp}"


@dataclass(frozen=True)
class ZfsEndpoint:
    """One side of a replication: a dataset, optionally on another host."""

    volume: str
    host: Optional[str] = None

    def __str__(self) -> str:
        if self.host:
            return f"{self.host}:{self.volume}"
        return self.volume


@dataclass
class ZfsReplication:
    """A dataset replicated with zfs send/receive; nothing is mounted.

    Attributes:
        name: Unique identifier
        source: Dataset being replicated
        destination: Dataset receiving the stream
        actions: Only "sync" is meaningful here
    """

    name: str
    source: ZfsEndpoint
    destination: ZfsEndpoint
    actions: list[str] = field(default_factory=lambda: ["sync"])
    mirror: Optional[MirrorConfig] = None

    kind = "replication"

    @property
    def mount(self) -> None:
        return None


Volume = Union[SimpleVolume, LvmVolume, ZfsVolume, ZfsReplication]


@dataclass(frozen=True)
class GlobalConfig:
    """Process-wide settings, read once and never changed.

    Attributes:
        borg: Path to the borg wrapper script (carries repository and
            passphrase)
        rsure: rsure executable
        manifest: Manifest file name at the root of each mount
        stamp: Stamp file written to each live mount before snapshotting
            ("" disables it)
        lvm_snapshot_size: Copy-on-write space given to each snapshot LV
        sudo: Run storage commands through sudo when not root
        log_file: Path to log file (None for no file logging)
    """

    borg: str
    rsure: str = "rsure"
    manifest: str = "2sure.dat.gz"
    stamp: str = "snapstamp"
    lvm_snapshot_size: str = "5g"
    sudo: bool = False
    log_file: Optional[str] = None


@dataclass
class Config:
    """Root configuration object.

    Attributes:
        global_config: The ``[config]`` block
        volumes: Every volume, simple first, then lvm, then zfs
    """

    global_config: GlobalConfig
    volumes: list[Volume] = field(default_factory=list)

    def select(self, names: list[str] | None = None) -> list[Volume]:
        """Return the volumes to process, in configuration order.

        An empty or missing ``names`` selects everything.
        """
        if not names:
            return list(self.volumes)
        wanted = set(names)
        return [v for v in self.volumes if v.name in wanted]

    def unknown_names(self, names: list[str]) -> list[str]:
        known = {v.name for v in self.volumes}
        return [n for n in names if n not in known]


def mount_path(volume: Volume) -> Optional[Path]:
    """The live mount of ``volume`` as a Path, None for replication."""
    if volume.mount is None:
        return None
    return Path(volume.mount)
