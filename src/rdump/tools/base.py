"""Abstract contracts for the external tools rdump drives.

The lifecycle controller and the action pipeline only ever talk to these
interfaces. The shell implementations live in the sibling modules; tests
substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ManifestHandle:
    """The manifest an integrity scan left behind.

    Attributes:
        path: Manifest file inside the scanned mount
        updated: True when an existing manifest was updated, False for a
            fresh scan
    """

    path: Path
    updated: bool


class BackupTool(ABC):
    """Archives a mounted tree into the backup repository."""

    @abstractmethod
    def archive(self, mount_path: Path, wrapper_path: str, archive_name: str) -> None:
        """Archive ``mount_path`` as ``archive_name`` via ``wrapper_path``."""


class IntegrityTool(ABC):
    """Maintains the integrity manifest at the root of a tree."""

    @abstractmethod
    def update_manifest(
        self, mount_path: Path, manifest_name: str, tags: dict[str, str]
    ) -> ManifestHandle:
        """Scan ``mount_path`` and write ``mount_path/manifest_name``."""


class LvmTool(ABC):
    """LVM2 snapshot volumes and the mounts made of them."""

    @abstractmethod
    def snapshot_exists(self, vg: str, lv_snap: str) -> bool: ...

    @abstractmethod
    def create_snapshot(self, vg: str, lv: str, lv_snap: str, size: str) -> None: ...

    @abstractmethod
    def remove_snapshot(self, vg: str, lv_snap: str) -> None: ...

    @abstractmethod
    def mount(self, device: str, path: Path, options: str) -> None: ...

    @abstractmethod
    def unmount(self, path: Path) -> None: ...


class ZfsTool(ABC):
    """ZFS datasets, snapshots and clones."""

    @abstractmethod
    def exists(self, name: str, host: Optional[str] = None) -> bool:
        """Whether a dataset or snapshot (``dataset@snap``) exists."""

    @abstractmethod
    def snapshot(self, dataset: str, name: str) -> None: ...

    @abstractmethod
    def clone(self, snapshot: str, dataset: str, mountpoint: Path) -> None: ...

    @abstractmethod
    def destroy(self, name: str) -> None: ...

    @abstractmethod
    def list_snapshots(self, dataset: str, host: Optional[str] = None) -> list[str]:
        """Snapshot names (after the '@') of ``dataset``, oldest first."""

    @abstractmethod
    def send_receive(self, source, destination) -> None:
        """Bring ``destination`` up to date with ``source`` (ZfsEndpoints)."""


class SyncTool(ABC):
    """Makes one directory tree an exact copy of another."""

    @abstractmethod
    def sync(self, src: Path, dest: Path) -> None: ...
