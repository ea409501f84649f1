"""Snapshot lifecycle: acquiring a stable mount for a volume and releasing it.

Every provider turns a volume into a LifecycleResource, a mount that stays
still while the actions run, together with the ordered steps that undo
whatever was created to get it. Names are derived from the configuration
(never generated at random) so a resource left behind by a crashed run is
found by the next ``acquire`` instead of being silently reused or leaked.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from ..__util__ import RdumpError
from ..config.schema import (
    LvmVolume,
    Volume,
    ZfsVolume,
    mount_path,
)

logger = logging.getLogger(__name__)


class LifecycleError(RdumpError):
    """Acquiring or releasing a volume's resource failed.

    ``teardown_errors`` holds (step description, exception) pairs for any
    cleanup that also failed while unwinding a partial acquisition.
    """

    def __init__(self, message: str, teardown_errors=None) -> None:
        super().__init__(message)
        self.teardown_errors: list[tuple[str, Exception]] = list(teardown_errors or [])


class SnapshotExists(LifecycleError):
    """The snapshot this run would create is already there."""


class CloneExists(LifecycleError):
    """The clone dataset this run would create is already there."""


class MountFailed(LifecycleError):
    """A snapshot was created but could not be mounted."""


class ToolInvocationFailed(LifecycleError):
    """A storage tool failed while acquiring."""


class TeardownFailed(LifecycleError):
    """One or more teardown steps failed; resources are left behind."""

    def __init__(self, volume_name: str, errors) -> None:
        steps = "; ".join(f"{desc}: {err}" for desc, err in errors)
        super().__init__(
            f"teardown of '{volume_name}' incomplete: {steps}", teardown_errors=errors
        )

    @property
    def leaked(self) -> list[str]:
        return [desc for desc, _ in self.teardown_errors]


@dataclass
class TeardownStep:
    """One obligation incurred while acquiring."""

    description: str
    undo: Callable[[], None]


@dataclass
class LifecycleResource:
    """A backup-ready mount and what it takes to give it back.

    Attributes:
        volume_name: Volume this resource was acquired for
        mount: Path the actions work on (None for replication entries)
        source_mount: Live mount of the volume
        teardown: Steps in creation order; released in reverse
        prepared: True once the mount is stable and ready for actions
        manifest_copied: Copy-back already happened for this acquisition
        snapshot: Snapshot backing the mount, when there is a named one
    """

    volume_name: str
    mount: Optional[Path]
    source_mount: Optional[Path]
    teardown: list[TeardownStep] = field(default_factory=list)
    prepared: bool = False
    manifest_copied: bool = False
    snapshot: Optional[str] = None

    @property
    def isolated(self) -> bool:
        """Whether actions run on a copy rather than the live mount."""
        return self.mount is not None and self.mount != self.source_mount

    @property
    def pending_teardown(self) -> list[str]:
        return [step.description for step in self.teardown]


def run_teardown(steps: list[TeardownStep]) -> list[tuple[str, Exception]]:
    """Run and consume ``steps`` newest first, collecting failures.

    A failing step never prevents the steps before it from being tried.
    """
    errors = []
    while steps:
        step = steps.pop()
        logger.info("Cleanup: %s", step.description)
        try:
            step.undo()
        except Exception as e:
            logger.error("Cleanup step failed: %s: %s", step.description, e)
            errors.append((step.description, e))
    return errors


class LifecycleProvider(ABC):
    """Acquire/release contract shared by every volume kind."""

    def __init__(self, context) -> None:
        self.context = context

    @abstractmethod
    def acquire(self, volume: Volume) -> LifecycleResource:
        """Return a prepared resource, or raise LifecycleError.

        On failure nothing this call created is left behind, except where
        its own teardown failed; those failures ride on the exception.
        """

    @abstractmethod
    def describe(self, volume: Volume) -> list[str]:
        """What ``acquire`` would do, for dry runs."""

    def release(self, resource: LifecycleResource) -> None:
        """Run all of the resource's teardown steps.

        Raises TeardownFailed after every step has been attempted if any
        of them failed. Releasing twice is harmless.
        """
        errors = run_teardown(resource.teardown)
        if errors:
            raise TeardownFailed(resource.volume_name, errors)

    def _unwind(self, resource, error_cls, message, cause):
        errors = run_teardown(resource.teardown)
        raise error_cls(message, teardown_errors=errors) from cause


class PassthroughProvider(LifecycleProvider):
    """Uses the live mount as is; nothing to create, nothing to release.

    This is the Simple volume lifecycle. It offers no isolation: the
    actions see the filesystem while it is in use.
    """

    def acquire(self, volume) -> LifecycleResource:
        mount = mount_path(volume)
        return LifecycleResource(
            volume_name=volume.name,
            mount=mount,
            source_mount=mount,
            prepared=True,
        )

    def describe(self, volume) -> list[str]:
        if volume.mount is None:
            return []
        return [f"Use live mount {volume.mount}"]


class LvmProvider(LifecycleProvider):
    """Copy-on-write LVM2 snapshot, mounted read-write at ``snap``."""

    def acquire(self, volume: LvmVolume) -> LifecycleResource:
        lvm = self.context.tools.lvm
        size = self.context.global_config.lvm_snapshot_size
        snap_lv = f"{volume.vg}/{volume.lv_snap}"
        snap_mount = Path(volume.snap)

        resource = LifecycleResource(
            volume_name=volume.name,
            mount=snap_mount,
            source_mount=Path(volume.mount),
            snapshot=snap_lv,
        )

        try:
            exists = lvm.snapshot_exists(volume.vg, volume.lv_snap)
        except Exception as e:
            raise ToolInvocationFailed(f"cannot query {snap_lv}: {e}") from e
        if exists:
            raise SnapshotExists(
                f"LVM snapshot {snap_lv} already exists, probably left by an "
                "earlier run; check and remove it by hand"
            )

        try:
            lvm.create_snapshot(volume.vg, volume.lv, volume.lv_snap, size)
        except Exception as e:
            raise ToolInvocationFailed(f"cannot create {snap_lv}: {e}") from e
        resource.teardown.append(
            TeardownStep(
                f"remove LVM snapshot {snap_lv}",
                partial(lvm.remove_snapshot, volume.vg, volume.lv_snap),
            )
        )

        try:
            lvm.mount(volume.device, snap_mount, volume.mount_options)
        except Exception as e:
            self._unwind(
                resource,
                MountFailed,
                f"cannot mount {volume.device} at {snap_mount}: {e}",
                e,
            )
        resource.teardown.append(
            TeardownStep(f"unmount {snap_mount}", partial(lvm.unmount, snap_mount))
        )

        resource.prepared = True
        logger.info("Snapshot %s mounted at %s", snap_lv, snap_mount)
        return resource

    def describe(self, volume: LvmVolume) -> list[str]:
        return [
            f"LVM2 snapshot of {volume.vg}/{volume.lv} to {volume.lv_snap}",
            f"Mount {volume.device} at {volume.snap} ({volume.mount_options})",
        ]


class ZfsCloneProvider(LifecycleProvider):
    """ZFS snapshot of the dataset plus a writable clone of it.

    Only the clone is destroyed on release; the read-only snapshot is kept
    as a record of what was backed up.
    """

    def acquire(self, volume: ZfsVolume) -> LifecycleResource:
        zfs = self.context.tools.zfs
        snap_name = volume.snapshot_name(self.context.stamp)
        snapshot = f"{volume.volume}@{snap_name}"
        clone_mount = Path(volume.clone_mount)

        resource = LifecycleResource(
            volume_name=volume.name,
            mount=clone_mount,
            source_mount=Path(volume.mount),
            snapshot=snapshot,
        )

        # Both checks run before anything is created
        try:
            snapshot_exists = zfs.exists(snapshot)
            clone_exists = zfs.exists(volume.clone)
        except Exception as e:
            raise ToolInvocationFailed(f"cannot query zfs: {e}") from e
        if snapshot_exists:
            raise SnapshotExists(f"ZFS snapshot {snapshot} already exists")
        if clone_exists:
            raise CloneExists(
                f"ZFS clone {volume.clone} already exists, probably left by an "
                "earlier run; check and destroy it by hand"
            )

        try:
            zfs.snapshot(volume.volume, snap_name)
        except Exception as e:
            raise ToolInvocationFailed(f"cannot snapshot {volume.volume}: {e}") from e

        try:
            zfs.clone(snapshot, volume.clone, clone_mount)
        except Exception as e:
            self._unwind(
                resource,
                ToolInvocationFailed,
                f"cannot clone {snapshot} to {volume.clone}: {e}",
                e,
            )
        resource.teardown.append(
            TeardownStep(
                f"destroy ZFS clone {volume.clone}", partial(zfs.destroy, volume.clone)
            )
        )

        resource.prepared = True
        logger.info("Clone %s of %s mounted at %s", volume.clone, snapshot, clone_mount)
        return resource

    def describe(self, volume: ZfsVolume) -> list[str]:
        snap_name = volume.snapshot_name(self.context.stamp)
        return [
            f"Zfs snapshot {volume.volume}@{snap_name}",
            f"Zfs clone to {volume.clone} at {volume.clone_mount}",
        ]


def provider_for(volume: Volume, context) -> LifecycleProvider:
    """Pick the lifecycle for ``volume``.

    Snapshot-capable volumes only get a snapshot when their action list
    asks for one with "snap".
    """
    if "snap" in volume.actions:
        if isinstance(volume, LvmVolume):
            return LvmProvider(context)
        if isinstance(volume, ZfsVolume):
            return ZfsCloneProvider(context)
    return PassthroughProvider(context)
