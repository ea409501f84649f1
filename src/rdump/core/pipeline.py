"""Action pipeline: running a volume's configured actions against its resource.

The action list is authoritative and runs in the order given. The first
failing action stops the pipeline; the caller still releases the resource.
Nothing is retried here: a failed volume is recovered by running the whole
backup again, which is safe because release leaves nothing mutable behind.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .. import encode_name
from ..__util__ import RdumpError
from ..config.loader import ConfigError
from ..config.schema import (
    LvmVolume,
    SimpleVolume,
    Volume,
    ZfsReplication,
    ZfsVolume,
)
from ..tools import ToolError
from .copyback import CopyBackError, copy_back
from .lifecycle import LifecycleResource

logger = logging.getLogger(__name__)


class ActionKind(Enum):
    """Actions a volume may list, by their configuration names."""

    SNAP = "snap"  # snapshot-prepare
    RSURE = "rsure"  # integrity-update, then copy-back
    BORG = "borg"  # backup
    MIRROR = "mirror"  # rsync into the zfs mirror, then snapshot it
    SYNC = "sync"  # zfs send/receive, replication entries only

    @property
    def needs_prepare(self) -> bool:
        """Must run on a prepared mount."""
        return self in (ActionKind.RSURE, ActionKind.BORG, ActionKind.MIRROR)

    @property
    def needs_isolation(self) -> bool:
        """Needs a private writable copy, which Simple volumes cannot give."""
        return False


SNAPSHOT_KINDS = (LvmVolume, ZfsVolume)


class PipelineError(RdumpError):
    """An action's external tool reported failure."""

    def __init__(self, action: ActionKind, message: str) -> None:
        super().__init__(f"{action.value}: {message}")
        self.action = action


@dataclass
class PipelineResult:
    """Outcome of one volume's pipeline."""

    volume_name: str
    completed: list[ActionKind] = field(default_factory=list)
    failed: Optional[ActionKind] = None
    error: Optional[Exception] = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.failed is None and not self.cancelled


def _parse_kind(volume: Volume, name: str) -> ActionKind:
    try:
        return ActionKind(name)
    except ValueError:
        choices = ", ".join(k.value for k in ActionKind)
        raise ConfigError(
            f"Volume '{volume.name}': unknown action '{name}' "
            f"(expected one of {choices})"
        ) from None


def validate_actions(volume: Volume, actions=None) -> list[ActionKind]:
    """Check an action list against the volume kind, before anything runs.

    Args:
        volume: Volume the actions belong to
        actions: Action names; the volume's own list when None

    Returns:
        The actions as ActionKinds, in the order given

    Raises:
        ConfigError: the list cannot run on this volume
    """
    names = volume.actions if actions is None else actions
    kinds = [_parse_kind(volume, name) for name in names]

    if isinstance(volume, ZfsReplication):
        bad = [k.value for k in kinds if k is not ActionKind.SYNC]
        if bad:
            raise ConfigError(
                f"ZFS replication '{volume.name}' only supports 'sync', not {bad}"
            )
        return kinds

    if ActionKind.SYNC in kinds:
        raise ConfigError(
            f"Volume '{volume.name}': 'sync' is only valid for ZFS replication"
        )

    if ActionKind.MIRROR in kinds and volume.mirror is None:
        raise ConfigError(
            f"Volume '{volume.name}': 'mirror' needs a zfs mirror block"
        )

    if isinstance(volume, SimpleVolume):
        bad = [k.value for k in kinds if k.needs_isolation]
        if bad:
            raise ConfigError(
                f"Simple volume '{volume.name}' cannot provide an isolated "
                f"copy for {bad}"
            )
    elif isinstance(volume, SNAPSHOT_KINDS):
        prepared = False
        for kind in kinds:
            if kind is ActionKind.SNAP:
                prepared = True
            elif kind.needs_prepare and not prepared:
                raise ConfigError(
                    f"Volume '{volume.name}': '{kind.value}' must come after 'snap'"
                )

    return kinds


class ActionPipeline:
    """Runs action lists for one run's volumes."""

    def __init__(self, context) -> None:
        self.context = context
        self._handlers = {
            ActionKind.SNAP: self._snap,
            ActionKind.RSURE: self._rsure,
            ActionKind.BORG: self._borg,
            ActionKind.MIRROR: self._mirror,
            ActionKind.SYNC: self._sync,
        }

    def run(
        self, volume: Volume, resource: LifecycleResource, actions=None
    ) -> PipelineResult:
        """Run ``actions`` (default: the volume's list) against ``resource``.

        Raises:
            ConfigError: the list is not valid for this volume; nothing ran
        """
        kinds = validate_actions(volume, actions)
        result = PipelineResult(volume_name=volume.name)

        for kind in kinds:
            if self.context.cancel_requested:
                logger.warning(
                    "Cancellation requested, skipping remaining actions of %s",
                    volume.name,
                )
                result.cancelled = True
                break

            if kind.needs_prepare and not resource.prepared:
                result.failed = kind
                result.error = PipelineError(kind, "resource has not been prepared")
                logger.error("%s", result.error)
                break

            logger.info("Action %s on %s", kind.value, volume.name)
            try:
                self._handlers[kind](volume, resource)
            except PipelineError as e:
                logger.error("Action %s failed for %s: %s", kind.value, volume.name, e)
                result.failed = kind
                result.error = e
                break
            result.completed.append(kind)

        return result

    def describe(self, volume: Volume) -> list[str]:
        """What ``run`` would do, for dry runs."""
        lines = []
        manifest = self.context.global_config.manifest
        archive = self.context.archive_name(volume.name)
        for kind in validate_actions(volume):
            if kind is ActionKind.RSURE:
                lines.append(f"Rsure scan, copy {manifest} back to {volume.mount}")
            elif kind is ActionKind.BORG:
                lines.append(f"Borg backup as {archive}")
            elif kind is ActionKind.MIRROR:
                mirror = volume.mirror
                lines.append(f"Rsync to {mirror.mount}, snapshot {mirror.volume}")
            elif kind is ActionKind.SYNC:
                lines.append(f"Zfs send {volume.source} to {volume.destination}")
        return lines

    def _snap(self, volume, resource: LifecycleResource) -> None:
        if isinstance(volume, SNAPSHOT_KINDS) and not resource.isolated:
            raise PipelineError(ActionKind.SNAP, "no snapshot was acquired")
        logger.info("Snapshot of %s ready at %s", volume.name, resource.mount)

    def _rsure(self, volume, resource: LifecycleResource) -> None:
        tools = self.context.tools
        manifest = self.context.global_config.manifest
        tags = {"name": self.context.stamp}

        try:
            handle = tools.integrity.update_manifest(resource.mount, manifest, tags)
        except ToolError as e:
            raise PipelineError(ActionKind.RSURE, str(e)) from e

        if not resource.isolated:
            return

        try:
            copied = copy_back(resource, resource.source_mount, handle.path.name)
        except CopyBackError as e:
            raise PipelineError(ActionKind.RSURE, str(e)) from e

        if copied and isinstance(volume, ZfsVolume) and volume.manifest_snapshot:
            # Records the manifest update only; the rest of the live dataset
            # is not point-in-time consistent with it.
            name = f"{volume.snapshot_name(self.context.stamp)}-manifest-only"
            try:
                tools.zfs.snapshot(volume.volume, name)
            except ToolError as e:
                raise PipelineError(ActionKind.RSURE, str(e)) from e

    def _borg(self, volume, resource: LifecycleResource) -> None:
        try:
            self.context.tools.backup.archive(
                resource.mount,
                self.context.global_config.borg,
                self.context.archive_name(volume.name),
            )
        except ToolError as e:
            raise PipelineError(ActionKind.BORG, str(e)) from e

    def _mirror(self, volume, resource: LifecycleResource) -> None:
        tools = self.context.tools
        mirror = volume.mirror
        try:
            tools.sync.sync(resource.mount, Path(mirror.mount))
            tools.zfs.snapshot(
                mirror.volume, f"{encode_name(volume.name)}-{self.context.stamp}"
            )
        except ToolError as e:
            raise PipelineError(ActionKind.MIRROR, str(e)) from e

    def _sync(self, volume: ZfsReplication, resource: LifecycleResource) -> None:
        try:
            self.context.tools.zfs.send_receive(volume.source, volume.destination)
        except ToolError as e:
            raise PipelineError(ActionKind.SYNC, str(e)) from e
