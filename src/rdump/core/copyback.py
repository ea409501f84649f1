"""Integrity copy-back: carrying a fresh manifest into the live volume.

The manifest is always computed against a quiescent snapshot or clone,
then copied over the live volume's manifest so the running system carries
an up-to-date one. The copy lands under a temporary name in the
destination directory and is renamed into place, so a reader of the live
manifest sees either the old file or the new one, never a partial write.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from ..__util__ import RdumpError

logger = logging.getLogger(__name__)


class CopyBackError(RdumpError):
    """The manifest could not be copied or renamed into place."""


def copy_back(resource, source_mount: Path, manifest_name: str) -> bool:
    """Copy ``manifest_name`` from the resource's mount to ``source_mount``.

    Returns True when a copy was made. Returns False without touching
    anything when this acquisition already copied its manifest back, or
    when the resource mount is the live mount itself.

    Raises:
        CopyBackError: the live manifest is left exactly as it was
    """
    if resource.manifest_copied:
        logger.debug("Manifest already copied back for %s", resource.volume_name)
        return False

    src = Path(resource.mount) / manifest_name
    dest = Path(source_mount) / manifest_name

    if Path(resource.mount) == Path(source_mount):
        resource.manifest_copied = True
        return False

    logger.info("Copy rsure file %s to %s", src, dest)
    _atomic_copy(src, dest)
    resource.manifest_copied = True
    return True


def _atomic_copy(src: Path, dest: Path) -> None:
    tmp_path = None
    try:
        with open(src, "rb") as fsrc, tempfile.NamedTemporaryFile(
            dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp", delete=False
        ) as fdst:
            tmp_path = Path(fdst.name)
            shutil.copyfileobj(fsrc, fdst)
            fdst.flush()
            os.fsync(fdst.fileno())
        # Like cp -p: keep mode and timestamps of the scanned manifest
        shutil.copystat(src, tmp_path)
        os.replace(tmp_path, dest)
        tmp_path = None
    except OSError as e:
        raise CopyBackError(f"cannot copy {src} to {dest}: {e}") from e
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except OSError as e:
                logger.warning("Could not remove temporary file %s: %s", tmp_path, e)
