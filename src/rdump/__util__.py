# pyright: standard

"""rdump: rdump/__util__.py
Common utility code shared among modules.
"""

import logging
import subprocess
import time

logger = logging.getLogger(__name__)

STAMP_FORMAT = "%Y%m%dT%H%M%S"


class RdumpError(Exception):
    """Base class of every error rdump raises on purpose."""


def run_stamp(now: float | None = None) -> str:
    """Return the timestamp shared by every name created in one run."""
    return time.strftime(STAMP_FORMAT, time.localtime(now))


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"{f'--[ {caption} ]':-<50}"


def exec_subprocess(command, method="run", **kwargs):
    """Run a command, logging the argv first.

    ``method`` is "run" (the default) or "Popen". For "run", ``check=True``
    is implied unless the caller overrides it, so a non-zero exit raises
    ``subprocess.CalledProcessError``.
    """
    logger.debug("Executing: %s", command)
    if method == "Popen":
        return subprocess.Popen(command, **kwargs)
    kwargs.setdefault("check", True)
    return subprocess.run(command, **kwargs)
