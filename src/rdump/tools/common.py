# pyright: standard

"""rdump: rdump/tools/common.py
Running external commands on behalf of the tool adapters.
"""

import contextlib
import getpass
import os
import subprocess
import tempfile
from pathlib import Path

from filelock import FileLock

from rdump import __util__
from rdump.__logger__ import logger


class ToolError(__util__.RdumpError):
    """An external tool could not be run or reported failure."""

    def __init__(self, argv, returncode=None, stderr="") -> None:
        self.argv = [str(a) for a in argv]
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        detail = f" (exit {returncode})" if returncode is not None else ""
        message = f"{' '.join(self.argv)} failed{detail}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


def default_lock_path() -> Path:
    return Path(tempfile.gettempdir()) / f".rdump.{getpass.getuser()}.lock"


class CommandRunner:
    """Build and execute tool command lines.

    Commands marked privileged get a non-interactive ``sudo -n`` prefix
    when sudo is enabled and we are not already root. Commands given a
    ``host`` are run through ssh, with sudo on the far side when enabled.
    Locked commands hold a per-user FileLock so storage tools are never
    invoked concurrently from this host. They also run in their own
    process group, so a terminal Ctrl-C reaches only rdump, which lets
    the step finish and then cleans up.
    """

    def __init__(self, sudo=True, lock_path=None) -> None:
        self.sudo = sudo
        self.lock_path = Path(lock_path) if lock_path else default_lock_path()

    def build(self, command, privileged=True, host=None) -> list[str]:
        argv = [str(c) for c in command]
        if host:
            prefix = ["ssh", host]
            if self.sudo and privileged:
                prefix.extend(["sudo", "-n"])
            return prefix + argv
        if self.sudo and privileged and os.geteuid() != 0:
            return ["sudo", "-n"] + argv
        return argv

    def _lock(self, locked):
        if locked:
            return FileLock(self.lock_path)
        return contextlib.nullcontext()

    def run(
        self,
        command,
        privileged=True,
        locked=True,
        capture=False,
        check=True,
        host=None,
    ) -> subprocess.CompletedProcess:
        """Run a command to completion, raising ToolError on failure."""
        argv = self.build(command, privileged=privileged, host=host)
        kwargs = {"stdin": subprocess.DEVNULL}
        if capture:
            kwargs.update(
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        if locked:
            kwargs["process_group"] = 0
        try:
            with self._lock(locked):
                return __util__.exec_subprocess(argv, check=check, **kwargs)
        except subprocess.CalledProcessError as e:
            logger.debug("Command failed: %s (exit %s)", argv, e.returncode)
            raise ToolError(argv, e.returncode, e.stderr) from e
        except OSError as e:
            raise ToolError(argv, None, str(e)) from e

    def succeeds(self, command, privileged=True, host=None) -> bool:
        """Run a query command, reporting only whether it exited zero."""
        result = self.run(
            command, privileged=privileged, capture=True, check=False, host=host
        )
        return result.returncode == 0

    def popen(self, command, privileged=True, host=None, **kwargs):
        """Start a command without waiting for it, for pipelines."""
        argv = self.build(command, privileged=privileged, host=host)
        try:
            return __util__.exec_subprocess(argv, method="Popen", **kwargs)
        except OSError as e:
            raise ToolError(argv, None, str(e)) from e
