"""Run orchestration: every selected volume, one at a time.

Volumes are processed strictly sequentially. Snapshot tools racing each
other in one volume group or pool, and borg instances contending for one
repository lock, are both worse than a slower run.
"""

import contextlib
import logging
import signal
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .. import __util__
from ..config.schema import Volume
from .lifecycle import LifecycleError, TeardownFailed, provider_for
from .pipeline import ActionPipeline, validate_actions

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Where a volume's processing stopped."""

    STAMP = "stamp"
    ACQUIRE = "acquire"
    PIPELINE = "pipeline"
    RELEASE = "release"


@dataclass
class VolumeOutcome:
    """Result of processing one volume."""

    name: str
    kind: str
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None
    completed: list[str] = field(default_factory=list)
    teardown_errors: list[tuple[str, Exception]] = field(default_factory=list)
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_stage is None and not self.cancelled

    @property
    def status(self) -> str:
        if self.failed_stage is not None:
            return f"failed ({self.failed_stage.value})"
        if self.cancelled:
            return "cancelled"
        return "ok"

    @property
    def leaked(self) -> list[str]:
        return [desc for desc, _ in self.teardown_errors]


@dataclass
class RunSummary:
    """Every volume's outcome, in processing order."""

    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0
    outcomes: list[VolumeOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def leaked(self) -> list[str]:
        return [desc for o in self.outcomes for desc in o.leaked]

    @property
    def exit_code(self) -> int:
        return 0 if self.failed == 0 else 1

    def outcome(self, name: str) -> VolumeOutcome:
        for o in self.outcomes:
            if o.name == name:
                return o
        raise KeyError(name)


class Orchestrator:
    """Drives acquire, pipeline and release for each volume."""

    def __init__(self, context) -> None:
        self.context = context
        self.pipeline = ActionPipeline(context)

    def run_all(self, volumes: list[Volume]) -> RunSummary:
        """Back up ``volumes`` in order, never letting one stop the others.

        Every action list is validated before any volume is touched.

        Raises:
            ConfigError: an action list is invalid; nothing was run
        """
        for volume in volumes:
            validate_actions(volume)

        summary = RunSummary()
        for volume in volumes:
            if self.context.cancel_requested:
                logger.warning("Cancelled, not starting %s", volume.name)
                summary.outcomes.append(
                    VolumeOutcome(name=volume.name, kind=volume.kind, cancelled=True)
                )
                continue
            summary.outcomes.append(self.run_volume(volume))

        summary.completed_at = time.time()
        self._log_summary(summary)
        return summary

    def run_volume(self, volume: Volume) -> VolumeOutcome:
        """Stamp, acquire, run the pipeline and release one volume."""
        logger.info(__util__.log_heading(f"Volume: {volume.name}"))
        outcome = VolumeOutcome(name=volume.name, kind=volume.kind)
        start = time.monotonic()

        try:
            self._process(volume, outcome)
        finally:
            outcome.duration_seconds = time.monotonic() - start

        if outcome.success:
            logger.info("%s: ok (%s)", volume.name, ", ".join(outcome.completed))
        elif outcome.cancelled and outcome.failed_stage is None:
            logger.warning("%s: cancelled", volume.name)
        else:
            logger.error("%s: %s: %s", volume.name, outcome.status, outcome.error)
        return outcome

    def _process(self, volume: Volume, outcome: VolumeOutcome) -> None:
        try:
            self._write_stamp(volume)
        except OSError as e:
            outcome.failed_stage = Stage.STAMP
            outcome.error = e
            return

        provider = provider_for(volume, self.context)
        try:
            resource = provider.acquire(volume)
        except LifecycleError as e:
            outcome.failed_stage = Stage.ACQUIRE
            outcome.error = e
            outcome.teardown_errors.extend(e.teardown_errors)
            self._report_leaks(volume, outcome)
            return
        except Exception as e:
            logger.exception("Unexpected error acquiring %s", volume.name)
            outcome.failed_stage = Stage.ACQUIRE
            outcome.error = e
            return

        try:
            result = self.pipeline.run(volume, resource)
            outcome.completed = [k.value for k in result.completed]
            if result.cancelled:
                outcome.cancelled = True
            elif not result.success:
                outcome.failed_stage = Stage.PIPELINE
                outcome.error = result.error
        except Exception as e:
            logger.exception("Unexpected error processing %s", volume.name)
            outcome.failed_stage = Stage.PIPELINE
            outcome.error = e
        finally:
            try:
                provider.release(resource)
            except TeardownFailed as e:
                outcome.teardown_errors.extend(e.teardown_errors)
                if outcome.failed_stage is None:
                    outcome.failed_stage = Stage.RELEASE
                    outcome.error = e
                self._report_leaks(volume, outcome)

    def _write_stamp(self, volume: Volume) -> None:
        """Touch the stamp file on the live mount, ahead of any snapshot.

        Tools doing incremental work can compare against it to catch files
        changed between the snapshot and the previous run.
        """
        stamp = self.context.global_config.stamp
        if not stamp or volume.mount is None:
            return
        path = Path(volume.mount) / stamp
        logger.info("Writing backup stamp: %s", path)
        path.write_text("Backup timestamp\n", encoding="utf-8")

    def _report_leaks(self, volume: Volume, outcome: VolumeOutcome) -> None:
        if not outcome.leaked:
            return
        logger.critical(
            "%s: resources left behind, manual cleanup required: %s",
            volume.name,
            "; ".join(outcome.leaked),
        )

    def _log_summary(self, summary: RunSummary) -> None:
        if summary.failed:
            logger.warning(
                "Completed with errors: %d succeeded, %d failed",
                summary.succeeded,
                summary.failed,
            )
        else:
            logger.info("All %d volume(s) completed successfully", summary.total)
        if summary.leaked:
            logger.critical(
                "Leaked snapshot resources need manual cleanup: %s",
                "; ".join(summary.leaked),
            )

    def describe(self, volumes: list[Volume]) -> list[tuple[str, list[str]]]:
        """The steps each volume would go through, without running any."""
        plans = []
        stamp = self.context.global_config.stamp
        for volume in volumes:
            steps = []
            if stamp and volume.mount is not None:
                steps.append(f"Backup stamp file: {Path(volume.mount) / stamp}")
            steps += provider_for(volume, self.context).describe(volume)
            steps += self.pipeline.describe(volume)
            plans.append((volume.name, steps))
        return plans

    @contextlib.contextmanager
    def deferred_signals(self, signals=(signal.SIGINT, signal.SIGTERM)):
        """Turn SIGINT/SIGTERM into a cancellation request.

        The handler only sets a flag: the running volume stops before its
        next action, is released, and no further volume is started. A
        release is never interrupted.
        """

        def handler(signum, frame):
            if not self.context.cancel_requested:
                logger.warning(
                    "Received %s; finishing cleanup of the current volume",
                    signal.Signals(signum).name,
                )
            self.context.cancel_requested = True

        previous = {sig: signal.signal(sig, handler) for sig in signals}
        try:
            yield
        finally:
            for sig, old in previous.items():
                signal.signal(sig, old)
