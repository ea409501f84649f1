"""Core backup orchestration for rdump.

Lifecycle providers acquire a stable mount per volume, the action pipeline
runs the configured actions against it, and the orchestrator drives both
across every configured volume.
"""

from .context import RunContext
from .copyback import CopyBackError, copy_back
from .lifecycle import (
    CloneExists,
    LifecycleError,
    LifecycleResource,
    MountFailed,
    SnapshotExists,
    TeardownFailed,
    ToolInvocationFailed,
    provider_for,
)
from .orchestrator import Orchestrator, RunSummary, Stage, VolumeOutcome
from .pipeline import ActionKind, ActionPipeline, PipelineError, validate_actions

__all__ = [
    "ActionKind",
    "ActionPipeline",
    "CloneExists",
    "CopyBackError",
    "LifecycleError",
    "LifecycleResource",
    "MountFailed",
    "Orchestrator",
    "PipelineError",
    "RunContext",
    "RunSummary",
    "SnapshotExists",
    "Stage",
    "TeardownFailed",
    "ToolInvocationFailed",
    "VolumeOutcome",
    "copy_back",
    "provider_for",
    "validate_actions",
]
