"""Per-run state handed to every component that needs it."""

from dataclasses import dataclass, field

from ..__util__ import run_stamp
from ..config.schema import GlobalConfig
from ..tools import Toolkit


@dataclass
class RunContext:
    """Everything a run shares across volumes.

    Attributes:
        global_config: The immutable ``[config]`` block
        tools: Tool adapters
        stamp: Timestamp used in every name created by this run
        cancel_requested: Set by the signal handlers; checked between actions
    """

    global_config: GlobalConfig
    tools: Toolkit
    stamp: str = field(default_factory=run_stamp)
    cancel_requested: bool = False

    def archive_name(self, volume_name: str) -> str:
        return f"{volume_name}-{self.stamp}"
