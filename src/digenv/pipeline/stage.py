"""Stage descriptors for the filter pipeline."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .channel import ChannelEnd


class StageRole(str, Enum):
    """Pipeline stage identifiers, in source-to-sink order."""

    DUMP = "dump"
    FILTER = "filter"
    SORT = "sort"
    PAGER = "pager"


class StageState(str, Enum):
    """Lifecycle of a stage as seen by the supervisor."""

    PLANNED = "planned"
    SPAWNED = "spawned"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class Binding:
    """What a stage's stdin or stdout is connected to.

    ``channel_index`` of None means the descriptor is inherited from the
    invoking process unchanged.
    """

    channel_index: Optional[int] = None
    end: Optional[ChannelEnd] = None

    @classmethod
    def inherit(cls) -> "Binding":
        return cls()

    @classmethod
    def channel(cls, index: int, end: ChannelEnd) -> "Binding":
        return cls(channel_index=index, end=end)

    @property
    def inherited(self) -> bool:
        return self.channel_index is None

    def __str__(self) -> str:
        if self.inherited:
            return "inherit"
        return f"pipe{self.channel_index}.{self.end.value}"


@dataclass(frozen=True)
class Stage:
    """One filter in the pipeline.

    ``candidates`` lists the program names tried, in order, when loading the
    stage's image; ``argv[1:]`` is passed to whichever one loads.
    """

    index: int
    role: StageRole
    argv: Tuple[str, ...]
    candidates: Tuple[str, ...]
    stdin: Binding
    stdout: Binding

    @property
    def name(self) -> str:
        return self.argv[0] if self.argv else self.role.value

    @property
    def args(self) -> Tuple[str, ...]:
        return self.argv[1:]


@dataclass(frozen=True)
class ChildHandle:
    """A spawned stage, owned by the supervisor until reaped."""

    pid: int
    stage: Stage
