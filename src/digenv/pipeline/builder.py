"""Pipeline topology: stages, channels and the bindings between them."""

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from digenv.common.errors import SetupError
from digenv.config import PipelineConfig
from .channel import Channel, ChannelEnd, open_channel
from .pager import pager_candidates
from .stage import Binding, Stage, StageRole

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """Stages in source-to-sink order and the channels linking them.

    Channel ``i`` carries stage ``i``'s stdout to stage ``i + 1``'s stdin.
    """

    stages: Tuple[Stage, ...]
    channels: Tuple[Channel, ...]

    @property
    def stage_count(self) -> int:
        return len(self.stages)

    def close_channels(self) -> None:
        """Close every channel endpoint still held by this process."""
        for channel in self.channels:
            channel.close()


def plan_roles(has_filter: bool) -> Tuple[StageRole, ...]:
    """Stage roles in order; the filter stage only exists with arguments."""
    if has_filter:
        return (StageRole.DUMP, StageRole.FILTER, StageRole.SORT, StageRole.PAGER)
    return (StageRole.DUMP, StageRole.SORT, StageRole.PAGER)


def stage_bindings(index: int, stage_count: int) -> Tuple[Binding, Binding]:
    """Return the (stdin, stdout) bindings for stage ``index``."""
    if index == 0:
        stdin = Binding.inherit()
    else:
        stdin = Binding.channel(index - 1, ChannelEnd.READ)
    if index == stage_count - 1:
        stdout = Binding.inherit()
    else:
        stdout = Binding.channel(index, ChannelEnd.WRITE)
    return stdin, stdout


class PipelineBuilder:
    """Builds the pipeline for one invocation."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.environ = os.environ if environ is None else environ

    def plan(self, filter_args: Sequence[str] = ()) -> Tuple[Stage, ...]:
        """Describe every stage without touching the OS."""
        roles = plan_roles(bool(filter_args))
        stages = []
        for index, role in enumerate(roles):
            candidates = self._candidates(role)
            stdin, stdout = stage_bindings(index, len(roles))
            argv = (candidates[0], *filter_args) if role is StageRole.FILTER else (candidates[0],)
            stages.append(Stage(
                index=index,
                role=role,
                argv=argv,
                candidates=candidates,
                stdin=stdin,
                stdout=stdout,
            ))
        return tuple(stages)

    def build(self, filter_args: Sequence[str] = ()) -> Pipeline:
        """Plan the stages and allocate one channel per adjacent pair.

        Raises:
            ResourceExhaustedError: If a pipe cannot be created for lack of descriptors
            SystemCallError: If a pipe cannot be created for any other reason
        """
        stages = self.plan(filter_args)
        channels: List[Channel] = []
        try:
            for index in range(len(stages) - 1):
                channels.append(open_channel(index))
        except SetupError:
            for channel in channels:
                channel.close()
            raise

        logger.info(f"Pipeline planned: {{'stages': {[s.name for s in stages]}, 'channels': {len(channels)}}}")
        return Pipeline(stages=stages, channels=tuple(channels))

    def _candidates(self, role: StageRole) -> Tuple[str, ...]:
        if role is StageRole.DUMP:
            return (self.config.dump_program,)
        if role is StageRole.FILTER:
            return (self.config.filter_program,)
        if role is StageRole.SORT:
            return (self.config.sort_program,)
        return pager_candidates(
            self.environ,
            variable=self.config.pager_variable,
            fallbacks=self.config.fallback_pagers,
        )
