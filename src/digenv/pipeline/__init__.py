"""Filter pipeline construction and supervision."""

from .builder import Pipeline, PipelineBuilder
from .channel import Channel, ChannelEnd, open_channel
from .pager import exec_first, pager_candidates
from .spawner import ForkExecSpawner, Spawner
from .stage import Binding, ChildHandle, Stage, StageRole, StageState
from .status import (
    EXEC_FAILURE_EXIT_CODE, SIGNAL_EXIT_CODE, NormalExit, Signaled,
    StatusAggregator
)
from .supervisor import Supervisor

__all__ = [
    'Pipeline',
    'PipelineBuilder',
    'Channel',
    'ChannelEnd',
    'open_channel',
    'exec_first',
    'pager_candidates',
    'ForkExecSpawner',
    'Spawner',
    'Binding',
    'ChildHandle',
    'Stage',
    'StageRole',
    'StageState',
    'EXEC_FAILURE_EXIT_CODE',
    'SIGNAL_EXIT_CODE',
    'NormalExit',
    'Signaled',
    'StatusAggregator',
    'Supervisor',
]
