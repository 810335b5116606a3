"""Stage launcher and supervisor."""

import logging
from typing import Dict, List, Optional

from digenv.common.errors import SetupError
from digenv.common.logging import LogContext
from .builder import Pipeline
from .spawner import ForkExecSpawner, Spawner
from .stage import ChildHandle, StageState
from .status import StatusAggregator

logger = logging.getLogger(__name__)


class Supervisor:
    """Spawns every stage of a pipeline and reduces their exit statuses.

    Stages are spawned source to sink. As soon as both neighbours of a
    channel exist, the parent closes its copy of that channel; a reader only
    sees end-of-stream once every copy of the write side is gone.
    """

    def __init__(
        self,
        spawner: Optional[Spawner] = None,
        terminate_on_abort: bool = False,
    ) -> None:
        self.spawner = spawner or ForkExecSpawner()
        self.terminate_on_abort = terminate_on_abort
        self.states: Dict[int, StageState] = {}

    def run(self, pipeline: Pipeline) -> int:
        """Launch ``pipeline``, wait for it and return the aggregate exit code.

        Raises:
            SetupError: If a pipe, fork, close or wait fails
        """
        with LogContext(logger, stage_count=pipeline.stage_count):
            handles = self.launch(pipeline)
            return self.wait_all(handles)

    def launch(self, pipeline: Pipeline) -> List[ChildHandle]:
        """Spawn every stage and retire the parent's channel endpoints."""
        self.states = {stage.index: StageState.PLANNED for stage in pipeline.stages}
        handles: List[ChildHandle] = []
        try:
            for stage in pipeline.stages:
                pid = self.spawner.spawn(stage, pipeline.channels)
                handles.append(ChildHandle(pid=pid, stage=stage))
                self._transition(stage.index, StageState.SPAWNED)

                if stage.index >= 1:
                    pipeline.channels[stage.index - 1].close()
        except SetupError:
            self._abort(pipeline, handles)
            raise

        logger.info(f"Pipeline launched: {{'pids': {[h.pid for h in handles]}}}")
        return handles

    def wait_all(self, handles: List[ChildHandle]) -> int:
        """Reap one child per handle, in whatever order they exit.

        The first stage reaped with a non-zero code or a signal decides
        the result.
        """
        pending = {handle.pid: handle for handle in handles}
        aggregator = StatusAggregator()

        for _ in range(len(handles)):
            pid, status = self.spawner.wait()
            handle = pending.pop(pid, None)
            if handle is None:
                logger.warning(f"Reaped unknown child: {{'pid': {pid}, 'status': '{status}'}}")
            else:
                self._transition(handle.stage.index, StageState.TERMINATED)
                log = logger.info if status.failed else logger.debug
                log(f"Stage {handle.stage.name} {status}")

            previous = aggregator.exit_code
            aggregator.add(status)
            if aggregator.exit_code != previous:
                logger.debug(f"Aggregate exit code set: {{'exit_code': {aggregator.exit_code}, 'pid': {pid}}}")

        logger.info(f"Stages reaped: {{'reaped': {aggregator.count}, 'exit_code': {aggregator.exit_code}, 'decided_by': '{aggregator.decided_by or 'none'}'}}")
        return aggregator.exit_code

    def _transition(self, index: int, state: StageState) -> None:
        logger.debug(f"Stage state: {{'index': {index}, 'from': '{self.states.get(index, StageState.PLANNED).value}', 'to': '{state.value}'}}")
        self.states[index] = state

    def _abort(self, pipeline: Pipeline, handles: List[ChildHandle]) -> None:
        """Handle a setup failure after ``handles`` were already spawned."""
        if not handles:
            return
        if not self.terminate_on_abort:
            logger.warning(f"Setup failed, leaving spawned stages running: {{'pids': {[h.pid for h in handles]}}}")
            return

        logger.warning(f"Setup failed, terminating spawned stages: {{'pids': {[h.pid for h in handles]}}}")
        try:
            pipeline.close_channels()
        except SetupError as e:
            logger.error(f"Could not release channels during abort: {e.message}")
        for handle in handles:
            self.spawner.terminate(handle.pid)
        for _ in handles:
            try:
                pid, status = self.spawner.wait()
            except SetupError as e:
                logger.error(f"Could not reap stage during abort: {e.message}")
                break
            logger.debug(f"Reaped during abort: {{'pid': {pid}, 'status': '{status}'}}")
