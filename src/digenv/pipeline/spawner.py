"""Creating, rewiring and reaping stage processes.

The supervisor only talks to a :class:`Spawner`; tests substitute one that
records calls instead of forking.
"""

import errno
import logging
import os
import signal
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple

from digenv.common.errors import (
    ResourceExhaustedError, StageExecError, SystemCallError
)
from digenv.common.logging import flush_logging
from .channel import Channel
from .pager import exec_first
from .stage import Binding, Stage
from .status import EXEC_FAILURE_EXIT_CODE, ExitStatus, exit_status_from_wait

logger = logging.getLogger(__name__)

STDIN_FILENO = 0
STDOUT_FILENO = 1

# Ignored by the interpreter at startup; an ignored disposition survives exec
RESTORED_SIGNALS = ("SIGPIPE", "SIGXFZ", "SIGXFSZ")


class Spawner(ABC):
    """Creates stage processes and reports their termination."""

    @abstractmethod
    def spawn(self, stage: Stage, channels: Sequence[Channel]) -> int:
        """Start ``stage`` and return its pid.

        Raises:
            SystemCallError: If the process cannot be created
        """

    @abstractmethod
    def wait(self) -> Tuple[int, ExitStatus]:
        """Block until any child terminates and return its pid and status.

        Raises:
            SystemCallError: If there is nothing to wait for
        """

    @abstractmethod
    def terminate(self, pid: int) -> None:
        """Ask a spawned stage to stop."""


@dataclass
class RewirePlan:
    """Descriptor operations a child performs before loading its image."""

    dups: List[Tuple[int, int]] = field(default_factory=list)
    closes: List[int] = field(default_factory=list)


def plan_rewire(stage: Stage, channels: Sequence[Channel]) -> RewirePlan:
    """
    Compute how a child rewires its descriptors.

    Each channel-bound side is duplicated onto stdin or stdout, then every
    endpoint the parent still holds is closed, leaving the child with nothing
    but its standard descriptors. Channels the parent already retired were
    never inherited and are skipped.

    Args:
        stage: Stage the child will become
        channels: All channels of the pipeline

    Returns:
        Ordered ``dup2`` pairs and descriptors to close
    """
    plan = RewirePlan()
    targets = ((stage.stdin, STDIN_FILENO), (stage.stdout, STDOUT_FILENO))
    for binding, target in targets:
        if binding.inherited:
            continue
        plan.dups.append((_binding_fd(binding, channels), target))

    # A pipe may itself sit on fd 0 or 1 if the parent started without them;
    # a dup2 target is never closed afterwards
    kept = {target for _, target in plan.dups}
    for channel in channels:
        if channel.closed:
            continue
        for fd in (channel.read_fd, channel.write_fd):
            if fd not in kept:
                plan.closes.append(fd)
    return plan


def apply_rewire(
    plan: RewirePlan,
    dup2: Callable[[int, int], int] = os.dup2,
    close: Callable[[int], None] = os.close,
    set_inheritable: Callable[[int, bool], None] = os.set_inheritable,
) -> None:
    """Carry out ``plan`` in the current process.

    Raises:
        OSError: If a dup2 or close fails
    """
    for source, target in plan.dups:
        if source == target:
            # pipes are created close-on-exec; dup2 clears the flag, this does too
            set_inheritable(target, True)
        else:
            dup2(source, target)
    for fd in plan.closes:
        close(fd)


def restore_signals() -> None:
    """Reset the signals CPython ignores back to their default action."""
    for name in RESTORED_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, signal.SIG_DFL)


def _binding_fd(binding: Binding, channels: Sequence[Channel]) -> int:
    return channels[binding.channel_index].fd(binding.end)


class ForkExecSpawner(Spawner):
    """Runs each stage in a forked child that execs the stage's program."""

    def __init__(self, execvp: Callable[[str, List[str]], None] = os.execvp) -> None:
        self._execvp = execvp

    def spawn(self, stage: Stage, channels: Sequence[Channel]) -> int:
        flush_logging()
        try:
            pid = os.fork()
        except OSError as e:
            error_class = ResourceExhaustedError if e.errno == errno.EAGAIN else SystemCallError
            raise error_class(
                f"Could not fork {stage.name}: {e.strerror}",
                operation="fork",
                stage=stage.name,
                stage_index=stage.index,
            ) from e

        if pid == 0:
            self._become_stage(stage, channels)

        logger.debug(f"Stage spawned: {{'stage': {stage.name!r}, 'index': {stage.index}, 'pid': {pid}, 'stdin': '{stage.stdin}', 'stdout': '{stage.stdout}'}}")
        return pid

    def _become_stage(self, stage: Stage, channels: Sequence[Channel]) -> None:
        """Child side of :meth:`spawn`. Never returns."""
        try:
            apply_rewire(plan_rewire(stage, channels))
            restore_signals()
            exec_first(stage.candidates, stage.args, self._execvp)
        except OSError as e:
            logger.error(f"{stage.name}: could not set up descriptors: {e.strerror}")
        except StageExecError as e:
            logger.error(f"Could not execute {stage.role.value}: {e.message}")
        except Exception:
            logger.exception(f"{stage.name}: unexpected failure before exec")
        finally:
            flush_logging()
            os._exit(EXEC_FAILURE_EXIT_CODE)

    def wait(self) -> Tuple[int, ExitStatus]:
        try:
            pid, status = os.wait()
        except OSError as e:
            raise SystemCallError(
                f"wait() failed unexpectedly: {e.strerror}",
                operation="wait",
            ) from e
        return pid, exit_status_from_wait(status)

    def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.debug(f"Stage already gone: {{'pid': {pid}}}")
