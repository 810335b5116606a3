"""Stage termination statuses and their reduction to one exit code."""

import os
from dataclasses import dataclass
from typing import Optional, Union

# Exit code reported for the pipeline when the first failing stage was killed
SIGNAL_EXIT_CODE = 2

# Exit code a child uses when it cannot rewire or load its program image
EXEC_FAILURE_EXIT_CODE = 1


@dataclass(frozen=True)
class NormalExit:
    """The stage called exit() with ``code``."""

    code: int

    @property
    def failed(self) -> bool:
        return self.code != 0

    def __str__(self) -> str:
        return f"exited with code {self.code}"


@dataclass(frozen=True)
class Signaled:
    """The stage was terminated by ``signal``."""

    signal: int

    @property
    def failed(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"killed by signal {self.signal}"


ExitStatus = Union[NormalExit, Signaled]


def exit_status_from_wait(status: int) -> ExitStatus:
    """Decode a raw status as returned by ``os.wait()``.

    Raises:
        ValueError: If the status describes a stopped or continued child
    """
    if os.WIFSIGNALED(status):
        return Signaled(os.WTERMSIG(status))
    if os.WIFEXITED(status):
        return NormalExit(os.WEXITSTATUS(status))
    raise ValueError(f"wait status {status:#x} is not a termination")


class StatusAggregator:
    """Reduces per-stage statuses, in reap order, to one exit code.

    The first failing stage decides the code; later stages never change it.
    A signaled stage counts as failing with :data:`SIGNAL_EXIT_CODE`.
    """

    def __init__(self) -> None:
        self.exit_code = 0
        self.decided_by: Optional[ExitStatus] = None
        self.count = 0

    def add(self, status: ExitStatus) -> int:
        self.count += 1
        if self.exit_code == 0 and status.failed:
            self.exit_code = status.code if isinstance(status, NormalExit) else SIGNAL_EXIT_CODE
            self.decided_by = status
        return self.exit_code

