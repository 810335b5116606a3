"""Shared fixtures for digenv tests."""

import logging
import os
import platformdirs
import pytest
from typing import List, Optional, Sequence, Tuple

from digenv.common.errors import SystemCallError
from digenv.pipeline import Channel, Stage
from digenv.pipeline.spawner import Spawner
from digenv.pipeline.status import ExitStatus

PID_BASE = 1000


class FakeSpawner(Spawner):
    """Spawner that records spawns instead of forking.

    ``statuses`` is the reap order: ``(stage_index, status)`` pairs returned
    one per ``wait()``. Each spawn also records which channels the parent
    had already closed at that moment.
    """

    def __init__(
        self,
        statuses: Sequence[Tuple[int, ExitStatus]] = (),
        fail_at: Optional[int] = None,
    ) -> None:
        self.statuses = list(statuses)
        self.fail_at = fail_at
        self.spawned: List[Stage] = []
        self.closed_at_spawn: List[Tuple[bool, ...]] = []
        self.terminated: List[int] = []
        self.wait_calls = 0

    def spawn(self, stage: Stage, channels: Sequence[Channel]) -> int:
        if stage.index == self.fail_at:
            raise SystemCallError(
                f"Could not fork {stage.name}",
                operation="fork",
                stage=stage.name,
            )
        self.spawned.append(stage)
        self.closed_at_spawn.append(tuple(c.closed for c in channels))
        return PID_BASE + stage.index

    def wait(self) -> Tuple[int, ExitStatus]:
        self.wait_calls += 1
        if not self.statuses:
            raise SystemCallError("wait() failed unexpectedly: no child", operation="wait")
        index, status = self.statuses.pop(0)
        return PID_BASE + index, status

    def terminate(self, pid: int) -> None:
        self.terminated.append(pid)


@pytest.fixture
def fake_spawner():
    """Factory for :class:`FakeSpawner` instances."""
    return FakeSpawner


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Keep ConfigLoader away from the real user and system config."""
    user_dir = tmp_path / "user-config"
    monkeypatch.setattr(
        platformdirs,
        "user_config_dir",
        lambda appname=None, appauthor=None: str(user_dir),
    )
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("DIGENV_"):
            monkeypatch.delenv(key)
    return user_dir


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
