"""End-to-end tests running real printenv | grep | sort | pager pipelines."""

import os
import shutil
import signal
import psutil
import pytest
from digenv.config import PipelineConfig
from digenv.pipeline.builder import PipelineBuilder
from digenv.pipeline.spawner import ForkExecSpawner
from digenv.pipeline.status import NormalExit, Signaled
from digenv.pipeline.supervisor import Supervisor

pytestmark = pytest.mark.skipif(
    not hasattr(os, "fork")
    or any(shutil.which(tool) is None for tool in ("printenv", "grep", "sort", "cat")),
    reason="requires fork and printenv, grep, sort, cat",
)


class CountingSpawner(ForkExecSpawner):
    """ForkExecSpawner that counts spawns and records each reaped status by stage name."""

    def __init__(self) -> None:
        super().__init__()
        self.spawn_count = 0
        self.reap_count = 0
        self.names = {}
        self.statuses = {}

    def spawn(self, stage, channels):
        pid = super().spawn(stage, channels)
        self.spawn_count += 1
        self.names[pid] = stage.name
        return pid

    def wait(self):
        result = super().wait()
        self.reap_count += 1
        pid, status = result
        self.statuses[self.names.get(pid, pid)] = status
        return result


def run_pipeline(filter_args, environ, config=None):
    spawner = CountingSpawner()
    pipeline = PipelineBuilder(config, environ=environ).build(filter_args)
    exit_code = Supervisor(spawner).run(pipeline)
    return exit_code, pipeline, spawner


@pytest.fixture
def marked_environment(monkeypatch):
    """Export a variable the filter can find."""
    monkeypatch.setenv("E2E_USER", "someone")
    return dict(os.environ, PAGER="cat")


class TestScenarios:
    """End-to-end scenarios."""
    
    def test_without_filter_arguments(self, marked_environment, capfd):
        """Test that no arguments give dump, sort, pager and exit 0."""
        exit_code, pipeline, spawner = run_pipeline([], marked_environment)
        out, _ = capfd.readouterr()
        lines = out.splitlines()
        
        assert exit_code == 0
        assert pipeline.stage_count == 3
        assert len(pipeline.channels) == 2
        assert spawner.spawn_count == spawner.reap_count == 3
        assert "E2E_USER=someone" in lines
    
    def test_filter_with_match(self, marked_environment, capfd):
        """Test that grep -i user keeps matching variables and exits 0."""
        exit_code, pipeline, spawner = run_pipeline(["-i", "user"], marked_environment)
        out, _ = capfd.readouterr()
        
        assert exit_code == 0
        assert pipeline.stage_count == 4
        assert len(pipeline.channels) == 3
        assert spawner.reap_count == 4
        assert "E2E_USER=someone" in out.splitlines()
        assert all("user" in line.lower() for line in out.splitlines())
    
    def test_filter_without_match(self, marked_environment, capfd):
        """Test that a filter matching nothing makes the pipeline exit 1."""
        exit_code, _, spawner = run_pipeline(["-x", "NO_SUCH_LINE=zzz"], marked_environment)
        out, _ = capfd.readouterr()
        
        assert exit_code == 1
        assert spawner.reap_count == 4
        assert out == ""
    
    def test_missing_pager_falls_back(self, marked_environment, capfd):
        """Test that an unloadable $PAGER falls back through the configured pagers."""
        environ = dict(marked_environment, PAGER="/nonexistent/digenv-pager")
        config = PipelineConfig(fallback_pagers=["digenv-missing-pager", "cat"])
        
        exit_code, _, spawner = run_pipeline(["someone"], environ, config)
        out, _ = capfd.readouterr()
        
        assert exit_code == 0
        assert spawner.reap_count == 4
        assert "E2E_USER=someone" in out.splitlines()
    
    def test_no_loadable_pager_fails(self, marked_environment):
        """Test that the pipeline fails once every pager candidate is missing."""
        environ = dict(marked_environment, PAGER="/nonexistent/digenv-pager")
        config = PipelineConfig(fallback_pagers=["digenv-missing-a", "digenv-missing-b"])
        
        exit_code, _, spawner = run_pipeline([], environ, config)
        
        # The pager exits 1; sort may first die of SIGPIPE writing to it.
        assert exit_code in (1, 2)
        assert spawner.reap_count == 3
    
    @pytest.mark.skipif(shutil.which("true") is None, reason="requires true")
    def test_pager_exiting_early_kills_sort_with_sigpipe(self, monkeypatch):
        """Test that sort writing to a finished pager is reaped as signaled."""
        # more output than a pipe buffers, so sort cannot finish its writes
        for i in range(64):
            monkeypatch.setenv(f"E2E_BULK_{i:02d}", "x" * 4096)
        environ = dict(os.environ, PAGER="true")
        
        exit_code, _, spawner = run_pipeline([], environ)
        
        assert spawner.statuses["sort"] == Signaled(signal.SIGPIPE)
        assert spawner.statuses["printenv"] == NormalExit(0)
        assert spawner.statuses["true"] == NormalExit(0)
        assert exit_code == 2


class TestDescriptorHygiene:
    """Descriptor leak checks on the supervising process."""
    
    def test_parent_descriptors_restored(self, marked_environment, capfd):
        """Test that no pipe endpoint outlives the pipeline in the parent."""
        process = psutil.Process()
        before = process.num_fds()
        
        run_pipeline(["-i", "user"], marked_environment)
        capfd.readouterr()
        
        assert process.num_fds() == before
