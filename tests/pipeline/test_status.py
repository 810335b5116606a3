"""Tests for exit status decoding and first-failure aggregation."""

import os
import signal
import pytest
from digenv.pipeline.status import (
    NormalExit, Signaled, StatusAggregator,
    exit_status_from_wait, SIGNAL_EXIT_CODE,
)


def reduce(statuses):
    aggregator = StatusAggregator()
    for status in statuses:
        aggregator.add(status)
    return aggregator


class TestExitStatusFromWait:
    """Tests for decoding raw wait statuses."""
    
    def test_normal_exit(self):
        """Test that an exit code is decoded as NormalExit."""
        assert exit_status_from_wait(3 << 8) == NormalExit(3)
    
    def test_zero_exit(self):
        """Test that status 0 is a successful NormalExit."""
        status = exit_status_from_wait(0)
        assert status == NormalExit(0)
        assert not status.failed
    
    def test_signaled(self):
        """Test that a signal termination is decoded as Signaled."""
        status = exit_status_from_wait(signal.SIGPIPE)
        assert status == Signaled(signal.SIGPIPE)
        assert status.failed
    
    @pytest.mark.skipif(not hasattr(os, "fork"), reason="requires fork")
    def test_real_child_exit_code(self):
        """Test decoding the status of a real child."""
        pid = os.fork()
        if pid == 0:
            os._exit(7)
        _, status = os.waitpid(pid, 0)
        assert exit_status_from_wait(status) == NormalExit(7)


class TestStatusAggregator:
    """Tests for the first-failure-wins reduction."""
    
    def test_all_zero(self):
        """Test that all-zero statuses aggregate to 0."""
        assert reduce([NormalExit(0)] * 4).exit_code == 0
    
    def test_no_statuses(self):
        """Test that the aggregate defaults to 0."""
        aggregator = reduce([])
        assert aggregator.exit_code == 0
        assert aggregator.decided_by is None
    
    def test_first_non_zero_wins(self):
        """Test that the first non-zero exit in reap order decides."""
        statuses = [NormalExit(0), NormalExit(1), NormalExit(5), NormalExit(0)]
        assert reduce(statuses).exit_code == 1
    
    def test_later_failure_never_overwrites(self):
        """Test that a later signal does not replace an earlier exit code."""
        statuses = [NormalExit(4), Signaled(signal.SIGKILL)]
        assert reduce(statuses).exit_code == 4
    
    def test_signal_first_gives_signal_code(self):
        """Test that a signal reaped before any failure gives 2."""
        statuses = [NormalExit(0), Signaled(signal.SIGPIPE), NormalExit(1)]
        assert reduce(statuses).exit_code == SIGNAL_EXIT_CODE
        assert SIGNAL_EXIT_CODE == 2
    
    def test_records_deciding_status_and_count(self):
        """Test that the aggregator tracks what decided the result."""
        aggregator = StatusAggregator()
        aggregator.add(NormalExit(0))
        aggregator.add(Signaled(15))
        aggregator.add(NormalExit(3))
        
        assert aggregator.exit_code == 2
        assert aggregator.decided_by == Signaled(15)
        assert aggregator.count == 3
