"""Unit tests for DeferredTask."""

from __future__ import annotations

import asyncio

import pytest

from yt_queue.storage import DeferredTask


class Recorder:
    """Coroutine callback that counts its runs."""

    def __init__(self, fail: bool = False) -> None:
        self.runs = 0
        self.fail = fail

    async def __call__(self) -> None:
        self.runs += 1
        if self.fail:
            raise OSError("disk full")


class TestDeferredTask:
    """Tests for trailing-edge debouncing."""

    def test_negative_delay_rejected(self) -> None:
        with pytest.raises(ValueError):
            DeferredTask(Recorder(), -1)

    def test_burst_runs_once(self) -> None:
        """Test many arms within the delay produce a single run."""
        recorder = Recorder()

        async def scenario() -> None:
            task = DeferredTask(recorder, 0.2)
            for _ in range(10):
                task.arm()
                await asyncio.sleep(0.001)
            assert recorder.runs == 0
            await asyncio.sleep(0.4)

        asyncio.run(scenario())
        assert recorder.runs == 1

    def test_rearm_pushes_deadline(self) -> None:
        """Test the run is timed from the last arm."""
        recorder = Recorder()

        async def scenario() -> None:
            task = DeferredTask(recorder, 0.3)
            task.arm()
            await asyncio.sleep(0.2)
            task.arm()
            await asyncio.sleep(0.2)
            # 0.4s after the first arm, but only 0.2s after the last
            assert recorder.runs == 0
            await asyncio.sleep(0.3)
            assert recorder.runs == 1

        asyncio.run(scenario())

    def test_separate_bursts_run_separately(self) -> None:
        recorder = Recorder()

        async def scenario() -> None:
            task = DeferredTask(recorder, 0.01)
            task.arm()
            await asyncio.sleep(0.05)
            task.arm()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert recorder.runs == 2

    def test_cancel(self) -> None:
        recorder = Recorder()

        async def scenario() -> None:
            task = DeferredTask(recorder, 0.01)
            task.arm()
            assert task.armed
            task.cancel()
            assert not task.armed
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert recorder.runs == 0

    def test_flush_runs_pending_immediately(self) -> None:
        """Test flush does not wait for the delay."""
        recorder = Recorder()

        async def scenario() -> None:
            task = DeferredTask(recorder, 60)
            task.arm()
            await task.flush()
            assert not task.armed
            assert not task.running

        asyncio.run(scenario())
        assert recorder.runs == 1

    def test_flush_without_pending_run(self) -> None:
        recorder = Recorder()

        async def scenario() -> None:
            await DeferredTask(recorder, 1).flush()

        asyncio.run(scenario())
        assert recorder.runs == 0

    def test_failure_logged_not_raised(self) -> None:
        """Test a failing callback does not break later runs."""
        recorder = Recorder(fail=True)

        async def scenario() -> None:
            task = DeferredTask(recorder, 0)
            task.arm()
            await task.flush()
            task.arm()
            await task.flush()

        asyncio.run(scenario())
        assert recorder.runs == 2

    def test_runs_do_not_overlap(self) -> None:
        """Test a run fired mid-write waits for the previous one."""
        active = 0
        peak = 0

        async def slow_write() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1

        async def scenario() -> None:
            task = DeferredTask(slow_write, 0)
            task.fire()
            task.fire()
            task.fire()
            await task.flush()

        asyncio.run(scenario())
        assert peak == 1
