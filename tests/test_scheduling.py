"""Tests for scheduling.py."""

import asyncio

import pytest

from burnwatch.scheduling import PeriodicTask


class TestPeriodicTask:
    """Tests for PeriodicTask."""

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            PeriodicTask("tick", lambda: None, 0)

    def test_run_once_counts_failures(self):
        def boom():
            raise RuntimeError("tick failed")

        task = PeriodicTask("tick", boom, 60)

        assert task.run_once() is False
        assert task.runs == 1
        assert task.failures == 1

    async def test_runs_until_stopped(self):
        calls = []
        task = PeriodicTask("tick", lambda: calls.append(1), 0.01)

        task.start()
        assert task.running
        await asyncio.sleep(0.05)
        await task.stop()

        assert not task.running
        assert calls
        runs = task.runs
        await asyncio.sleep(0.03)
        assert task.runs == runs

    async def test_failure_does_not_stop_loop(self):
        def boom():
            raise RuntimeError("tick failed")

        task = PeriodicTask("tick", boom, 0.01)
        task.start()
        await asyncio.sleep(0.05)

        assert task.running
        await task.stop()
        assert task.failures >= 2

    async def test_stop_without_start(self):
        task = PeriodicTask("tick", lambda: None, 1)

        await task.stop()

        assert not task.running
