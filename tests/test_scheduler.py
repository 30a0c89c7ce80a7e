"""
test_scheduler.py — Tests for the in-process interval jobs.

Run with:
    pytest tests/test_scheduler.py -v
"""

from __future__ import annotations

import asyncio

import pytest

from backend.app.alerts.scheduler import JobScheduler, PeriodicJob


class CountingJob:
    def __init__(self, fail: bool = False):
        self.calls = 0
        self.fail = fail

    async def __call__(self) -> None:
        self.calls += 1
        if self.fail:
            raise RuntimeError("tick failed")


class TestPeriodicJob:

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PeriodicJob("bad", CountingJob(), 0)

    def test_run_immediately_fires_before_first_interval(self):
        job_body = CountingJob()
        job = PeriodicJob("alert-cycle", job_body, 3600, run_immediately=True)

        async def scenario():
            await job.start()
            await asyncio.sleep(0.01)
            await job.stop()

        asyncio.run(scenario())
        assert job_body.calls == 1
        assert job.runs == 1

    def test_waits_first_interval_by_default(self):
        job_body = CountingJob()
        job = PeriodicJob("current-weather", job_body, 3600)

        async def scenario():
            await job.start()
            await asyncio.sleep(0.01)
            await job.stop()

        asyncio.run(scenario())
        assert job_body.calls == 0

    def test_repeats_on_interval(self):
        job_body = CountingJob()
        job = PeriodicJob("fast", job_body, 0.01)

        async def scenario():
            await job.start()
            await asyncio.sleep(0.1)
            await job.stop()

        asyncio.run(scenario())
        assert job_body.calls >= 3

    def test_failing_tick_does_not_stop_the_loop(self):
        job_body = CountingJob(fail=True)
        job = PeriodicJob("flaky", job_body, 0.01, run_immediately=True)

        async def scenario():
            await job.start()
            await asyncio.sleep(0.1)
            running = job.running
            await job.stop()
            return running

        assert asyncio.run(scenario()) is True
        assert job.failures == job.runs
        assert job.runs >= 2

    def test_stop_cancels_task(self):
        job = PeriodicJob("idle", CountingJob(), 3600)

        async def scenario():
            await job.start()
            assert job.running
            await job.stop()
            return job.running

        assert asyncio.run(scenario()) is False

    def test_start_twice_keeps_one_task(self):
        job = PeriodicJob("once", CountingJob(), 3600)

        async def scenario():
            await job.start()
            first = job._task
            await job.start()
            same = job._task is first
            await job.stop()
            return same

        assert asyncio.run(scenario()) is True

    def test_stop_without_start(self):
        asyncio.run(PeriodicJob("never", CountingJob(), 1).stop())


class TestJobScheduler:

    def test_starts_and_stops_all_jobs(self):
        jobs = [PeriodicJob("a", CountingJob(), 3600), PeriodicJob("b", CountingJob(), 3600)]
        scheduler = JobScheduler(jobs[:1])
        scheduler.add(jobs[1])

        async def scenario():
            await scheduler.start()
            started = [j.running for j in jobs]
            await scheduler.stop()
            return started, [j.running for j in jobs]

        started, stopped = asyncio.run(scenario())
        assert started == [True, True]
        assert stopped == [False, False]
