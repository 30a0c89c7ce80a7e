"""
scheduler.py — Interval jobs running inside the API process.

    alert-cycle        every ALERT_CYCLE_INTERVAL_SECONDS (1 h), once at startup
    current-weather    every CURRENT_WEATHER_INTERVAL_SECONDS (15 min)

Jobs share the event loop with request handling; each tick is awaited
before the next sleep starts. An exception inside a tick is logged and
the loop keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


class PeriodicJob:
    """
    Run ``job()`` every ``interval_seconds``.

    Usage:
        job = PeriodicJob("alert-cycle", orchestrator.run_alert_cycle, 3600)
        await job.start()
        ...
        await job.stop()
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        *,
        run_immediately: bool = False,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self._job = job
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"job:{self.name}")
        logger.info("Job '%s' scheduled every %ss", self.name, self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Job '%s' stopped", self.name)

    async def run_once(self) -> None:
        self.runs += 1
        try:
            await self._job()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failures += 1
            logger.exception("Job '%s' failed", self.name)

    async def _loop(self) -> None:
        if self.run_immediately:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()


class JobScheduler:
    """Start/stop a group of PeriodicJobs together (FastAPI lifespan)."""

    def __init__(self, jobs: Optional[List[PeriodicJob]] = None) -> None:
        self.jobs: List[PeriodicJob] = list(jobs or [])

    def add(self, job: PeriodicJob) -> None:
        self.jobs.append(job)

    async def start(self) -> None:
        for job in self.jobs:
            await job.start()

    async def stop(self) -> None:
        for job in self.jobs:
            await job.stop()
