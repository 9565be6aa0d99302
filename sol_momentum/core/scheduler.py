"""
Scheduler: Drives the bot's periodic cycles.

Runs each registered job (scan, position review, grid check, heartbeat) on its
own interval inside one event loop. A job never overlaps itself: if a tick
arrives while the previous run is still in flight, the tick is skipped.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """One periodic cycle."""

    name: str
    interval: float  # Seconds
    callback: Callable[[], Awaitable[None]]
    run_immediately: bool = False
    running: bool = False
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_run_ts: float = 0.0
    _task: Optional[asyncio.Task] = field(default=None, repr=False)


class Scheduler:
    """
    Periodic cycle scheduler.

    Each job gets its own timer task. Cycles suspend at every external call,
    so jobs interleave; shared state is protected by the portfolio store lock,
    not by the scheduler.

    stop() stops scheduling further cycles but lets in-flight cycles finish.
    """

    def __init__(self):
        self.jobs: Dict[str, Job] = {}
        self.running = False
        self._stopped = asyncio.Event()
        self._inflight: List[asyncio.Task] = []

    def add_job(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        run_immediately: bool = False,
    ) -> Job:
        """
        Register a periodic job.

        Args:
            name: Job name (used in logs)
            interval: Seconds between ticks
            callback: Coroutine function to call on each tick
            run_immediately: Fire once at start instead of after the first interval
        """
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        job = Job(name=name, interval=interval, callback=callback, run_immediately=run_immediately)
        self.jobs[name] = job
        return job

    async def run_job_once(self, job: Job) -> bool:
        """
        Run one tick of a job unless it is already in flight.

        Returns:
            True if the callback ran
        """
        if job.running:
            job.skipped += 1
            logger.debug(f"[Scheduler] {job.name} still running, tick skipped")
            return False

        job.running = True
        try:
            await job.callback()
            job.runs += 1
            job.last_run_ts = time.time()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.failures += 1
            logger.exception(f"[Scheduler] ERROR during {job.name}: {e}")
            # Continue running despite errors
        finally:
            job.running = False
        return True

    async def _job_loop(self, job: Job):
        if not job.run_immediately:
            if await self._wait_or_stop(job.interval):
                return

        while self.running:
            # Shield so stop() never interrupts a cycle mid-flight
            tick = asyncio.ensure_future(self.run_job_once(job))
            self._inflight.append(tick)
            tick.add_done_callback(self._inflight.remove)
            await asyncio.shield(tick)

            if await self._wait_or_stop(job.interval):
                return

    async def _wait_or_stop(self, seconds: float) -> bool:
        """Sleep for `seconds`; True if stop() was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def run_forever(self):
        """
        Run all jobs until stop() is called.

        Returns after in-flight cycles have completed.
        """
        if not self.jobs:
            logger.warning("[Scheduler] No jobs registered")
            return

        self.running = True
        self._stopped.clear()
        intervals = ", ".join(f"{j.name}={j.interval:.0f}s" for j in self.jobs.values())
        logger.info(f"[Scheduler] Started. Jobs: {intervals}")

        for job in self.jobs.values():
            job._task = asyncio.create_task(self._job_loop(job), name=f"job-{job.name}")

        await asyncio.gather(*(j._task for j in self.jobs.values()), return_exceptions=True)

        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        logger.info("[Scheduler] Stopped")

    def stop(self):
        """Stop scheduling further cycles."""
        logger.info("[Scheduler] Stopping...")
        self.running = False
        self._stopped.set()
