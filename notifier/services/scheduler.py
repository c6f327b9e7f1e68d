# notifier/services/scheduler.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class PeriodicJob:
    """
    A named periodic coroutine. stop() blocks every later tick but leaves a
    tick that is already running alone.
    """

    def __init__(self, name: str, func: Callable[[], Awaitable[Any]], interval_seconds: float):
        self.name = name
        self.interval_seconds = interval_seconds
        self._func = func
        self._stopped = False
        self._inflight: Set[asyncio.Task] = set()
        self.ticks = 0

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def running(self) -> bool:
        return bool(self._inflight)

    def stop(self) -> None:
        self._stopped = True

    async def tick(self) -> None:
        if self._stopped:
            return
        task = asyncio.current_task()
        if task is not None:
            self._inflight.add(task)
        self.ticks += 1
        try:
            await self._func()
        except Exception as e:
            # a failed tick never affects the next one
            logger.error("[%s] Tick failed: %s", self.name, e)
        finally:
            if task is not None:
                self._inflight.discard(task)

    async def wait_idle(self, timeout: float) -> None:
        if self._inflight:
            await asyncio.wait(list(self._inflight), timeout=timeout)


class JobScheduler:
    def __init__(self):
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 30,
            }
        )
        self._jobs: Dict[str, PeriodicJob] = {}

    def add(self, job: PeriodicJob) -> PeriodicJob:
        self._jobs[job.name] = job
        self._scheduler.add_job(
            job.tick,
            IntervalTrigger(seconds=job.interval_seconds),
            id=job.name,
            name=job.name,
            replace_existing=True,
        )
        return job

    def start(self) -> None:
        self._scheduler.start()
        logger.info("Scheduler started with %d jobs", len(self._jobs))

    def stop_job(self, name: str) -> None:
        job = self._jobs.get(name)
        if job is None:
            return
        job.stop()
        if self._scheduler.get_job(name) is not None:
            self._scheduler.remove_job(name)
        logger.info("[%s] Job stopped", name)

    async def shutdown(self, timeout: float = 30.0) -> None:
        for job in self._jobs.values():
            job.stop()
        # the asyncio executor cancels running jobs on shutdown, so let them finish first
        for job in self._jobs.values():
            await job.wait_idle(timeout)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def get_status(self) -> List[dict]:
        status = []
        for name, job in self._jobs.items():
            scheduled = self._scheduler.get_job(name)
            # pending jobs have no next_run_time until the scheduler starts
            next_run = getattr(scheduled, "next_run_time", None)
            status.append({
                "id": name,
                "stopped": job.stopped,
                "running": job.running,
                "ticks": job.ticks,
                "next_run": str(next_run) if next_run else None,
            })
        return status
