import asyncio

import pytest

from notifier.services.scheduler import JobScheduler, PeriodicJob


class TestPeriodicJob:
    @pytest.mark.asyncio
    async def test_failed_tick_does_not_stop_the_job(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")

        job = PeriodicJob("flaky", flaky, 60)
        await job.tick()
        await job.tick()

        assert len(calls) == 2
        assert job.ticks == 2

    @pytest.mark.asyncio
    async def test_stop_blocks_later_ticks(self):
        calls = []

        async def work():
            calls.append(1)

        job = PeriodicJob("work", work, 60)
        await job.tick()
        job.stop()
        await job.tick()

        assert calls == [1]
        assert job.stopped is True

    @pytest.mark.asyncio
    async def test_stop_does_not_interrupt_running_tick(self):
        started, release = asyncio.Event(), asyncio.Event()
        finished = []

        async def slow():
            started.set()
            await release.wait()
            finished.append(True)

        job = PeriodicJob("slow", slow, 60)
        task = asyncio.create_task(job.tick())
        await started.wait()
        assert job.running is True

        job.stop()
        release.set()
        await task

        assert finished == [True]
        assert job.running is False


class TestJobScheduler:
    @pytest.mark.asyncio
    async def test_runs_and_shuts_down(self):
        ticked = asyncio.Event()

        async def work():
            ticked.set()

        scheduler = JobScheduler()
        job = scheduler.add(PeriodicJob("fast", work, 0.05))
        scheduler.start()
        await asyncio.wait_for(ticked.wait(), timeout=2.0)
        await scheduler.shutdown(timeout=1.0)

        assert job.ticks >= 1
        assert job.stopped is True

    def test_status_before_start(self):
        async def work():
            pass

        scheduler = JobScheduler()
        scheduler.add(PeriodicJob("idle", work, 30))

        (status,) = scheduler.get_status()
        assert status["id"] == "idle"
        assert status["stopped"] is False
        assert status["ticks"] == 0
        assert status["next_run"] is None

    def test_stop_job_removes_only_that_job(self):
        async def work():
            pass

        scheduler = JobScheduler()
        scheduler.add(PeriodicJob("a", work, 30))
        scheduler.add(PeriodicJob("b", work, 30))
        scheduler.stop_job("a")

        status = {s["id"]: s for s in scheduler.get_status()}
        assert status["a"]["stopped"] is True
        assert status["b"]["stopped"] is False
