"""Tests for the job scheduler overlap guard."""

import asyncio

import pytest

from page_acquisition.agent.scheduler import JobScheduler


class GatedJob:
    """Job that blocks until released, counting concurrent runs."""

    def __init__(self):
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.runs = 0
        self.active = 0
        self.peak = 0

    async def __call__(self):
        self.runs += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.started.set()
        try:
            await self.release.wait()
        finally:
            self.active -= 1
        return self.runs


@pytest.mark.asyncio
async def test_skip_policy_drops_overlapping_trigger():
    job = GatedJob()
    scheduler = JobScheduler(overlap_policy="skip")
    scheduler.register("batch", job)

    first = asyncio.create_task(scheduler.run_now("batch"))
    await job.started.wait()
    ran, result = await scheduler.run_now("batch")
    job.release.set()

    assert (ran, result) == (False, None)
    assert await first == (True, 1)
    assert job.runs == 1
    assert job.peak == 1
    assert scheduler.status()["batch"]["skipped"] == 1


@pytest.mark.asyncio
async def test_queue_policy_runs_one_follow_up():
    job = GatedJob()
    scheduler = JobScheduler(overlap_policy="queue")
    scheduler.register("batch", job)

    first = asyncio.create_task(scheduler.run_now("batch"))
    await job.started.wait()
    for _ in range(3):
        assert (await scheduler.run_now("batch"))[0] is False
    job.release.set()

    assert await first == (True, 2)
    assert job.runs == 2
    assert job.peak == 1
    assert scheduler.status()["batch"]["running"] is False


@pytest.mark.asyncio
async def test_background_start_is_guarded():
    job = GatedJob()
    scheduler = JobScheduler()
    scheduler.register("decay_check", job)

    assert scheduler.start_background("decay_check") is True
    await job.started.wait()
    assert scheduler.start_background("decay_check") is False
    job.release.set()
    await scheduler.jobs["decay_check"].task

    assert job.runs == 1
    assert scheduler.start_background("decay_check") is True
    await scheduler.stop()


@pytest.mark.asyncio
async def test_job_errors_are_recorded_and_guard_released():
    calls = []

    async def failing():
        calls.append(1)
        raise RuntimeError("boom")

    scheduler = JobScheduler()
    scheduler.register("discovery", failing)

    with pytest.raises(RuntimeError):
        await scheduler.run_now("discovery")

    state = scheduler.status()["discovery"]
    assert state["last_error"] == "RuntimeError: boom"
    assert state["running"] is False

    # Background failures are logged, not raised
    assert scheduler.start_background("discovery")
    await scheduler.jobs["discovery"].task
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_interval_loop_runs_and_stops():
    runs = []

    async def tick():
        runs.append(1)

    scheduler = JobScheduler()
    scheduler.register("batch", tick, interval=0.01)
    scheduler.register("manual_only", tick)

    scheduler.start(run_on_start=True)
    await asyncio.sleep(0.05)
    await scheduler.stop()

    count = len(runs)
    assert count >= 2
    await asyncio.sleep(0.03)
    assert len(runs) == count
