"""Job scheduler - recurring jobs with an in-flight guard per job."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal, Optional

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


@dataclass
class JobState:
    """Runtime bookkeeping for one named job."""

    name: str
    factory: JobFactory
    interval: Optional[float] = None
    running: bool = False
    rerun_requested: bool = False
    runs: int = 0
    skipped: int = 0
    last_started: Optional[datetime] = None
    last_finished: Optional[datetime] = None
    last_error: Optional[str] = None
    last_result: Any = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def snapshot(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "runs": self.runs,
            "skipped": self.skipped,
            "interval_seconds": self.interval,
            "last_started": self.last_started.isoformat() if self.last_started else None,
            "last_finished": self.last_finished.isoformat() if self.last_finished else None,
            "last_error": self.last_error,
        }


class JobScheduler:
    """
    Runs named async jobs on fixed intervals and on demand.

    A job never runs twice at once. A trigger that arrives while the job is
    still running is dropped (``skip``) or folded into a single follow-up run
    (``queue``). Manual and timed triggers share the same guard.
    """

    def __init__(self, overlap_policy: Literal["skip", "queue"] = "skip"):
        self.overlap_policy = overlap_policy
        self.jobs: dict[str, JobState] = {}
        self._loops: list[asyncio.Task] = []

    def register(self, name: str, factory: JobFactory, interval: Optional[float] = None) -> None:
        self.jobs[name] = JobState(name=name, factory=factory, interval=interval)

    async def run_now(self, name: str) -> tuple[bool, Any]:
        """
        Run ``name`` in the caller's task and wait for it.
        Returns (ran, result); ``ran`` is False when the trigger was skipped
        or queued behind the in-flight run. Job errors propagate.
        """
        job = self.jobs[name]
        if job.running:
            self._on_overlap(job)
            return False, None

        job.running = True
        try:
            result = await self._execute(job)
            while job.rerun_requested:
                job.rerun_requested = False
                logger.info("Running queued follow-up of %s", name)
                result = await self._execute(job)
            return True, result
        finally:
            job.running = False
            job.rerun_requested = False

    def start_background(self, name: str) -> bool:
        """Start ``name`` as a background task. Returns False if it is already running."""
        job = self.jobs[name]
        if job.running or (job.task is not None and not job.task.done()):
            self._on_overlap(job)
            return False
        job.task = asyncio.create_task(self._run_logged(name), name=f"job:{name}")
        return True

    async def _execute(self, job: JobState) -> Any:
        job.runs += 1
        job.last_started = datetime.now(timezone.utc)
        job.last_error = None
        try:
            job.last_result = await job.factory()
            return job.last_result
        except Exception as e:
            job.last_error = f"{type(e).__name__}: {e}"
            raise
        finally:
            job.last_finished = datetime.now(timezone.utc)

    async def _run_logged(self, name: str) -> None:
        try:
            await self.run_now(name)
        except Exception:
            logger.exception("Job %s failed", name)

    def _on_overlap(self, job: JobState) -> None:
        job.skipped += 1
        if self.overlap_policy == "queue":
            job.rerun_requested = True
            logger.info("Job %s still running; queued one follow-up run", job.name)
        else:
            logger.info("Job %s still running; skipping this trigger", job.name)

    async def _loop(self, job: JobState, run_on_start: bool) -> None:
        if not run_on_start:
            await asyncio.sleep(job.interval)
        while True:
            self.start_background(job.name)
            await asyncio.sleep(job.interval)

    def start(self, run_on_start: bool = True) -> None:
        """Start interval loops for every job registered with an interval."""
        for job in self.jobs.values():
            if job.interval:
                logger.info("Scheduling %s every %.0fs", job.name, job.interval)
                self._loops.append(
                    asyncio.create_task(self._loop(job, run_on_start), name=f"loop:{job.name}")
                )

    async def stop(self) -> None:
        """Cancel interval loops and wait for in-flight runs to finish."""
        for loop in self._loops:
            loop.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()
        in_flight = [j.task for j in self.jobs.values() if j.task and not j.task.done()]
        if in_flight:
            logger.info("Waiting for %d in-flight jobs", len(in_flight))
            await asyncio.gather(*in_flight, return_exceptions=True)

    def status(self) -> dict[str, dict[str, Any]]:
        return {name: job.snapshot() for name, job in self.jobs.items()}
