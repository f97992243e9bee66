# converter/simulator.py
import asyncio
import logging
import random
from typing import Dict, List, Optional

from .config import SIMULATOR_TICK_SECS, SIMULATOR_MAX_STEP
from .models import Job, JobStatus, utcnow
from .registry import JobRegistry

logger = logging.getLogger(__name__)


class ProgressSimulator:
    """
    Advances processing jobs on a timer with random increments.

    Stand-in for real transcoder progress: the numbers have no relation to
    bytes produced. Each tracked job gets its own asyncio task which exits
    once the job is no longer processing.
    """

    def __init__(
        self,
        registry: JobRegistry,
        interval: float = SIMULATOR_TICK_SECS,
        max_step: float = SIMULATOR_MAX_STEP,
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.interval = interval
        self.max_step = max_step
        self.rng = rng or random.Random()
        self._tasks: Dict[str, asyncio.Task] = {}

    def advance(self, job_id: str) -> Optional[Job]:
        """Apply one tick to a single job."""
        job = self.registry.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return job

        progress = min(job.progress + self.rng.uniform(0, self.max_step), 100.0)
        if progress >= 100:
            logger.info(f"[Simulator] Job {job_id} completed")
            return self.registry.update(
                job_id,
                progress=100.0,
                status=JobStatus.COMPLETED,
                completed_at=utcnow(),
                download_url=job.file_url,
                speed=None,
                eta=0,
            )
        return self.registry.update(
            job_id,
            progress=progress,
            speed=round(self.rng.uniform(1, 4), 1),
            eta=max(1, round((100 - progress) / 3)),
        )

    def tick(self) -> List[Job]:
        """Advance every processing job once."""
        return [
            self.advance(job.id)
            for job in self.registry.list(status=JobStatus.PROCESSING)
        ]

    # -------------------- Scheduling --------------------

    def is_tracking(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def track(self, job_id: str) -> None:
        # a paused-then-resumed job may still have its old task sleeping
        if self.is_tracking(job_id):
            return
        self._tasks[job_id] = asyncio.get_running_loop().create_task(self._run(job_id))

    def untrack(self, job_id: str) -> None:
        task = self._tasks.pop(job_id, None)
        if task is not None and not task.done():
            task.cancel()

    def resume_all(self) -> int:
        jobs = self.registry.list(status=JobStatus.PROCESSING)
        for job in jobs:
            self.track(job.id)
        if jobs:
            logger.info(f"[Simulator] Resumed ticking for {len(jobs)} job(s)")
        return len(jobs)

    def stop(self) -> None:
        for job_id in list(self._tasks):
            self.untrack(job_id)

    async def _run(self, job_id: str) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    job = self.advance(job_id)
                except Exception:
                    # a bad tick must not strand the job in processing
                    logger.exception(f"[Simulator] Tick failed for job {job_id}; retrying")
                    continue
                if job is None or job.status != JobStatus.PROCESSING:
                    break
        finally:
            if self._tasks.get(job_id) is asyncio.current_task():
                del self._tasks[job_id]
