# converter/lifecycle.py
import logging
from typing import List, Optional

from .errors import InvalidTransitionError, JobNotFoundError
from .models import Job, JobDescriptor, JobStatus, utcnow
from .registry import JobRegistry
from .simulator import ProgressSimulator

logger = logging.getLogger(__name__)

# action -> (allowed source statuses, target status)
TRANSITIONS = {
    "start": ({JobStatus.QUEUED}, JobStatus.PROCESSING),
    "pause": ({JobStatus.PROCESSING}, JobStatus.PAUSED),
    "resume": ({JobStatus.PAUSED}, JobStatus.PROCESSING),
    "fail": ({JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.PAUSED}, JobStatus.FAILED),
    "retry": ({JobStatus.FAILED}, JobStatus.PROCESSING),
}


class LifecycleController:
    """Applies user-driven status transitions and keeps the simulator in step."""

    def __init__(self, registry: JobRegistry, simulator: ProgressSimulator):
        self.registry = registry
        self.simulator = simulator

    def _require(self, job_id: str, action: str) -> Job:
        job = self.registry.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        allowed, _ = TRANSITIONS[action]
        if job.status not in allowed:
            raise InvalidTransitionError(job_id, action, job.status.value)
        return job

    def submit(self, descriptor: JobDescriptor, autostart: bool = True) -> Job:
        status = JobStatus.PROCESSING if autostart else JobStatus.QUEUED
        job = self.registry.create(descriptor, status=status)
        if autostart:
            self.simulator.track(job.id)
        return job

    def start(self, job_id: str) -> Job:
        self._require(job_id, "start")
        job = self.registry.update(job_id, status=JobStatus.PROCESSING)
        self.simulator.track(job_id)
        return job

    def pause(self, job_id: str) -> Job:
        self._require(job_id, "pause")
        self.simulator.untrack(job_id)
        logger.info(f"[Lifecycle] Paused job {job_id}")
        return self.registry.update(job_id, status=JobStatus.PAUSED, speed=None, eta=None)

    def resume(self, job_id: str) -> Job:
        self._require(job_id, "resume")
        job = self.registry.update(job_id, status=JobStatus.PROCESSING)
        self.simulator.track(job_id)
        logger.info(f"[Lifecycle] Resumed job {job_id}")
        return job

    def fail(self, job_id: str, error: Optional[str] = None) -> Job:
        self._require(job_id, "fail")
        self.simulator.untrack(job_id)
        logger.warning(f"[Lifecycle] Job {job_id} failed: {error or 'no reason given'}")
        return self.registry.update(
            job_id, status=JobStatus.FAILED, completed_at=utcnow(), error=error, speed=None, eta=None
        )

    def retry(self, job_id: str) -> Job:
        self._require(job_id, "retry")
        job = self.registry.update(
            job_id,
            status=JobStatus.PROCESSING,
            progress=0.0,
            completed_at=None,
            error=None,
        )
        self.simulator.track(job_id)
        logger.info(f"[Lifecycle] Retrying job {job_id}")
        return job

    def cancel(self, job_id: str) -> bool:
        self.simulator.untrack(job_id)
        return self.registry.remove(job_id)

    def clear_completed(self) -> List[str]:
        return self.registry.clear_completed()
