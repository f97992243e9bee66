# converter/registry.py
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from pydantic import ValidationError

from .job_store import JobStore
from .models import Job, JobDescriptor, JobStatus

logger = logging.getLogger(__name__)

# set at creation, never rewritten afterwards
FROZEN_FIELDS = frozenset(
    {"id", "title", "format", "quality", "started_at", "file_size", "thumbnail", "duration", "file_url"}
)


class JobRegistry:
    """
    In-memory collection of conversion jobs, newest first.

    Every mutation is written through to the injected JobStore. Unknown ids
    on update/remove are silently ignored. Inside a running event loop the
    write is handed to a single writer thread so store round-trips never
    block the loop; writes land in the order they were made.
    """

    def __init__(self, store: Optional[JobStore] = None):
        self._store = store
        self._jobs: Dict[str, Job] = {}
        self._writer: Optional[ThreadPoolExecutor] = None
        if store is not None:
            self._restore()

    def _restore(self) -> None:
        # stored newest first; insert oldest first so ordering survives
        for raw in reversed(self._store.load()):
            try:
                job = Job.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"[Registry] Skipping unreadable job record: {e}")
                continue
            self._jobs[job.id] = job
        if self._jobs:
            logger.info(f"[Registry] Restored {len(self._jobs)} job(s)")

    def _persist(self) -> None:
        if self._store is None:
            return
        snapshot = [job.to_dict() for job in self.list()]
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._store.save(snapshot)
            return
        if self._writer is None:
            self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="job-store")
        self._writer.submit(self._store.save, snapshot)

    def flush(self) -> None:
        """Wait for queued writes to reach the store."""
        if self._writer is not None:
            self._writer.submit(lambda: None).result()

    def close(self) -> None:
        if self._writer is not None:
            self._writer.shutdown(wait=True)
            self._writer = None

    def create(self, descriptor: JobDescriptor, status: JobStatus = JobStatus.PROCESSING) -> Job:
        job = Job.from_descriptor(descriptor, status=status)
        self._jobs[job.id] = job
        self._persist()
        logger.info(f"[Registry] Created job {job.id} ({job.format.value} {job.quality}) '{job.title}'")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def update(self, job_id: str, **fields) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        frozen = FROZEN_FIELDS.intersection(fields)
        if frozen:
            raise ValueError(f"Cannot change {', '.join(sorted(frozen))} of job {job_id}")
        data = job.model_dump()
        data.update(fields)
        updated = Job.model_validate(data)
        self._jobs[job_id] = updated
        self._persist()
        return updated

    def remove(self, job_id: str) -> bool:
        if self._jobs.pop(job_id, None) is None:
            return False
        self._persist()
        logger.info(f"[Registry] Removed job {job_id}")
        return True

    def list(self, status: Optional[JobStatus] = None) -> List[Job]:
        jobs = reversed(list(self._jobs.values()))
        if status is not None:
            return [j for j in jobs if j.status == status]
        return list(jobs)

    def clear_completed(self) -> List[str]:
        removed = [j.id for j in self._jobs.values() if j.status == JobStatus.COMPLETED]
        for job_id in removed:
            del self._jobs[job_id]
        if removed:
            self._persist()
            logger.info(f"[Registry] Cleared {len(removed)} completed job(s)")
        return removed

    def stats(self) -> dict:
        jobs = list(self._jobs.values())
        counts = {s: 0 for s in JobStatus}
        for job in jobs:
            counts[job.status] += 1

        durations = [
            (j.completed_at - j.started_at).total_seconds()
            for j in jobs
            if j.status == JobStatus.COMPLETED and j.completed_at
        ]
        avg = round(sum(durations) / len(durations), 1) if durations else 0
        speeds = [j.speed for j in jobs if j.status == JobStatus.PROCESSING and j.speed is not None]
        avg_speed = round(sum(speeds) / len(speeds), 2) if speeds else 0

        return {
            "total": len(jobs),
            "queued": counts[JobStatus.QUEUED],
            "active": counts[JobStatus.PROCESSING],
            "paused": counts[JobStatus.PAUSED],
            "completed": counts[JobStatus.COMPLETED],
            "failed": counts[JobStatus.FAILED],
            "avgCompletionSeconds": avg,
            "avgSpeed": avg_speed,
        }

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs
