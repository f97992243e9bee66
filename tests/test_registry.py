import asyncio
import threading
from datetime import timedelta

import pytest
from pydantic import ValidationError

from converter.job_store import JobStore, _MemoryStore, _RedisStore
from converter.models import JobDescriptor, JobFormat, JobStatus
from converter.registry import JobRegistry


def _descriptor(title, fmt=JobFormat.VIDEO, quality="720"):
    return JobDescriptor(title=title, format=fmt, quality=quality)


def test_create_starts_processing_at_zero(registry, descriptor):
    job = registry.create(descriptor)
    assert job.status == JobStatus.PROCESSING
    assert job.progress == 0
    assert job.started_at is not None
    assert job.completed_at is None
    assert registry.get(job.id) == job


def test_create_can_queue(registry, descriptor):
    job = registry.create(descriptor, status=JobStatus.QUEUED)
    assert job.status == JobStatus.QUEUED


def test_list_is_newest_first(registry):
    first = registry.create(_descriptor("first"))
    second = registry.create(_descriptor("second"))
    third = registry.create(_descriptor("third"))
    assert [j.id for j in registry.list()] == [third.id, second.id, first.id]


def test_list_filters_by_status(registry):
    a = registry.create(_descriptor("a"))
    registry.create(_descriptor("b"), status=JobStatus.QUEUED)
    assert [j.id for j in registry.list(status=JobStatus.PROCESSING)] == [a.id]


def test_update_merges_fields(registry, descriptor):
    job = registry.create(descriptor)
    updated = registry.update(job.id, progress=42.5)
    assert updated.progress == 42.5
    assert updated.title == job.title
    assert registry.get(job.id).progress == 42.5


def test_update_unknown_id_is_noop(registry):
    assert registry.update("missing", progress=10) is None
    assert len(registry) == 0


def test_update_rejects_full_progress_without_completion(registry, descriptor):
    job = registry.create(descriptor)
    with pytest.raises(ValidationError):
        registry.update(job.id, progress=100)
    assert registry.get(job.id).progress == 0


def test_update_rejects_completion_below_full_progress(registry, descriptor):
    job = registry.create(descriptor)
    with pytest.raises(ValidationError):
        registry.update(job.id, status=JobStatus.COMPLETED, progress=80)


def test_update_rejects_out_of_range_progress(registry, descriptor):
    job = registry.create(descriptor)
    with pytest.raises(ValidationError):
        registry.update(job.id, progress=-1)


def test_remove(registry, descriptor):
    job = registry.create(descriptor)
    assert registry.remove(job.id) is True
    assert job.id not in registry
    assert registry.remove(job.id) is False


def test_clear_completed_only_removes_completed(registry):
    done = registry.create(_descriptor("done"))
    registry.update(done.id, status=JobStatus.COMPLETED, progress=100)
    running = registry.create(_descriptor("running"))
    failed = registry.create(_descriptor("failed"))
    registry.update(failed.id, status=JobStatus.FAILED)

    assert registry.clear_completed() == [done.id]
    assert {j.id for j in registry.list()} == {running.id, failed.id}


def test_stats(registry):
    registry.create(_descriptor("a"))
    registry.create(_descriptor("b"), status=JobStatus.QUEUED)
    paused = registry.create(_descriptor("c"))
    registry.update(paused.id, status=JobStatus.PAUSED)
    done = registry.create(_descriptor("d"))
    job = registry.get(done.id)
    registry.update(
        done.id,
        status=JobStatus.COMPLETED,
        progress=100,
        completed_at=job.started_at + timedelta(seconds=12),
    )

    stats = registry.stats()
    assert stats["total"] == 4
    assert stats["active"] == 1
    assert stats["queued"] == 1
    assert stats["paused"] == 1
    assert stats["completed"] == 1
    assert stats["failed"] == 0
    assert stats["avgCompletionSeconds"] == 12.0


def test_stats_empty(registry):
    stats = registry.stats()
    assert stats["avgCompletionSeconds"] == 0
    assert stats["avgSpeed"] == 0


def test_stats_average_speed_counts_processing_jobs_only(registry):
    fast = registry.create(_descriptor("fast"))
    slow = registry.create(_descriptor("slow"))
    paused = registry.create(_descriptor("paused"))
    registry.update(fast.id, progress=20, speed=3.5)
    registry.update(slow.id, progress=10, speed=1.5)
    registry.update(paused.id, status=JobStatus.PAUSED, speed=9.0)
    registry.create(_descriptor("just started"))

    assert registry.stats()["avgSpeed"] == 2.5


@pytest.mark.parametrize(
    "field, value",
    [
        ("id", "other"),
        ("title", "Renamed"),
        ("format", JobFormat.AUDIO),
        ("quality", "1080"),
        ("started_at", None),
        ("file_url", "/api/download/1700000000000-abcdefghi"),
    ],
)
def test_update_refuses_descriptor_fields(registry, field, value):
    job = registry.create(_descriptor("fixed"))
    with pytest.raises(ValueError, match=field):
        registry.update(job.id, **{field: value})
    assert registry.get(job.id) == job
    assert job.id in registry


def test_history_survives_restart():
    store = JobStore(_MemoryStore())
    registry = JobRegistry(store)
    first = registry.create(_descriptor("first"))
    second = registry.create(_descriptor("second"))
    registry.update(first.id, status=JobStatus.PAUSED, progress=30)

    restored = JobRegistry(store)
    assert [j.id for j in restored.list()] == [second.id, first.id]
    assert restored.get(first.id).status == JobStatus.PAUSED
    assert restored.get(first.id).progress == 30


def test_removal_is_persisted():
    store = JobStore(_MemoryStore())
    registry = JobRegistry(store)
    job = registry.create(_descriptor("gone"))
    registry.remove(job.id)
    assert JobRegistry(store).list() == []


def test_restore_skips_bad_records():
    backend = _MemoryStore()
    store = JobStore(backend)
    backend.set(store.key, {"jobs": [{"id": "x", "status": "processing", "progress": 100}]})
    assert len(JobRegistry(store)) == 0


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttl = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def expire(self, key, seconds):
        self.ttl[key] = seconds


class FlakyRedis(FakeRedis):
    """Refuses writes until told the connection is back."""

    def __init__(self):
        super().__init__()
        self.down = True

    def set(self, key, value):
        if self.down:
            raise ConnectionError("Connection refused")
        super().set(key, value)


class SlowStore(JobStore):
    """Records which thread each write ran on."""

    def __init__(self):
        super().__init__(_MemoryStore())
        self.threads = []

    def save(self, jobs):
        self.threads.append(threading.current_thread().name)
        return super().save(jobs)


def test_redis_store_round_trips_history():
    fake = FakeRedis()
    store = JobStore(_RedisStore("redis://unused", client=fake), ttl=60)
    registry = JobRegistry(store)
    job = registry.create(_descriptor("persisted"))

    assert fake.ttl[store.key] == 60
    assert JobRegistry(store).get(job.id).title == "persisted"


def test_redis_store_ignores_garbage():
    fake = FakeRedis()
    fake.data["converter:jobs:history"] = "not json"
    backend = _RedisStore("redis://unused", client=fake)
    assert backend.get("converter:jobs:history") is None


def test_store_outage_does_not_break_updates():
    fake = FlakyRedis()
    store = JobStore(_RedisStore("redis://unused", client=fake))
    registry = JobRegistry(store)

    job = registry.create(_descriptor("offline"))
    updated = registry.update(job.id, progress=40)
    assert updated.progress == 40
    assert registry.get(job.id).progress == 40
    assert store.save([updated.to_dict()]) is False
    assert store.key not in fake.data

    # next write after recovery carries the whole history
    fake.down = False
    registry.update(job.id, progress=50)
    assert JobRegistry(store).get(job.id).progress == 50


def test_writes_inside_event_loop_run_on_writer_thread():
    store = SlowStore()
    registry = JobRegistry(store)

    async def scenario():
        job = registry.create(_descriptor("async"))
        for progress in (10, 20, 30):
            registry.update(job.id, progress=progress)
        return job

    job = asyncio.run(scenario())
    registry.flush()

    assert len(store.threads) == 4
    assert all(name.startswith("job-store") for name in store.threads)
    # writes land in order, so the last snapshot wins
    assert JobRegistry(store).get(job.id).progress == 30
    registry.close()


def test_writes_outside_event_loop_are_synchronous():
    store = SlowStore()
    registry = JobRegistry(store)
    registry.create(_descriptor("sync"))
    assert store.threads == [threading.current_thread().name]
    registry.close()
