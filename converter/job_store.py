# converter/job_store.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from .config import REDIS_URL, JOB_STORE_PREFIX, JOB_TTL_SECONDS

logger = logging.getLogger(__name__)


class _MemoryStore:
    """In-process store; history is lost on restart."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        v = self._data.get(key)
        return json.loads(json.dumps(v)) if isinstance(v, dict) else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = json.loads(json.dumps(value))

    def expire(self, key: str, _seconds: int) -> None:  # no-op in memory
        return


class _RedisStore:
    """Thin wrapper so the redis import only happens when configured."""

    def __init__(self, url: str, client=None):
        if client is None:
            from redis import Redis

            # decode_responses=True gives us str instead of bytes
            client = Redis.from_url(url, decode_responses=True)
            client.ping()
        self.r = client

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self.r.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"[JobStore] Discarding unreadable payload at {key}")
            return None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        self.r.set(key, json.dumps(value))

    def expire(self, key: str, seconds: int) -> None:
        self.r.expire(key, seconds)


class JobStore:
    """Persists the job history as a single document under one key."""

    _prefix = JOB_STORE_PREFIX

    def __init__(self, backend=None, ttl: int = JOB_TTL_SECONDS):
        self._backend = backend if backend is not None else _select_backend()
        self._ttl = ttl

    @property
    def key(self) -> str:
        return f"{self._prefix}history"

    def load(self) -> List[Dict[str, Any]]:
        data = self._backend.get(self.key) or {}
        jobs = data.get("jobs")
        return jobs if isinstance(jobs, list) else []

    def save(self, jobs: List[Dict[str, Any]]) -> bool:
        """Write the history; backend errors are logged and non-fatal."""
        try:
            self._backend.set(self.key, {"jobs": jobs})
            # TTL keeps abandoned histories from piling up in Redis
            self._backend.expire(self.key, self._ttl)
        except Exception as e:
            logger.warning(f"[JobStore] Failed to persist {len(jobs)} job(s) at {self.key}: {e}")
            return False
        return True


def _select_backend():
    if REDIS_URL:
        try:
            return _RedisStore(REDIS_URL)
        except Exception as e:
            logger.warning(f"[JobStore] Redis unavailable at {REDIS_URL} ({e}); using memory store")
            return _MemoryStore()
    return _MemoryStore()
