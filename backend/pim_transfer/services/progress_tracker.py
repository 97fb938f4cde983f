"""Publish job progress snapshots to Redis for live dashboards.

The job store stays the source of truth; snapshots here are a cache that
pollers may read first. Redis outages never affect processing.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Protocol

from redis import Redis
from redis.exceptions import RedisError

from pim_transfer.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

PROGRESS_PREFIX = "pim:progress:"
PROGRESS_TTL = timedelta(hours=1)


class ProgressPublisher(Protocol):
    def publish(
        self,
        kind: str,
        job_id: str,
        *,
        status: str,
        processed: int,
        total: int,
        meta: dict[str, Any] | None = None,
    ) -> None: ...


def _key(kind: str, job_id: str) -> str:
    return f"{PROGRESS_PREFIX}{kind}:{job_id}"


class RedisProgressPublisher:
    def __init__(self, redis_url: str, ttl: timedelta = PROGRESS_TTL):
        self._redis_url = redis_url
        self._ttl = ttl
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = create_redis_client(self._redis_url, decode_responses=True)
        return self._client

    def publish(
        self,
        kind: str,
        job_id: str,
        *,
        status: str,
        processed: int,
        total: int,
        meta: dict[str, Any] | None = None,
    ) -> None:
        """Persist a progress snapshot; failures are logged and dropped."""
        progress = processed / total if total else 0.0
        payload = {
            "job_id": job_id,
            "kind": kind,
            "status": status,
            "processed": processed,
            "total": total,
            "progress": max(0.0, min(progress, 1.0)),
            "meta": meta or {},
        }
        try:
            self.client.set(
                _key(kind, job_id), json.dumps(payload), ex=int(self._ttl.total_seconds())
            )
        except RedisError as e:
            logger.debug(f"Progress publish skipped for {kind} job {job_id}: {e}")
