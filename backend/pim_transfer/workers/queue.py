"""Durable work queue used to hand jobs to background workers.

Work items carry only ids and parameters; the job store holds job state.
``claim`` reads a work item without consuming it; the worker calls ``ack``
once the run is over, so an item whose worker died before claiming its job
is still there for redelivery. ``remove`` drops every item of a job
(cancellation).
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Protocol

from celery import Celery
from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

WorkKind = Literal["import", "export"]

PENDING_KEY = "pim:queue:pending"
JOB_INDEX_PREFIX = "pim:queue:job:"


@dataclass
class QueuedWork:
    kind: WorkKind
    job_id: str
    params: dict[str, Any] = field(default_factory=dict)
    work_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> QueuedWork:
        return cls(**json.loads(raw))


class JobQueue(Protocol):
    def enqueue(self, work: QueuedWork) -> str: ...

    def claim(self, work_id: str) -> QueuedWork | None: ...

    def ack(self, work_id: str) -> None: ...

    def remove(self, job_id: str) -> int: ...


class InMemoryJobQueue:
    """Process-local queue for tests and single-process runs."""

    def __init__(self) -> None:
        self._pending: dict[str, QueuedWork] = {}

    def enqueue(self, work: QueuedWork) -> str:
        self._pending[work.work_id] = work
        return work.work_id

    def claim(self, work_id: str) -> QueuedWork | None:
        return self._pending.get(work_id)

    def ack(self, work_id: str) -> None:
        self._pending.pop(work_id, None)

    def remove(self, job_id: str) -> int:
        doomed = [wid for wid, work in self._pending.items() if work.job_id == job_id]
        for wid in doomed:
            del self._pending[wid]
        return len(doomed)

    def pending(self, kind: WorkKind | None = None) -> list[QueuedWork]:
        return [work for work in self._pending.values() if kind is None or work.kind == kind]


TASK_NAMES: dict[str, str] = {
    "import": "pim_transfer.workers.tasks.process_import",
    "export": "pim_transfer.workers.tasks.process_export",
}


class CeleryJobQueue:
    """Celery delivers work ids; Redis keeps the pending payloads so queued
    work can be withdrawn before a worker picks it up."""

    def __init__(self, celery_app: Celery, redis: Redis, queues: dict[str, str]):
        self.celery_app = celery_app
        self.redis = redis
        self.queues = queues

    def enqueue(self, work: QueuedWork) -> str:
        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(PENDING_KEY, work.work_id, work.to_json())
        pipe.sadd(f"{JOB_INDEX_PREFIX}{work.job_id}", work.work_id)
        pipe.execute()
        self.celery_app.send_task(
            TASK_NAMES[work.kind],
            args=[work.work_id],
            task_id=work.work_id,
            queue=self.queues[work.kind],
        )
        logger.info(f"Enqueued {work.kind} work {work.work_id} for job {work.job_id}")
        return work.work_id

    def claim(self, work_id: str) -> QueuedWork | None:
        raw = self.redis.hget(PENDING_KEY, work_id)
        return QueuedWork.from_json(raw) if raw else None

    def ack(self, work_id: str) -> None:
        try:
            raw = self.redis.hget(PENDING_KEY, work_id)
            if not raw:
                return
            work = QueuedWork.from_json(raw)
            pipe = self.redis.pipeline(transaction=True)
            pipe.hdel(PENDING_KEY, work_id)
            pipe.srem(f"{JOB_INDEX_PREFIX}{work.job_id}", work_id)
            pipe.execute()
        except RedisError as e:
            # A leftover payload only lets a redelivery reach the job claim, which rejects it.
            logger.warning(f"Could not acknowledge work {work_id}: {e}")

    def remove(self, job_id: str) -> int:
        index_key = f"{JOB_INDEX_PREFIX}{job_id}"
        try:
            work_ids = list(self.redis.smembers(index_key))
            if not work_ids:
                return 0
            pipe = self.redis.pipeline(transaction=True)
            pipe.hdel(PENDING_KEY, *work_ids)
            pipe.delete(index_key)
            removed, _ = pipe.execute()
        except RedisError as e:
            # The job is already CANCELLED; a stray delivery fails its claim.
            logger.warning(f"Could not withdraw queued work for job {job_id}: {e}")
            return 0
        for work_id in work_ids:
            self.celery_app.control.revoke(work_id)
        logger.info(f"Withdrew {removed} queued work item(s) for job {job_id}")
        return removed
