"""Job persistence: creation, compare-and-set transitions, atomic progress deltas.

Every mutation runs in its own short transaction and locks the job row first
(``SELECT ... FOR UPDATE`` where the backend supports it), so concurrent
redelivery of the same job cannot interleave counter updates.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from pim_transfer.core.enums import CANCELLABLE_STATUSES, JobStatus
from pim_transfer.core.errors import JobStateError, NotFoundError
from pim_transfer.db.models import ExportJob, ImportJob
from pim_transfer.services.records import (
    ExportJobRecord,
    ImportJobRecord,
    JobListFilters,
    Page,
    ProgressDelta,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", ImportJob, ExportJob)


def _status(value: JobStatus | str) -> str:
    return value.value if isinstance(value, JobStatus) else value


class SqlJobStore:
    def __init__(self, session_factory: sessionmaker[Session], *, max_errors: int = 100):
        self._session_factory = session_factory
        self.max_errors = max_errors

    # -- shared helpers --------------------------------------------------

    def _lock(self, session: Session, model: type[ModelT], job_id: str) -> ModelT:
        job = session.execute(
            select(model).where(model.id == job_id).with_for_update()
        ).scalar_one_or_none()
        if job is None:
            raise NotFoundError(f"{model.__name__} {job_id} not found")
        return job

    def _transition(
        self,
        model: type[ModelT],
        job_id: str,
        allowed_from: Iterable[JobStatus],
        to: JobStatus,
        *,
        mutate: Callable[[ModelT], None] | None = None,
        **updates: Any,
    ) -> ModelT:
        allowed = {_status(s) for s in allowed_from}
        with self._session_factory() as session, session.begin():
            job = self._lock(session, model, job_id)
            if job.status not in allowed:
                raise JobStateError(
                    f"Cannot move job {job_id} from {job.status} to {to.value}",
                    job_id=job_id,
                    current_status=job.status,
                )
            job.status = to.value
            for name, value in updates.items():
                setattr(job, name, value)
            if mutate is not None:
                mutate(job)
            session.flush()
            session.expunge(job)
        logger.debug(f"{model.__name__} {job_id} -> {to.value}")
        return job

    def _get(self, model: type[ModelT], job_id: str) -> ModelT:
        with self._session_factory() as session:
            job = session.get(model, job_id)
            if job is None:
                raise NotFoundError(f"{model.__name__} {job_id} not found")
            session.expunge(job)
            return job

    def _list(self, model: type[ModelT], filters: JobListFilters) -> tuple[list[ModelT], int]:
        stmt = select(model)
        if filters.entity_type is not None:
            stmt = stmt.where(model.entity_type == filters.entity_type.value)
        if filters.status is not None:
            stmt = stmt.where(model.status == filters.status.value)
        if filters.owner_id is not None:
            stmt = stmt.where(model.owner_id == filters.owner_id)
        with self._session_factory() as session:
            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar_one()
            rows = (
                session.execute(
                    stmt.order_by(model.created_at.desc(), model.id)
                    .offset((filters.page - 1) * filters.limit)
                    .limit(filters.limit)
                )
                .scalars()
                .all()
            )
            session.expunge_all()
        return list(rows), total

    # -- import jobs -----------------------------------------------------

    def create_import_job(self, **fields: Any) -> ImportJobRecord:
        with self._session_factory() as session, session.begin():
            job = ImportJob(status=JobStatus.PENDING.value, errors=[], **fields)
            session.add(job)
            session.flush()
            record = ImportJobRecord.model_validate(job)
        logger.info(f"Created import job {record.id} ({record.entity_type.value}, {record.total_rows} rows)")
        return record

    def get_import_job(self, job_id: str) -> ImportJobRecord:
        return ImportJobRecord.model_validate(self._get(ImportJob, job_id))

    def list_import_jobs(self, filters: JobListFilters) -> Page[ImportJobRecord]:
        rows, total = self._list(ImportJob, filters)
        return Page[ImportJobRecord](
            items=[ImportJobRecord.model_validate(row) for row in rows],
            total=total,
            page=filters.page,
            limit=filters.limit,
        )

    def claim_import_job(self, job_id: str, now: datetime) -> ImportJobRecord:
        """PENDING -> PROCESSING; any other state is a redelivery and is rejected."""
        job = self._transition(
            ImportJob, job_id, [JobStatus.PENDING], JobStatus.PROCESSING, started_at=now
        )
        return ImportJobRecord.model_validate(job)

    def apply_import_progress(self, job_id: str, delta: ProgressDelta) -> ImportJobRecord:
        """Add ``delta`` to the job counters; ignored once the job left PROCESSING."""
        with self._session_factory() as session, session.begin():
            job = self._lock(session, ImportJob, job_id)
            if job.status == JobStatus.PROCESSING.value and delta:
                total = job.total_rows or 0
                job.processed_rows = min(job.processed_rows + delta.processed, total)
                job.success_count += delta.success
                job.error_count += delta.error
                job.skip_count += delta.skip
                room = self.max_errors - len(job.errors or [])
                if delta.errors and room > 0:
                    job.errors = list(job.errors or []) + delta.errors[:room]
            session.flush()
            return ImportJobRecord.model_validate(job)

    def complete_import_job(
        self, job_id: str, now: datetime, summary: dict[str, Any]
    ) -> ImportJobRecord:
        job = self._transition(
            ImportJob,
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.COMPLETED,
            completed_at=now,
            summary=summary,
        )
        return ImportJobRecord.model_validate(job)

    def fail_import_job(
        self, job_id: str, now: datetime, message: str, summary: dict[str, Any] | None = None
    ) -> ImportJobRecord:
        """The job-level error goes first; row errors recorded so far are kept."""

        def lead_with_job_error(job: ImportJob) -> None:
            job.errors = [{"row": 0, "message": message}, *(job.errors or [])]

        job = self._transition(
            ImportJob,
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.FAILED,
            mutate=lead_with_job_error,
            completed_at=now,
            summary=summary,
        )
        return ImportJobRecord.model_validate(job)

    def cancel_import_job(self, job_id: str, now: datetime) -> ImportJobRecord:
        job = self._transition(
            ImportJob, job_id, CANCELLABLE_STATUSES, JobStatus.CANCELLED, completed_at=now
        )
        return ImportJobRecord.model_validate(job)

    # -- export jobs -----------------------------------------------------

    def create_export_job(self, **fields: Any) -> ExportJobRecord:
        with self._session_factory() as session, session.begin():
            job = ExportJob(status=JobStatus.PENDING.value, **fields)
            session.add(job)
            session.flush()
            record = ExportJobRecord.model_validate(job)
        logger.info(f"Created export job {record.id} ({record.entity_type.value}, {record.format.value})")
        return record

    def get_export_job(self, job_id: str) -> ExportJobRecord:
        return ExportJobRecord.model_validate(self._get(ExportJob, job_id))

    def list_export_jobs(self, filters: JobListFilters) -> Page[ExportJobRecord]:
        rows, total = self._list(ExportJob, filters)
        return Page[ExportJobRecord](
            items=[ExportJobRecord.model_validate(row) for row in rows],
            total=total,
            page=filters.page,
            limit=filters.limit,
        )

    def claim_export_job(self, job_id: str, now: datetime) -> ExportJobRecord:
        job = self._transition(
            ExportJob, job_id, [JobStatus.PENDING], JobStatus.PROCESSING, started_at=now
        )
        return ExportJobRecord.model_validate(job)

    def update_export_progress(
        self, job_id: str, *, processed: int = 0, total: int | None = None
    ) -> ExportJobRecord:
        with self._session_factory() as session, session.begin():
            job = self._lock(session, ExportJob, job_id)
            if job.status == JobStatus.PROCESSING.value:
                if total is not None:
                    job.total_records = total
                job.processed_records = min(
                    job.processed_records + processed, job.total_records or math.inf
                )
            session.flush()
            return ExportJobRecord.model_validate(job)

    def complete_export_job(self, job_id: str, now: datetime, **artifact: Any) -> ExportJobRecord:
        job = self._transition(
            ExportJob, job_id, [JobStatus.PROCESSING], JobStatus.COMPLETED, completed_at=now, **artifact
        )
        return ExportJobRecord.model_validate(job)

    def fail_export_job(self, job_id: str, now: datetime, message: str) -> ExportJobRecord:
        job = self._transition(
            ExportJob,
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.FAILED,
            completed_at=now,
            error_message=message,
        )
        return ExportJobRecord.model_validate(job)

    def cancel_export_job(self, job_id: str, now: datetime) -> ExportJobRecord:
        job = self._transition(
            ExportJob, job_id, CANCELLABLE_STATUSES, JobStatus.CANCELLED, completed_at=now
        )
        return ExportJobRecord.model_validate(job)
