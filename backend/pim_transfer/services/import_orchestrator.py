"""Run a claimed import job: stream rows in batches, record per-row results.

Row-level problems become ``RowFailure`` values and never stop the loop.
Anything raised out of the loop is a job-level failure: the job ends FAILED
with a row-0 error entry ahead of the row errors recorded so far.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pim_transfer.core.clock import Clock
from pim_transfer.core.enums import EntityType, FileFormat, JobStatus
from pim_transfer.core.errors import CatalogReferenceError, JobStateError, ValidationError
from pim_transfer.services import file_parser, mapping_engine, row_validator
from pim_transfer.services.catalog_store import CatalogStore
from pim_transfer.services.importers import (
    ROW_IMPORTERS,
    RowFailure,
    RowImporter,
    RowOutcome,
    RowResult,
    resolve_parent,
)
from pim_transfer.services.job_store import SqlJobStore
from pim_transfer.services.progress_tracker import ProgressPublisher
from pim_transfer.services.records import ImportJobRecord, ProgressDelta
from pim_transfer.storage.file_storage import LocalFileStorage
from pim_transfer.utils.batching import chunked
from pim_transfer.utils.memory_monitor import MemoryGuard

logger = logging.getLogger(__name__)


@dataclass
class _Tally:
    created: int = 0
    updated: int = 0
    validated: int = 0
    failed: int = 0
    skipped: int = 0
    pending: ProgressDelta = field(default_factory=ProgressDelta)

    def skip(self) -> None:
        self.skipped += 1
        self.pending.processed += 1
        self.pending.skip += 1

    def record(self, row_number: int, row: dict[str, str], result: RowResult) -> None:
        self.pending.processed += 1
        if isinstance(result, RowOutcome):
            self.pending.success += 1
            if result.action == "created":
                self.created += 1
            elif result.action == "updated":
                self.updated += 1
            else:
                self.validated += 1
            return
        self.failed += 1
        self.pending.error += 1
        entry: dict[str, Any] = {"row": row_number, "message": result.message, "data": dict(row)}
        if result.field:
            entry["field"] = result.field
        self.pending.errors.append(entry)

    def take(self) -> ProgressDelta:
        delta, self.pending = self.pending, ProgressDelta()
        return delta

    def summary(self, duration_ms: int) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "duration_ms": duration_ms,
        }


class ImportOrchestrator:
    def __init__(
        self,
        *,
        job_store: SqlJobStore,
        catalog_factory: Callable[[], CatalogStore],
        storage: LocalFileStorage,
        clock: Clock,
        publisher: ProgressPublisher,
        memory_guard: MemoryGuard,
        batch_size: int = 100,
        progress_interval: int = 10,
        batch_sizes: dict[EntityType, int] | None = None,
        importers: dict[EntityType, RowImporter] | None = None,
    ):
        self.job_store = job_store
        self.catalog_factory = catalog_factory
        self.storage = storage
        self.clock = clock
        self.publisher = publisher
        self.memory_guard = memory_guard
        self.batch_size = batch_size
        self.progress_interval = progress_interval
        self.batch_sizes = batch_sizes or {}
        self.importers = importers or ROW_IMPORTERS

    def run(self, job_id: str, *, start_row: int = 0, batch_size: int | None = None) -> ImportJobRecord:
        """Claim and process one import job.

        Raises ``JobStateError`` when the job is not PENDING (redelivered or
        cancelled work); every other failure is recorded on the job.
        """
        job = self.job_store.claim_import_job(job_id, self.clock.now())
        logger.info(
            f"Processing import job {job_id} ({job.entity_type.value}, {job.total_rows} rows, "
            f"start_row={start_row})"
        )
        tally = _Tally()
        catalog: CatalogStore | None = None
        try:
            catalog = self.catalog_factory()
            size = batch_size or self.batch_sizes.get(job.entity_type, self.batch_size)
            finished = self._process(job, catalog, tally, start_row, size)
            if finished.status is JobStatus.CANCELLED:
                logger.info(f"Import job {job_id} cancelled after {finished.processed_rows} rows")
                return finished
            return self._complete(job, tally)
        except JobStateError:
            # Cancelled between the last batch boundary and completion.
            return self.job_store.get_import_job(job_id)
        except Exception as exc:
            logger.error(f"Import job {job_id} failed: {exc}", exc_info=True)
            return self._fail(job, tally, exc)
        finally:
            if catalog is not None:
                catalog.close()
            self.storage.delete(job.file_path)

    # -- internals -------------------------------------------------------

    def _process(
        self,
        job: ImportJobRecord,
        catalog: CatalogStore,
        tally: _Tally,
        start_row: int,
        batch_size: int,
    ) -> ImportJobRecord:
        options = job.options
        parsed = file_parser.parse(
            job.file_path,
            job.file_format,
            delimiter=options.delimiter,
            encoding=options.encoding,
            skip_header=options.skip_header,
        )
        check = mapping_engine.validate_mapping(job.mapping, job.entity_type)
        if not check.valid:
            raise ValidationError(f"Invalid mapping: {'; '.join(check.errors)}")

        defaults = self._job_defaults(job, catalog)
        importer = self.importers[job.entity_type]
        header_offset = 1 if options.skip_header and job.file_format is not FileFormat.JSON else 0
        current = job

        for batch_number, batch in enumerate(
            chunked(enumerate(parsed.rows, start=1), batch_size), start=1
        ):
            self.memory_guard.check(f"import {job.id} batch {batch_number}")
            for index, row in batch:
                if index <= start_row:
                    tally.skip()
                else:
                    result = self._process_row(job, importer, catalog, row, defaults)
                    if isinstance(result, RowFailure):
                        logger.debug(f"Import job {job.id} row {index + header_offset}: {result.message}")
                    tally.record(index + header_offset, row, result)
                if tally.pending.processed >= self.progress_interval:
                    self._flush(job, tally)

            current = self._flush(job, tally)
            if current.status is not JobStatus.PROCESSING:
                return current
        return current

    def _job_defaults(self, job: ImportJobRecord, catalog: CatalogStore) -> dict[str, Any]:
        """Job defaults, plus the job-wide parent SKU for variant imports."""
        identifier = job.options.product_identifier
        if job.entity_type is not EntityType.VARIANTS or not identifier:
            return job.defaults
        parent = resolve_parent(catalog, identifier, use_sku=job.options.use_sku)
        if parent is None:
            raise CatalogReferenceError(
                f"Parent product '{identifier}' not found", field="productIdentifier"
            )
        return {**job.defaults, "parentSku": parent.sku}

    def _process_row(
        self,
        job: ImportJobRecord,
        importer: RowImporter,
        catalog: CatalogStore,
        row: dict[str, str],
        defaults: dict[str, Any],
    ) -> RowResult:
        values = row_validator.prepare_values(row, job.mapping, job.transformations, defaults)

        if job.options.validate_only:
            check = row_validator.check_values(values, job.entity_type)
            check.extend(row_validator.check_references(values, job.entity_type, catalog))
            if check.errors:
                return RowFailure(kind="validation", message="; ".join(check.errors))
            return RowOutcome("validated", values.get("sku") or values.get("code") or values.get("name", ""))

        check = row_validator.check_values(values, job.entity_type)
        if check.errors:
            return RowFailure(kind="validation", message="; ".join(check.errors))
        draft = row_validator.build_draft(values, job.entity_type)
        return importer.import_row(draft, catalog, update_existing=job.options.update_existing)

    def _flush(self, job: ImportJobRecord, tally: _Tally) -> ImportJobRecord:
        record = self.job_store.apply_import_progress(job.id, tally.take())
        self.publisher.publish(
            "import",
            job.id,
            status=record.status.value,
            processed=record.processed_rows,
            total=record.total_rows,
            meta={"success": record.success_count, "errors": record.error_count},
        )
        return record

    def _duration_ms(self, job: ImportJobRecord) -> int:
        started = job.started_at or self.clock.now()
        return max(0, int((self.clock.now() - started).total_seconds() * 1000))

    def _complete(self, job: ImportJobRecord, tally: _Tally) -> ImportJobRecord:
        if tally.pending:
            self._flush(job, tally)
        record = self.job_store.complete_import_job(
            job.id, self.clock.now(), tally.summary(self._duration_ms(job))
        )
        logger.info(
            f"Import job {job.id} completed: {tally.created} created, {tally.updated} updated, "
            f"{tally.failed} failed, {tally.skipped} skipped"
        )
        self._publish_final(record)
        return record

    def _fail(self, job: ImportJobRecord, tally: _Tally, exc: Exception) -> ImportJobRecord:
        try:
            if tally.pending:
                # rows committed before the failure still count
                self._flush(job, tally)
            record = self.job_store.fail_import_job(
                job.id,
                self.clock.now(),
                f"Job failed: {exc}",
                summary=tally.summary(self._duration_ms(job)),
            )
        except JobStateError:
            return self.job_store.get_import_job(job.id)
        self._publish_final(record)
        return record

    def _publish_final(self, record: ImportJobRecord) -> None:
        self.publisher.publish(
            "import",
            record.id,
            status=record.status.value,
            processed=record.processed_rows,
            total=record.total_rows,
            meta=record.summary.model_dump() if record.summary else None,
        )
