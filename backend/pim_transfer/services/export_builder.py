"""Run a claimed export job: query, flatten, serialize, store the artifact."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pim_transfer.core.clock import Clock
from pim_transfer.core.enums import EntityType, JobStatus
from pim_transfer.core.errors import JobStateError
from pim_transfer.services.catalog_store import CatalogStore
from pim_transfer.services.exporters import ROW_EXPORTERS, RowExporter
from pim_transfer.services.job_store import SqlJobStore
from pim_transfer.services.progress_tracker import ProgressPublisher
from pim_transfer.services.records import ExportJobRecord
from pim_transfer.services.serializers import open_writer
from pim_transfer.storage.file_storage import LocalFileStorage
from pim_transfer.utils.memory_monitor import MemoryGuard

logger = logging.getLogger(__name__)


def export_filename(job: ExportJobRecord) -> str:
    stamp = job.created_at.strftime("%Y%m%d-%H%M%S")
    return f"{job.entity_type.value}-export-{stamp}-{job.id[:8]}{job.format.extension}"


class ExportBuilder:
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
        download_base_url: str = "/api/exports",
        exporters: dict[EntityType, RowExporter] | None = None,
    ):
        self.job_store = job_store
        self.catalog_factory = catalog_factory
        self.storage = storage
        self.clock = clock
        self.publisher = publisher
        self.memory_guard = memory_guard
        self.batch_size = batch_size
        self.download_base_url = download_base_url.rstrip("/")
        self.exporters = exporters or ROW_EXPORTERS

    def run(self, job_id: str) -> ExportJobRecord:
        """Claim and build one export; failures are recorded on the job."""
        job = self.job_store.claim_export_job(job_id, self.clock.now())
        logger.info(f"Processing export job {job_id} ({job.entity_type.value} -> {job.format.value})")

        filename = export_filename(job)
        path = self.storage.artifact_path(filename)
        catalog: CatalogStore | None = None
        keep_artifact = False
        try:
            catalog = self.catalog_factory()
            exporter = self.exporters[job.entity_type]
            codes = catalog.attribute_codes() if job.entity_type is EntityType.PRODUCTS else []
            columns = exporter.columns(job.fields, job.options, codes)
            total = catalog.count_records(job.entity_type, job.filters)
            current = self.job_store.update_export_progress(job.id, total=total)

            writer = open_writer(
                job.format,
                path,
                columns,
                delimiter=job.options.delimiter,
                encoding=job.options.encoding,
                sheet_title=job.entity_type.value.capitalize(),
            )
            try:
                for batch_number, records in enumerate(
                    catalog.iter_records(job.entity_type, job.filters, self.batch_size), start=1
                ):
                    self.memory_guard.check(f"export {job.id} batch {batch_number}")
                    writer.write_rows(exporter.flatten(record, columns) for record in records)
                    current = self.job_store.update_export_progress(job.id, processed=len(records))
                    self._publish(current)
                    if current.status is not JobStatus.PROCESSING:
                        break
            finally:
                writer.close()

            if current.status is JobStatus.CANCELLED:
                logger.info(f"Export job {job_id} cancelled after {current.processed_records} records")
                return current

            record = self.job_store.complete_export_job(
                job.id,
                self.clock.now(),
                filename=filename,
                file_path=str(path),
                file_size=self.storage.size(path),
                download_url=f"{self.download_base_url}/{job.id}/download",
            )
            keep_artifact = True
            logger.info(f"Export job {job_id} completed: {record.processed_records} records, {record.file_size} bytes")
            self._publish(record)
            return record
        except JobStateError:
            return self.job_store.get_export_job(job_id)
        except Exception as exc:
            logger.error(f"Export job {job_id} failed: {exc}", exc_info=True)
            try:
                record = self.job_store.fail_export_job(job.id, self.clock.now(), str(exc))
            except JobStateError:
                return self.job_store.get_export_job(job_id)
            self._publish(record)
            return record
        finally:
            if catalog is not None:
                catalog.close()
            if not keep_artifact:
                self.storage.delete(path)

    def _publish(self, record: ExportJobRecord) -> None:
        self.publisher.publish(
            "export",
            record.id,
            status=record.status.value,
            processed=record.processed_records,
            total=record.total_records,
        )
