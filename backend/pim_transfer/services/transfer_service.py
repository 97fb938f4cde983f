"""Service facade for bulk import/export: the only entry point transports use.

The HTTP routers and the Celery tasks both go through ``TransferService``;
neither touches the stores, the queue or the file storage directly.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

from pim_transfer.core.clock import Clock
from pim_transfer.core.enums import EntityType, FileFormat, JobStatus
from pim_transfer.core.errors import (
    ArtifactExpiredError,
    ArtifactMissingError,
    JobStateError,
    ValidationError,
)
from pim_transfer.services import file_parser, mapping_engine, row_validator
from pim_transfer.services.catalog_store import CatalogStore
from pim_transfer.services.export_builder import ExportBuilder
from pim_transfer.services.import_orchestrator import ImportOrchestrator
from pim_transfer.services.importers import resolve_parent
from pim_transfer.services.job_store import SqlJobStore
from pim_transfer.services.mapping_templates import (
    MappingTemplateCreate,
    MappingTemplateFilters,
    MappingTemplateUpdate,
    SqlMappingTemplateStore,
)
from pim_transfer.services.records import (
    ExportDownload,
    ExportFilters,
    ExportJobRecord,
    ExportOptions,
    ImportJobRecord,
    ImportOptions,
    ImportPreview,
    ImportValidationReport,
    JobListFilters,
    MappingTemplateRecord,
    Page,
    RowIssues,
    UploadedFile,
)
from pim_transfer.services.template_generator import TemplateFile, generate_template
from pim_transfer.storage.file_storage import LocalFileStorage
from pim_transfer.workers.queue import JobQueue, QueuedWork

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class _ResolvedMapping:
    mapping: dict[str, str]
    transformations: dict[str, Any]
    defaults: dict[str, Any]
    template_id: str | None = None


def _checked_mapping(mapping: Any) -> dict[str, str]:
    if not isinstance(mapping, Mapping) or not all(
        isinstance(source, str) and isinstance(target, str) for source, target in mapping.items()
    ):
        raise ValidationError(
            "Mapping must be an object of source column -> field name", field="mapping"
        )
    return dict(mapping)


class TransferService:
    def __init__(
        self,
        *,
        job_store: SqlJobStore,
        mapping_store: SqlMappingTemplateStore,
        catalog_factory: Callable[[], CatalogStore],
        storage: LocalFileStorage,
        queue: JobQueue,
        clock: Clock,
        orchestrator: ImportOrchestrator,
        export_builder: ExportBuilder,
        export_ttl: timedelta = timedelta(days=7),
        max_errors: int = 100,
        preview_rows: int = 10,
    ):
        self.jobs = job_store
        self.mappings = mapping_store
        self.catalog_factory = catalog_factory
        self.storage = storage
        self.queue = queue
        self.clock = clock
        self.orchestrator = orchestrator
        self.export_builder = export_builder
        self.export_ttl = export_ttl
        self.max_errors = max_errors
        self.preview_rows = preview_rows

    # -- imports ---------------------------------------------------------

    def create_import_job(
        self,
        upload: UploadedFile,
        entity_type: EntityType,
        mapping: Mapping[str, str] | None = None,
        options: ImportOptions | None = None,
        owner_id: str | None = None,
        *,
        transformations: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
    ) -> ImportJobRecord:
        """Stage the upload, resolve its mapping and persist a PENDING job.

        The job is queued for processing unless ``options.validate_only`` is
        set. Nothing is persisted and the staged file is removed when the
        file cannot be read or the mapping is invalid.
        """
        entity_type = EntityType(entity_type)
        options = options or ImportOptions()
        if mapping is not None:
            mapping = _checked_mapping(mapping)
        file_format = file_parser.detect_format(upload.filename)
        path = self.storage.save_upload(upload.stream, upload.filename)
        try:
            headers = self._read_headers(path, file_format, options)
            total_rows = file_parser.count_rows(
                path,
                file_format,
                delimiter=options.delimiter,
                encoding=options.encoding,
                skip_header=options.skip_header,
            )
            resolved = self._resolve_mapping(entity_type, headers, mapping, options)
            if transformations:
                resolved.transformations = dict(transformations)
            if defaults:
                resolved.defaults = dict(defaults)
            check = mapping_engine.validate_mapping(resolved.mapping, entity_type)
            if not check.valid:
                raise ValidationError("Invalid mapping", field="mapping", errors=check.errors)

            record = self.jobs.create_import_job(
                entity_type=entity_type.value,
                file_path=str(path),
                original_filename=upload.filename,
                file_format=file_format.value,
                mapping=resolved.mapping,
                transformations=resolved.transformations,
                defaults=resolved.defaults,
                options=options.model_dump(),
                total_rows=total_rows,
                owner_id=owner_id,
                created_at=self.clock.now(),
            )
        except Exception:
            self.storage.delete(path)
            raise

        if resolved.template_id:
            self.mappings.record_usage(resolved.template_id)
        if not options.validate_only:
            self.queue.enqueue(QueuedWork(kind="import", job_id=record.id))
        return record

    def preview_import(
        self,
        upload: UploadedFile,
        entity_type: EntityType,
        rows: int | None = None,
        options: ImportOptions | None = None,
    ) -> ImportPreview:
        entity_type = EntityType(entity_type)
        options = options or ImportOptions()
        limit = self.preview_rows if rows is None else rows
        if limit < 1:
            raise ValidationError("rows must be at least 1", field="rows")
        file_format = file_parser.detect_format(upload.filename)
        path = self.storage.save_upload(upload.stream, upload.filename)
        try:
            parsed = file_parser.parse(
                path,
                file_format,
                delimiter=options.delimiter,
                encoding=options.encoding,
                skip_header=options.skip_header,
                limit=limit,
            )
            sample = list(parsed.rows)
        finally:
            self.storage.delete(path)

        suggestion = mapping_engine.suggest_mapping(parsed.headers, entity_type)
        return ImportPreview(
            headers=parsed.headers,
            rows=sample,
            suggested_mapping=dataclasses.asdict(suggestion),
            file_format=parsed.file_format,
        )

    def validate_import(
        self,
        upload: UploadedFile,
        entity_type: EntityType,
        mapping: Mapping[str, str],
        options: ImportOptions | None = None,
    ) -> ImportValidationReport:
        """Dry-run every row against the mapping without writing anything."""
        entity_type = EntityType(entity_type)
        options = options or ImportOptions()
        mapping = _checked_mapping(mapping)
        file_format = file_parser.detect_format(upload.filename)
        header_offset = 1 if options.skip_header and file_format is not FileFormat.JSON else 0
        mapping_errors = mapping_engine.validate_mapping(mapping, entity_type).errors

        errors: list[RowIssues] = []
        warnings: list[RowIssues] = []
        total = valid_rows = invalid_rows = 0
        path = self.storage.save_upload(upload.stream, upload.filename)
        catalog = self.catalog_factory()
        try:
            parsed = file_parser.parse(
                path,
                file_format,
                delimiter=options.delimiter,
                encoding=options.encoding,
                skip_header=options.skip_header,
            )
            defaults = self._variant_parent_defaults(entity_type, options, catalog, mapping_errors)
            for index, row in enumerate(parsed.rows, start=1):
                total += 1
                result = row_validator.validate_row(
                    row, mapping, entity_type, catalog=catalog, defaults=defaults
                )
                row_number = index + header_offset
                if result.valid:
                    valid_rows += 1
                else:
                    invalid_rows += 1
                    if len(errors) < self.max_errors:
                        errors.append(RowIssues(row=row_number, errors=result.errors))
                if result.warnings and len(warnings) < self.max_errors:
                    warnings.append(RowIssues(row=row_number, warnings=result.warnings))
        finally:
            catalog.close()
            self.storage.delete(path)

        return ImportValidationReport(
            valid=not invalid_rows and not mapping_errors,
            total_rows=total,
            valid_rows=valid_rows,
            invalid_rows=invalid_rows,
            errors=errors,
            warnings=warnings,
            mapping_errors=mapping_errors,
        )

    def process_import_job(
        self, job_id: str, start_row: int = 0, batch_size: int | None = None
    ) -> ImportJobRecord:
        """(Re)queue a PENDING job, optionally resuming after ``start_row`` rows."""
        if start_row < 0:
            raise ValidationError("start_row must not be negative", field="start_row")
        if batch_size is not None and batch_size < 1:
            raise ValidationError("batch_size must be at least 1", field="batch_size")
        job = self.jobs.get_import_job(job_id)
        if job.status is not JobStatus.PENDING:
            raise JobStateError(
                f"Import job {job_id} is already {job.status.value}",
                job_id=job_id,
                current_status=job.status,
            )
        self.queue.remove(job_id)
        params: dict[str, Any] = {"start_row": start_row}
        if batch_size is not None:
            params["batch_size"] = batch_size
        self.queue.enqueue(QueuedWork(kind="import", job_id=job_id, params=params))
        return job

    def get_import_job(self, job_id: str) -> ImportJobRecord:
        return self.jobs.get_import_job(job_id)

    def list_import_jobs(self, filters: JobListFilters | None = None) -> Page[ImportJobRecord]:
        return self.jobs.list_import_jobs(filters or JobListFilters())

    def cancel_import_job(self, job_id: str) -> ImportJobRecord:
        record = self.jobs.cancel_import_job(job_id, self.clock.now())
        removed = self.queue.remove(job_id)
        if record.started_at is None:
            # Never claimed, so no worker will clean up the staged upload.
            self.storage.delete(record.file_path)
        logger.info(f"Cancelled import job {job_id} ({removed} queued item(s) withdrawn)")
        return record

    def run_import(self, work: QueuedWork) -> ImportJobRecord:
        return self.orchestrator.run(
            work.job_id,
            start_row=int(work.params.get("start_row", 0)),
            batch_size=work.params.get("batch_size"),
        )

    # -- exports ---------------------------------------------------------

    def create_export_job(
        self,
        entity_type: EntityType,
        format: FileFormat,
        filters: ExportFilters | None = None,
        fields: Iterable[str] | None = None,
        options: ExportOptions | None = None,
        owner_id: str | None = None,
    ) -> ExportJobRecord:
        entity_type = EntityType(entity_type)
        export_format = file_parser.detect_format("", format)
        now = self.clock.now()
        record = self.jobs.create_export_job(
            entity_type=entity_type.value,
            format=export_format.value,
            filters=(filters or ExportFilters()).model_dump(mode="json", exclude_none=True),
            fields=list(fields or []),
            options=(options or ExportOptions()).model_dump(),
            owner_id=owner_id,
            created_at=now,
            expires_at=now + self.export_ttl,
        )
        self.queue.enqueue(QueuedWork(kind="export", job_id=record.id))
        return record

    def get_export_job(self, job_id: str) -> ExportJobRecord:
        return self.jobs.get_export_job(job_id)

    def list_export_jobs(self, filters: JobListFilters | None = None) -> Page[ExportJobRecord]:
        return self.jobs.list_export_jobs(filters or JobListFilters())

    def cancel_export_job(self, job_id: str) -> ExportJobRecord:
        record = self.jobs.cancel_export_job(job_id, self.clock.now())
        self.queue.remove(job_id)
        logger.info(f"Cancelled export job {job_id}")
        return record

    def run_export(self, work: QueuedWork) -> ExportJobRecord:
        return self.export_builder.run(work.job_id)

    def download_export(self, job_id: str) -> ExportDownload:
        """Resolve a finished artifact; state is checked before expiry, expiry before presence."""
        job = self.jobs.get_export_job(job_id)
        if job.status is not JobStatus.COMPLETED:
            raise JobStateError(
                f"Export job {job_id} is {job.status.value}, not completed",
                job_id=job_id,
                current_status=job.status,
            )
        if job.is_expired(self.clock.now()):
            raise ArtifactExpiredError(f"Export {job_id} expired at {job.expires_at.isoformat()}")
        if not self.storage.exists(job.file_path):
            raise ArtifactMissingError(f"Export file for job {job_id} no longer exists")
        path = Path(job.file_path)
        return ExportDownload(
            path=path,
            filename=job.filename or path.name,
            media_type=job.format.media_type,
            size=self.storage.size(path),
        )

    # -- templates and mappings -----------------------------------------

    def download_template(
        self,
        entity_type: EntityType,
        format: FileFormat,
        include_sample_data: bool = False,
        sample_rows: int = 5,
    ) -> TemplateFile:
        return generate_template(
            entity_type,
            file_parser.detect_format("", format),
            include_sample_data=include_sample_data,
            sample_rows=sample_rows,
        )

    def suggest_mapping(self, headers: Iterable[str], entity_type: EntityType):
        return mapping_engine.suggest_mapping(headers, entity_type)

    def validate_mapping(self, mapping: Mapping[str, str], entity_type: EntityType):
        return mapping_engine.validate_mapping(mapping, entity_type)

    def create_mapping(self, payload: MappingTemplateCreate) -> MappingTemplateRecord:
        return self.mappings.create(payload)

    def get_mapping(self, template_id: str) -> MappingTemplateRecord:
        return self.mappings.get(template_id)

    def list_mappings(
        self, filters: MappingTemplateFilters | None = None
    ) -> Page[MappingTemplateRecord]:
        return self.mappings.list_templates(filters or MappingTemplateFilters())

    def update_mapping(
        self, template_id: str, payload: MappingTemplateUpdate
    ) -> MappingTemplateRecord:
        return self.mappings.update(template_id, payload)

    def delete_mapping(self, template_id: str) -> None:
        self.mappings.delete(template_id)

    # -- internals -------------------------------------------------------

    @staticmethod
    def _read_headers(path: Path, file_format: FileFormat, options: ImportOptions) -> list[str]:
        parsed = file_parser.parse(
            path,
            file_format,
            delimiter=options.delimiter,
            encoding=options.encoding,
            skip_header=options.skip_header,
            limit=1,
        )
        return parsed.headers

    @staticmethod
    def _variant_parent_defaults(
        entity_type: EntityType,
        options: ImportOptions,
        catalog: CatalogStore,
        mapping_errors: list[str],
    ) -> dict[str, Any] | None:
        if entity_type is not EntityType.VARIANTS or not options.product_identifier:
            return None
        parent = resolve_parent(catalog, options.product_identifier, use_sku=options.use_sku)
        if parent is None:
            mapping_errors.append(f"Parent product '{options.product_identifier}' not found")
            return None
        return {"parentSku": parent.sku}

    def _resolve_mapping(
        self,
        entity_type: EntityType,
        headers: list[str],
        mapping: Mapping[str, str] | None,
        options: ImportOptions,
    ) -> _ResolvedMapping:
        """Explicit mapping first, then a stored template, then a suggestion."""
        if mapping:
            unknown = [source for source in mapping if source not in headers]
            if unknown:
                raise ValidationError(
                    f"Mapping references unknown column(s): {', '.join(unknown)}",
                    field="mapping",
                )
            return _ResolvedMapping(dict(mapping), {}, {})

        if options.mapping_id:
            template = self.mappings.get(options.mapping_id)
            if template.entity_type is not entity_type:
                raise ValidationError(
                    f"Mapping template {template.id} is for {template.entity_type.value}, "
                    f"not {entity_type.value}",
                    field="mapping_id",
                )
            return _ResolvedMapping(
                dict(template.mapping),
                dict(template.transformations or {}),
                dict(template.defaults or {}),
                template_id=template.id,
            )

        suggestion = mapping_engine.suggest_mapping(headers, entity_type)
        logger.info(
            f"No mapping supplied; using suggestion with confidence {suggestion.confidence:.2f}"
        )
        return _ResolvedMapping(suggestion.mapping, {}, {})
