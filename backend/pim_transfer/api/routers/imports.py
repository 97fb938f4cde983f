"""Endpoints for import job creation, dry runs and tracking."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from pim_transfer.api.dependencies.service import get_service
from pim_transfer.api.routers.job_helpers import (
    parse_import_options,
    parse_json_field,
    to_http_error,
)
from pim_transfer.api.schemas.transfer import ProcessImportRequest
from pim_transfer.core.enums import EntityType, JobStatus
from pim_transfer.core.errors import TransferError
from pim_transfer.services.records import (
    ImportJobRecord,
    ImportPreview,
    ImportValidationReport,
    JobListFilters,
    Page,
    UploadedFile,
)
from pim_transfer.services.transfer_service import TransferService

logger = logging.getLogger(__name__)

router = APIRouter()


def _uploaded(file: UploadFile) -> UploadedFile:
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Filename is required"},
        )
    return UploadedFile(filename=file.filename, stream=file.file)


@router.post(
    "/",
    summary="Start an import job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportJobRecord,
)
def create_import(
    file: UploadFile = File(...),
    entity_type: EntityType = Form(...),
    mapping: str | None = Form(None, description="JSON object: source column -> field"),
    options: str | None = Form(None, description="JSON-encoded import options"),
    owner_id: str | None = Form(None),
    service: TransferService = Depends(get_service),
) -> ImportJobRecord:
    """Stage the upload and queue it; the mapping is suggested when omitted."""
    upload = _uploaded(file)
    explicit_mapping = parse_json_field(mapping, "mapping")
    import_options = parse_import_options(options)
    try:
        job = service.create_import_job(
            upload, entity_type, explicit_mapping, import_options, owner_id=owner_id
        )
    except TransferError as exc:
        raise to_http_error(exc) from exc
    logger.info(f"Created import job {job.id} for file {upload.filename}")
    return job


@router.post("/preview", summary="Preview the first rows of a file", response_model=ImportPreview)
def preview_import(
    file: UploadFile = File(...),
    entity_type: EntityType = Form(...),
    rows: int | None = Form(None),
    options: str | None = Form(None),
    service: TransferService = Depends(get_service),
) -> ImportPreview:
    try:
        return service.preview_import(
            _uploaded(file), entity_type, rows, parse_import_options(options)
        )
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.post(
    "/validate",
    summary="Validate a file against a mapping without importing",
    response_model=ImportValidationReport,
)
def validate_import(
    file: UploadFile = File(...),
    entity_type: EntityType = Form(...),
    mapping: str = Form(...),
    options: str | None = Form(None),
    service: TransferService = Depends(get_service),
) -> ImportValidationReport:
    parsed_mapping = parse_json_field(mapping, "mapping") or {}
    try:
        return service.validate_import(
            _uploaded(file), entity_type, parsed_mapping, parse_import_options(options)
        )
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.post(
    "/{job_id}/process",
    summary="Queue a pending job, optionally resuming from a row",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportJobRecord,
)
def process_import(
    job_id: str,
    payload: ProcessImportRequest | None = None,
    service: TransferService = Depends(get_service),
) -> ImportJobRecord:
    payload = payload or ProcessImportRequest()
    try:
        return service.process_import_job(job_id, payload.start_row, payload.batch_size)
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.get("/", summary="List import jobs", response_model=Page[ImportJobRecord])
def list_imports(
    entity_type: EntityType | None = Query(None),
    job_status: JobStatus | None = Query(None, alias="status"),
    owner_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: TransferService = Depends(get_service),
) -> Page[ImportJobRecord]:
    filters = JobListFilters(
        entity_type=entity_type, status=job_status, owner_id=owner_id, page=page, limit=limit
    )
    return service.list_import_jobs(filters)


@router.get("/{job_id}", summary="Check import progress", response_model=ImportJobRecord)
def get_import(job_id: str, service: TransferService = Depends(get_service)) -> ImportJobRecord:
    try:
        return service.get_import_job(job_id)
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{job_id}", summary="Cancel an import job", response_model=ImportJobRecord)
def cancel_import(job_id: str, service: TransferService = Depends(get_service)) -> ImportJobRecord:
    try:
        return service.cancel_import_job(job_id)
    except TransferError as exc:
        raise to_http_error(exc) from exc
