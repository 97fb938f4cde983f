"""Endpoints for export jobs and artifact downloads."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse

from pim_transfer.api.dependencies.service import get_service
from pim_transfer.api.routers.job_helpers import to_http_error
from pim_transfer.api.schemas.transfer import ExportCreateRequest
from pim_transfer.core.enums import EntityType, JobStatus
from pim_transfer.core.errors import TransferError
from pim_transfer.services.records import ExportJobRecord, JobListFilters, Page
from pim_transfer.services.transfer_service import TransferService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/",
    summary="Start an export job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ExportJobRecord,
)
def create_export(
    payload: ExportCreateRequest,
    service: TransferService = Depends(get_service),
) -> ExportJobRecord:
    try:
        return service.create_export_job(
            payload.entity_type,
            payload.format,
            filters=payload.filters,
            fields=payload.fields,
            options=payload.options,
            owner_id=payload.owner_id,
        )
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.get("/", summary="List export jobs", response_model=Page[ExportJobRecord])
def list_exports(
    entity_type: EntityType | None = Query(None),
    job_status: JobStatus | None = Query(None, alias="status"),
    owner_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: TransferService = Depends(get_service),
) -> Page[ExportJobRecord]:
    filters = JobListFilters(
        entity_type=entity_type, status=job_status, owner_id=owner_id, page=page, limit=limit
    )
    return service.list_export_jobs(filters)


@router.get("/{job_id}", summary="Check export progress", response_model=ExportJobRecord)
def get_export(job_id: str, service: TransferService = Depends(get_service)) -> ExportJobRecord:
    try:
        return service.get_export_job(job_id)
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{job_id}", summary="Cancel an export job", response_model=ExportJobRecord)
def cancel_export(job_id: str, service: TransferService = Depends(get_service)) -> ExportJobRecord:
    try:
        return service.cancel_export_job(job_id)
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.get("/{job_id}/download", summary="Download a finished export")
def download_export(job_id: str, service: TransferService = Depends(get_service)) -> FileResponse:
    try:
        artifact = service.download_export(job_id)
    except TransferError as exc:
        raise to_http_error(exc) from exc
    logger.info(f"Serving export {job_id} ({artifact.size} bytes)")
    return FileResponse(artifact.path, media_type=artifact.media_type, filename=artifact.filename)
