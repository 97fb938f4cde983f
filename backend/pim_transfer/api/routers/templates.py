"""Import template downloads."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from pim_transfer.api.dependencies.service import get_service
from pim_transfer.api.routers.job_helpers import to_http_error
from pim_transfer.core.enums import EntityType
from pim_transfer.core.errors import TransferError
from pim_transfer.services.transfer_service import TransferService

router = APIRouter()


@router.get("/{entity_type}", summary="Download an import template")
def download_template(
    entity_type: EntityType,
    format: str = Query("csv", description="csv, excel/xlsx or json"),
    include_sample_data: bool = Query(False),
    sample_rows: int = Query(5),
    service: TransferService = Depends(get_service),
) -> Response:
    try:
        template = service.download_template(entity_type, format, include_sample_data, sample_rows)
    except TransferError as exc:
        raise to_http_error(exc) from exc
    return Response(
        content=template.content,
        media_type=template.media_type,
        headers={"Content-Disposition": f'attachment; filename="{template.filename}"'},
    )
