"""Mapping template CRUD plus suggestion and validation helpers."""

from __future__ import annotations

import dataclasses
import logging

from fastapi import APIRouter, Depends, Query, Response, status

from pim_transfer.api.dependencies.service import get_service
from pim_transfer.api.routers.job_helpers import to_http_error
from pim_transfer.api.schemas.transfer import (
    MappingSuggestionRead,
    MappingValidationRead,
    SuggestMappingRequest,
    ValidateMappingRequest,
)
from pim_transfer.core.enums import EntityType
from pim_transfer.core.errors import TransferError
from pim_transfer.services.mapping_templates import (
    MappingTemplateCreate,
    MappingTemplateFilters,
    MappingTemplateUpdate,
)
from pim_transfer.services.records import MappingTemplateRecord, Page
from pim_transfer.services.transfer_service import TransferService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/suggest", summary="Suggest a mapping for file headers", response_model=MappingSuggestionRead)
def suggest_mapping(
    payload: SuggestMappingRequest,
    service: TransferService = Depends(get_service),
) -> MappingSuggestionRead:
    suggestion = service.suggest_mapping(payload.headers, payload.entity_type)
    return MappingSuggestionRead(**dataclasses.asdict(suggestion))


@router.post("/validate", summary="Check a mapping against an entity type", response_model=MappingValidationRead)
def validate_mapping(
    payload: ValidateMappingRequest,
    service: TransferService = Depends(get_service),
) -> MappingValidationRead:
    result = service.validate_mapping(payload.mapping, payload.entity_type)
    return MappingValidationRead(valid=result.valid, errors=result.errors)


@router.get("/", summary="List mapping templates", response_model=Page[MappingTemplateRecord])
def list_mappings(
    entity_type: EntityType | None = Query(None),
    owner_id: str | None = Query(None),
    include_shared: bool = Query(True),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: TransferService = Depends(get_service),
) -> Page[MappingTemplateRecord]:
    filters = MappingTemplateFilters(
        entity_type=entity_type,
        owner_id=owner_id,
        include_shared=include_shared,
        page=page,
        limit=limit,
    )
    return service.list_mappings(filters)


@router.post(
    "/",
    summary="Create a mapping template",
    status_code=status.HTTP_201_CREATED,
    response_model=MappingTemplateRecord,
)
def create_mapping(
    payload: MappingTemplateCreate,
    service: TransferService = Depends(get_service),
) -> MappingTemplateRecord:
    try:
        return service.create_mapping(payload)
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.get("/{template_id}", summary="Fetch a mapping template", response_model=MappingTemplateRecord)
def get_mapping(
    template_id: str, service: TransferService = Depends(get_service)
) -> MappingTemplateRecord:
    try:
        return service.get_mapping(template_id)
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.patch("/{template_id}", summary="Update a mapping template", response_model=MappingTemplateRecord)
def update_mapping(
    template_id: str,
    payload: MappingTemplateUpdate,
    service: TransferService = Depends(get_service),
) -> MappingTemplateRecord:
    try:
        return service.update_mapping(template_id, payload)
    except TransferError as exc:
        raise to_http_error(exc) from exc


@router.delete(
    "/{template_id}",
    summary="Delete a mapping template",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_mapping(template_id: str, service: TransferService = Depends(get_service)) -> Response:
    try:
        service.delete_mapping(template_id)
    except TransferError as exc:
        raise to_http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
