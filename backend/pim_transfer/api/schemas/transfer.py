"""Request payloads for the import/export endpoints."""

from pydantic import BaseModel, Field

from pim_transfer.core.enums import EntityType, FileFormat
from pim_transfer.services.records import ExportFilters, ExportOptions


class ProcessImportRequest(BaseModel):
    start_row: int = Field(default=0, ge=0, description="Data rows to skip before importing")
    batch_size: int | None = Field(default=None, ge=1)


class ExportCreateRequest(BaseModel):
    entity_type: EntityType
    format: FileFormat = FileFormat.CSV
    filters: ExportFilters = Field(default_factory=ExportFilters)
    fields: list[str] = Field(default_factory=list, description="Empty means the default columns")
    options: ExportOptions = Field(default_factory=ExportOptions)
    owner_id: str | None = None


class SuggestMappingRequest(BaseModel):
    entity_type: EntityType
    headers: list[str]


class ValidateMappingRequest(BaseModel):
    entity_type: EntityType
    mapping: dict[str, str]


class MappingSuggestionRead(BaseModel):
    confidence: float
    mapping: dict[str, str]
    unmapped_source: list[str]
    unmapped_target_required: list[str]


class MappingValidationRead(BaseModel):
    valid: bool
    errors: list[str]
