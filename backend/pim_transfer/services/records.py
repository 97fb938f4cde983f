"""Value objects exchanged between the transfer service, stores and transports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from pim_transfer.core.clock import as_utc
from pim_transfer.core.enums import EntityType, FileFormat, JobStatus

T = TypeVar("T")


class ImportOptions(BaseModel):
    skip_header: bool = True
    update_existing: bool = False
    validate_only: bool = False
    delimiter: str = Field(default=",", min_length=1, max_length=1)
    encoding: str = "utf-8"
    mapping_id: str | None = None
    # Variant imports: parent product for every row lacking parentSku
    # (a product id, or its SKU when use_sku is set).
    product_identifier: str | None = None
    use_sku: bool = False


class ExportFilters(BaseModel):
    """AND-composed predicates; unset predicates do not constrain."""

    status: list[str] | None = None
    categories: list[str] | None = None
    brands: list[str] | None = None
    price_min: float | None = None
    price_max: float | None = None
    stock_min: int | None = None
    stock_max: int | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    search: str | None = None
    # variants only: SKU or id of the product whose variants are exported
    parent: str | None = None


class ExportOptions(BaseModel):
    include_variants: bool = False
    include_images: bool = False
    include_categories: bool = True
    include_attributes: bool = False
    delimiter: str = Field(default=",", min_length=1, max_length=1)
    encoding: str = "utf-8"


class JobErrorEntry(BaseModel):
    row: int
    field: str | None = None
    message: str
    data: dict[str, Any] | None = None


class ImportSummary(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    duration_ms: int = 0


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @field_validator(
        "created_at", "started_at", "completed_at", "expires_at", "last_used_at", "updated_at",
        mode="after",
        check_fields=False,
    )
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class ImportJobRecord(_Record):
    id: str
    entity_type: EntityType
    status: JobStatus
    file_path: str = Field(exclude=True)
    original_filename: str
    file_format: FileFormat
    mapping: dict[str, str]
    transformations: dict[str, Any] = Field(default_factory=dict)
    defaults: dict[str, Any] = Field(default_factory=dict)
    options: ImportOptions
    total_rows: int = 0
    processed_rows: int = 0
    success_count: int = 0
    error_count: int = 0
    skip_count: int = 0
    errors: list[JobErrorEntry] = Field(default_factory=list)
    summary: ImportSummary | None = None
    owner_id: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @computed_field
    @property
    def progress(self) -> float:
        if not self.total_rows:
            return 1.0 if self.status is JobStatus.COMPLETED else 0.0
        return min(self.processed_rows / self.total_rows, 1.0)


class ExportJobRecord(_Record):
    id: str
    entity_type: EntityType
    format: FileFormat
    status: JobStatus
    filters: ExportFilters
    fields: list[str] = Field(default_factory=list)
    options: ExportOptions
    total_records: int = 0
    processed_records: int = 0
    filename: str | None = None
    file_path: str | None = Field(default=None, exclude=True)
    file_size: int | None = None
    download_url: str | None = None
    error_message: str | None = None
    owner_id: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.status is JobStatus.COMPLETED and now > self.expires_at


class MappingTemplateRecord(_Record):
    id: str
    name: str
    description: str | None = None
    entity_type: EntityType
    mapping: dict[str, str]
    transformations: dict[str, Any] | None = None
    defaults: dict[str, Any] | None = None
    validation: dict[str, Any] | None = None
    is_default: bool = False
    is_active: bool = True
    usage_count: int = 0
    last_used_at: datetime | None = None
    owner_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class JobListFilters(BaseModel):
    entity_type: EntityType | None = None
    status: JobStatus | None = None
    owner_id: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int


class RowIssues(BaseModel):
    row: int
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ImportPreview(BaseModel):
    headers: list[str]
    rows: list[dict[str, str]]
    suggested_mapping: dict[str, Any]
    file_format: FileFormat


class ImportValidationReport(BaseModel):
    valid: bool
    total_rows: int
    valid_rows: int
    invalid_rows: int
    errors: list[RowIssues] = Field(default_factory=list)
    warnings: list[RowIssues] = Field(default_factory=list)
    mapping_errors: list[str] = Field(default_factory=list)


@dataclass
class ProgressDelta:
    """Counter increments applied to a job in one atomic read-modify-write."""

    processed: int = 0
    success: int = 0
    error: int = 0
    skip: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.processed or self.success or self.error or self.skip or self.errors)


@dataclass
class ExportDownload:
    path: Path
    filename: str
    media_type: str
    size: int


@dataclass
class UploadedFile:
    """An incoming file as handed over by a transport (multipart form, CLI)."""

    filename: str
    stream: BinaryIO
