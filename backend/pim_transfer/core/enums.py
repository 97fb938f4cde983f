"""Enumerations shared by import/export jobs and mapping templates."""

from __future__ import annotations

from enum import Enum


class EntityType(str, Enum):
    PRODUCTS = "products"
    VARIANTS = "variants"
    CATEGORIES = "categories"
    ATTRIBUTES = "attributes"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


CANCELLABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})


class FileFormat(str, Enum):
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"

    @property
    def extension(self) -> str:
        return {"csv": ".csv", "excel": ".xlsx", "json": ".json"}[self.value]

    @property
    def media_type(self) -> str:
        return {
            "csv": "text/csv",
            "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "json": "application/json",
        }[self.value]


# Export jobs and templates use the same set of formats as uploads.
ExportFormat = FileFormat
