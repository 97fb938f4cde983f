"""Shared helpers for translating engine errors into HTTP responses."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import HTTPException, status
from pydantic import ValidationError as PydanticValidationError

from pim_transfer.core.errors import (
    ArtifactExpiredError,
    ArtifactMissingError,
    CatalogReferenceError,
    ConflictError,
    FileFormatError,
    JobStateError,
    NotFoundError,
    TransferError,
    ValidationError,
)
from pim_transfer.services.records import ImportOptions

logger = logging.getLogger(__name__)

# Most specific first: ArtifactMissingError must win over a generic StorageError.
_STATUS_CODES: list[tuple[type[TransferError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ArtifactMissingError, status.HTTP_404_NOT_FOUND),
    (ArtifactExpiredError, status.HTTP_410_GONE),
    (JobStateError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (FileFormatError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (CatalogReferenceError, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


def to_http_error(exc: TransferError) -> HTTPException:
    """Map an engine error onto the matching HTTP status and detail payload."""
    code = next(
        (code for kind, code in _STATUS_CODES if isinstance(exc, kind)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    detail: dict[str, Any] = {"message": str(exc)}
    if isinstance(exc, ValidationError):
        detail["field"] = exc.field
        detail["errors"] = exc.errors
    elif isinstance(exc, JobStateError):
        detail["current_status"] = exc.current_status
    if code >= 500:
        logger.error(f"Unhandled transfer error: {exc}", exc_info=exc)
    return HTTPException(status_code=code, detail=detail)


def parse_json_field(raw: str | None, field: str) -> Any:
    """Decode a JSON-encoded multipart form field."""
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": f"Field '{field}' is not valid JSON: {e.msg}", "field": field},
        ) from e


def parse_import_options(raw: str | None) -> ImportOptions:
    payload = parse_json_field(raw, "options") or {}
    try:
        return ImportOptions.model_validate(payload)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "Invalid import options",
                "field": "options",
                "errors": [err["msg"] for err in e.errors()],
            },
        ) from e
