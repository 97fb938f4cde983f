"""Error taxonomy for the import/export engine.

Row-level problems (validation, reference, conflict) are normally carried as
values by the orchestrator; the exception classes exist so collaborators can
raise them and so the service layer can report job-level and request-level
failures with a typed error.
"""

from __future__ import annotations

from typing import Any


class TransferError(Exception):
    """Base class for every error raised by the transfer engine."""


class FileFormatError(TransferError):
    """Unsupported extension or unparseable file content (job-level, fatal)."""


class ValidationError(TransferError):
    """Row or request data that fails validation rules."""

    def __init__(self, message: str, *, field: str | None = None, errors: list[str] | None = None):
        super().__init__(message)
        self.field = field
        self.errors = errors or [message]


class CatalogReferenceError(TransferError):
    """A referenced catalog record (category, parent product) does not resolve."""

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConflictError(TransferError):
    """Natural key already exists and updates were not requested."""

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(TransferError):
    """Job, mapping template or file is absent."""


class JobStateError(TransferError):
    """Operation attempted against a job in an incompatible state."""

    def __init__(self, message: str, *, job_id: str | None = None, current_status: Any = None):
        super().__init__(message)
        self.job_id = job_id
        self.current_status = getattr(current_status, "value", current_status)


class StorageError(TransferError):
    """Artifact unavailable at download time."""


class ArtifactExpiredError(StorageError):
    """Export artifact is past its expiry time."""


class ArtifactMissingError(StorageError):
    """Export artifact no longer exists in file storage."""
