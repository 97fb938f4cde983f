"""Local filesystem storage for staged uploads and export artifacts."""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """Uploads and artifacts live in two directories shared by API and workers."""

    def __init__(self, uploads_dir: str | Path, exports_dir: str | Path):
        self.uploads_dir = Path(uploads_dir).resolve()
        self.exports_dir = Path(exports_dir).resolve()

    def save_upload(self, file_obj: BinaryIO, original_name: str | None = None) -> Path:
        """Persist an uploaded file under a unique name and return its absolute path."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        suffix = Path(original_name or "upload.csv").suffix.lower() or ".csv"
        target_path = self.uploads_dir / f"{uuid.uuid4()}{suffix}"
        if hasattr(file_obj, "seek"):
            file_obj.seek(0)
        with target_path.open("wb") as destination:
            shutil.copyfileobj(file_obj, destination)
        logger.debug(f"Staged upload {original_name!r} at {target_path}")
        return target_path

    def artifact_path(self, filename: str) -> Path:
        """Reserve a path for a generated export artifact."""
        self.exports_dir.mkdir(parents=True, exist_ok=True)
        return self.exports_dir / Path(filename).name

    def exists(self, path: str | Path | None) -> bool:
        return bool(path) and Path(path).is_file()

    def size(self, path: str | Path) -> int:
        return Path(path).stat().st_size

    def delete(self, path: str | Path | None) -> None:
        """Remove a staged upload or artifact; missing files are ignored."""
        if not path:
            return
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            # Leftovers are harmless; the next cleanup pass can retry.
            logger.warning(f"Could not delete {path}: {e}")
