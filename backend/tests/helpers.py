"""Shared builders for test uploads and a recording progress publisher."""

from __future__ import annotations

import io
import json
from typing import Any

from pim_transfer.services.records import UploadedFile

PRODUCT_MAPPING = {
    "Product Name": "name",
    "SKU Code": "sku",
    "Unit Price": "price",
    "Stock": "quantity",
}


class RecordingPublisher:
    """Progress publisher that keeps every snapshot for assertions."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def publish(self, kind, job_id, *, status, processed, total, meta=None) -> None:
        self.events.append(
            {
                "kind": kind,
                "job_id": job_id,
                "status": status,
                "processed": processed,
                "total": total,
                "meta": meta,
            }
        )

    def processed_for(self, job_id: str) -> list[int]:
        return [event["processed"] for event in self.events if event["job_id"] == job_id]


def csv_bytes(rows: list[list[str]]) -> bytes:
    return ("\n".join(",".join(row) for row in rows) + "\n").encode("utf-8")


def csv_upload(rows: list[list[str]], filename: str = "upload.csv") -> UploadedFile:
    """In-memory CSV upload from a header row plus data rows."""
    return UploadedFile(filename=filename, stream=io.BytesIO(csv_bytes(rows)))


def json_upload(payload: Any, filename: str = "upload.json") -> UploadedFile:
    return UploadedFile(filename=filename, stream=io.BytesIO(json.dumps(payload).encode("utf-8")))


def product_rows(count: int, start: int = 1) -> list[list[str]]:
    rows = [["Product Name", "SKU Code", "Unit Price", "Stock"]]
    for i in range(start, start + count):
        rows.append([f"Product {i}", f"SKU-{i:03d}", f"{i}.50", str(i)])
    return rows
