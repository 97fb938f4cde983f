"""Streaming artifact writers for CSV, Excel and JSON output."""

from __future__ import annotations

import csv
import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from pim_transfer.core.enums import FileFormat

MAX_COLUMN_WIDTH = 50
EXPORT_HEADER_FILL = "FFE0E0E0"


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def style_header_row(
    sheet: Worksheet, fill_color: str, *, font_color: str | None = None
) -> None:
    fill = PatternFill(start_color=fill_color, end_color=fill_color, fill_type="solid")
    font = Font(bold=True, color=font_color) if font_color else Font(bold=True)
    for cell in sheet[1]:
        cell.font = font
        cell.fill = fill


def autosize_columns(sheet: Worksheet, widths: Sequence[int]) -> None:
    for index, width in enumerate(widths, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = min(width + 2, MAX_COLUMN_WIDTH)


class ArtifactWriter(Protocol):
    def write_rows(self, rows: Iterable[dict[str, Any]]) -> None: ...

    def close(self) -> None: ...


class CsvArtifactWriter:
    def __init__(self, path: Path, columns: Sequence[str], *, delimiter: str = ",", encoding: str = "utf-8"):
        self._handle = path.open("w", encoding=encoding, newline="")
        self._writer = csv.writer(self._handle, delimiter=delimiter)
        self._columns = list(columns)
        self._writer.writerow(self._columns)

    def write_rows(self, rows: Iterable[dict[str, Any]]) -> None:
        for row in rows:
            self._writer.writerow([cell_text(row.get(column)) for column in self._columns])

    def close(self) -> None:
        self._handle.close()


class ExcelArtifactWriter:
    """Rows are kept in an openpyxl workbook and saved on close, so column
    widths can reflect the longest value seen."""

    def __init__(self, path: Path, columns: Sequence[str], *, sheet_title: str = "Export"):
        self._path = path
        self._columns = list(columns)
        self._workbook = Workbook()
        self._sheet = self._workbook.active
        self._sheet.title = sheet_title[:31]
        self._sheet.append(self._columns)
        style_header_row(self._sheet, EXPORT_HEADER_FILL)
        self._widths = [len(column) for column in self._columns]

    def write_rows(self, rows: Iterable[dict[str, Any]]) -> None:
        for row in rows:
            values = []
            for index, column in enumerate(self._columns):
                value = row.get(column)
                if isinstance(value, (dict, list)):
                    value = cell_text(value)
                values.append(value)
                self._widths[index] = max(self._widths[index], len(cell_text(value)))
            self._sheet.append(values)

    def close(self) -> None:
        autosize_columns(self._sheet, self._widths)
        self._workbook.save(self._path)
        self._workbook.close()


class JsonArtifactWriter:
    """Writes a pretty-printed (indent 2) JSON array one element at a time."""

    def __init__(self, path: Path, *, encoding: str = "utf-8"):
        self._handle = path.open("w", encoding=encoding)
        self._count = 0

    def write_rows(self, rows: Iterable[dict[str, Any]]) -> None:
        for row in rows:
            body = json.dumps(row, indent=2, ensure_ascii=False, default=str)
            item = "\n".join(f"  {line}" for line in body.splitlines())
            self._handle.write(("[\n" if self._count == 0 else ",\n") + item)
            self._count += 1

    def close(self) -> None:
        self._handle.write("\n]\n" if self._count else "[]\n")
        self._handle.close()


def open_writer(
    file_format: FileFormat,
    path: Path,
    columns: Sequence[str],
    *,
    delimiter: str = ",",
    encoding: str = "utf-8",
    sheet_title: str = "Export",
) -> ArtifactWriter:
    if file_format is FileFormat.CSV:
        return CsvArtifactWriter(path, columns, delimiter=delimiter, encoding=encoding)
    if file_format is FileFormat.EXCEL:
        return ExcelArtifactWriter(path, columns, sheet_title=sheet_title)
    return JsonArtifactWriter(path, encoding=encoding)
