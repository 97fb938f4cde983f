"""Decode uploaded CSV / Excel / JSON files into headers and lazy raw records."""

from __future__ import annotations

import csv
import json
import logging
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from pim_transfer.core.enums import FileFormat
from pim_transfer.core.errors import FileFormatError

logger = logging.getLogger(__name__)

# Ordered source column -> cell text.
RawRecord = dict[str, str]

EXTENSION_FORMATS = {
    ".csv": FileFormat.CSV,
    ".txt": FileFormat.CSV,
    ".xlsx": FileFormat.EXCEL,
    ".xlsm": FileFormat.EXCEL,
    ".json": FileFormat.JSON,
}
FORMAT_ALIASES = {"xlsx": FileFormat.EXCEL, "xls": FileFormat.EXCEL}

_EXCEL_ERRORS = (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError)


@dataclass
class ParsedFile:
    """Headers are read eagerly; ``rows`` streams records on demand."""

    headers: list[str]
    file_format: FileFormat
    rows: Iterator[RawRecord] = field(repr=False)


@dataclass(frozen=True)
class ParseOptions:
    delimiter: str = ","
    encoding: str = "utf-8"
    skip_header: bool = True


def detect_format(filename: str, hinted: FileFormat | str | None = None) -> FileFormat:
    """Resolve the file format from an explicit hint or the file extension."""
    if hinted:
        value = hinted.value if isinstance(hinted, FileFormat) else str(hinted).lower()
        if value in FORMAT_ALIASES:
            return FORMAT_ALIASES[value]
        try:
            return FileFormat(value)
        except ValueError:
            raise FileFormatError(f"Unsupported file format: {hinted}") from None

    suffix = Path(filename or "").suffix.lower()
    try:
        return EXTENSION_FORMATS[suffix]
    except KeyError:
        raise FileFormatError(
            f"Unsupported file type '{suffix or filename}'. Use CSV, Excel (.xlsx) or JSON."
        ) from None


def render_cell(value: Any) -> str:
    """Render a spreadsheet / JSON scalar as the text a CSV would carry."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _is_blank(cells: list[str]) -> bool:
    return not any(cell.strip() for cell in cells)


def _unique_headers(raw: list[str]) -> list[str]:
    headers: list[str] = []
    seen: dict[str, int] = {}
    for index, header in enumerate(raw, start=1):
        name = header.strip() or f"Column {index}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        headers.append(name)
    return headers


def _synthetic_headers(width: int) -> list[str]:
    return [f"column_{index}" for index in range(1, width + 1)]


def _to_record(headers: list[str], cells: list[str]) -> RawRecord:
    padded = list(cells[: len(headers)]) + [""] * max(0, len(headers) - len(cells))
    return dict(zip(headers, padded))


# -- CSV ---------------------------------------------------------------------

def _csv_encoding(encoding: str) -> str:
    # utf-8-sig strips a leading BOM and is otherwise identical to utf-8
    return "utf-8-sig" if encoding.lower().replace("_", "-") in ("utf-8", "utf8") else encoding


def _iter_csv_cells(path: Path, options: ParseOptions) -> Iterator[list[str]]:
    try:
        with path.open("r", encoding=_csv_encoding(options.encoding), newline="") as handle:
            reader = csv.reader(handle, delimiter=options.delimiter or ",")
            for cells in reader:
                if _is_blank(cells):
                    continue
                yield cells
    except FileNotFoundError:
        raise FileFormatError(f"File not found: {path.name}") from None
    except LookupError as e:
        raise FileFormatError(f"Unknown encoding '{options.encoding}'") from e
    except UnicodeDecodeError as e:
        raise FileFormatError(f"File encoding error: {e}") from e
    except csv.Error as e:
        raise FileFormatError(f"CSV parsing error: {e}") from e


# -- Excel -------------------------------------------------------------------

def _iter_excel_cells(path: Path) -> Iterator[list[str]]:
    try:
        workbook = load_workbook(filename=str(path), read_only=True, data_only=True)
    except FileNotFoundError:
        raise FileFormatError(f"File not found: {path.name}") from None
    except _EXCEL_ERRORS as e:
        raise FileFormatError(f"Unable to read Excel workbook: {e}") from e

    try:
        if not workbook.worksheets:
            return
        sheet = workbook.worksheets[0]
        for values in sheet.iter_rows(values_only=True):
            cells = [render_cell(value) for value in values]
            if _is_blank(cells):
                continue
            yield cells
    except _EXCEL_ERRORS as e:
        raise FileFormatError(f"Unable to read Excel workbook: {e}") from e
    finally:
        workbook.close()


# -- JSON --------------------------------------------------------------------

def _load_json_records(path: Path, encoding: str) -> list[dict[str, Any]]:
    try:
        with path.open("r", encoding=_csv_encoding(encoding)) as handle:
            payload = json.load(handle)
    except FileNotFoundError:
        raise FileFormatError(f"File not found: {path.name}") from None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FileFormatError(f"Invalid JSON file: {e}") from e

    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        records = payload["data"]
    elif isinstance(payload, list):
        records = payload
    else:
        raise FileFormatError("JSON import must be an array or an object with a 'data' array")

    if not all(isinstance(record, dict) for record in records):
        raise FileFormatError("Every JSON record must be an object")
    return records


def _json_headers(records: list[dict[str, Any]]) -> list[str]:
    headers: list[str] = []
    seen: set[str] = set()
    for record in records:
        for key in record:
            if key not in seen:
                seen.add(key)
                headers.append(str(key))
    return headers


def _iter_json_rows(records: list[dict[str, Any]], headers: list[str]) -> Iterator[RawRecord]:
    for record in records:
        row = {header: render_cell(record.get(header)) for header in headers}
        if _is_blank(list(row.values())):
            continue
        yield row


# -- public API --------------------------------------------------------------

def _iter_cells(path: Path, file_format: FileFormat, options: ParseOptions) -> Iterator[list[str]]:
    if file_format is FileFormat.EXCEL:
        return _iter_excel_cells(path)
    return _iter_csv_cells(path, options)


def _tabular_rows(
    path: Path, file_format: FileFormat, options: ParseOptions, headers: list[str]
) -> Iterator[RawRecord]:
    cells_iter = _iter_cells(path, file_format, options)
    try:
        if options.skip_header:
            next(cells_iter, None)
        for cells in cells_iter:
            yield _to_record(headers, cells)
    finally:
        cells_iter.close()


def _limited(rows: Iterator[RawRecord], limit: int | None) -> Iterator[RawRecord]:
    if limit is None:
        yield from rows
        return
    if limit <= 0:
        return
    for index, row in enumerate(rows, start=1):
        yield row
        if index >= limit:
            break


def parse(
    path: str | Path,
    hinted_format: FileFormat | str | None = None,
    *,
    delimiter: str = ",",
    encoding: str = "utf-8",
    skip_header: bool = True,
    limit: int | None = None,
) -> ParsedFile:
    """Open ``path`` and return its headers plus a lazy record iterator.

    ``limit`` caps the number of data rows yielded (preview mode). Parse
    failures, including those met while iterating, raise ``FileFormatError``.
    """
    path = Path(path)
    file_format = detect_format(path.name, hinted_format)
    options = ParseOptions(delimiter=delimiter, encoding=encoding, skip_header=skip_header)

    if file_format is FileFormat.JSON:
        records = _load_json_records(path, encoding)
        headers = _json_headers(records)
        rows = _iter_json_rows(records, headers)
    else:
        first_iter = _iter_cells(path, file_format, options)
        try:
            first = next(first_iter, None)
        finally:
            first_iter.close()
        if first is None:
            headers = []
        elif skip_header:
            headers = _unique_headers(first)
        else:
            headers = _synthetic_headers(len(first))
        rows = _tabular_rows(path, file_format, options, headers) if headers else iter(())

    logger.debug(f"Parsed {path.name} as {file_format.value} with {len(headers)} column(s)")
    return ParsedFile(headers=headers, file_format=file_format, rows=_limited(rows, limit))


def count_rows(
    path: str | Path,
    hinted_format: FileFormat | str | None = None,
    *,
    delimiter: str = ",",
    encoding: str = "utf-8",
    skip_header: bool = True,
) -> int:
    """Count data rows by streaming the file once."""
    parsed = parse(
        path,
        hinted_format,
        delimiter=delimiter,
        encoding=encoding,
        skip_header=skip_header,
    )
    return sum(1 for _ in parsed.rows)
