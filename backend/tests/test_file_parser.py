"""Tests for CSV / Excel / JSON parsing into raw records."""

import json

import pytest
from openpyxl import Workbook

from pim_transfer.core.enums import FileFormat
from pim_transfer.core.errors import FileFormatError
from pim_transfer.services import file_parser


def _write(path, text, encoding="utf-8"):
    path.write_text(text, encoding=encoding)
    return path


def test_detect_format_from_extension_and_hint():
    assert file_parser.detect_format("products.CSV") is FileFormat.CSV
    assert file_parser.detect_format("products.xlsx") is FileFormat.EXCEL
    assert file_parser.detect_format("products.json") is FileFormat.JSON
    assert file_parser.detect_format("anything.bin", "xlsx") is FileFormat.EXCEL


def test_detect_format_rejects_unknown_extension():
    with pytest.raises(FileFormatError):
        file_parser.detect_format("products.pdf")


def test_csv_rows_are_string_records_and_blank_lines_skipped(tmp_path):
    path = _write(tmp_path / "p.csv", "name,sku,price\nShirt,SKU-1,10\n\n,,\nHat,SKU-2\n")

    parsed = file_parser.parse(path)
    rows = list(parsed.rows)

    assert parsed.headers == ["name", "sku", "price"]
    assert rows == [
        {"name": "Shirt", "sku": "SKU-1", "price": "10"},
        {"name": "Hat", "sku": "SKU-2", "price": ""},
    ]


def test_csv_bom_and_custom_delimiter(tmp_path):
    path = tmp_path / "p.csv"
    path.write_bytes("\ufeffname;sku\nShirt;SKU-1\n".encode("utf-8"))

    parsed = file_parser.parse(path, delimiter=";")

    assert parsed.headers == ["name", "sku"]
    assert list(parsed.rows) == [{"name": "Shirt", "sku": "SKU-1"}]


def test_duplicate_and_blank_headers_are_made_unique(tmp_path):
    path = _write(tmp_path / "p.csv", "name,name,,sku\na,b,c,d\n")

    parsed = file_parser.parse(path)

    assert parsed.headers == ["name", "name_2", "Column 3", "sku"]


def test_without_header_row_columns_are_numbered(tmp_path):
    path = _write(tmp_path / "p.csv", "Shirt,SKU-1\nHat,SKU-2\n")

    parsed = file_parser.parse(path, skip_header=False)

    assert parsed.headers == ["column_1", "column_2"]
    assert len(list(parsed.rows)) == 2


def test_limit_caps_rows_and_count_rows_streams_everything(tmp_path):
    body = "name,sku\n" + "".join(f"P{i},S{i}\n" for i in range(25))
    path = _write(tmp_path / "p.csv", body)

    assert len(list(file_parser.parse(path, limit=10).rows)) == 10
    assert file_parser.count_rows(path) == 25


def test_excel_first_sheet_is_read(tmp_path):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["name", "sku", "price", "featured"])
    sheet.append(["Shirt", "SKU-1", 19.5, True])
    sheet.append(["Hat", "SKU-2", 10.0, False])
    path = tmp_path / "p.xlsx"
    workbook.save(path)

    parsed = file_parser.parse(path)

    assert parsed.file_format is FileFormat.EXCEL
    assert list(parsed.rows) == [
        {"name": "Shirt", "sku": "SKU-1", "price": "19.5", "featured": "true"},
        {"name": "Hat", "sku": "SKU-2", "price": "10", "featured": "false"},
    ]


def test_json_accepts_array_and_data_envelope(tmp_path):
    records = [{"name": "Shirt", "sku": "SKU-1", "price": 10}, {"name": "Hat", "sku": "SKU-2"}]
    plain = _write(tmp_path / "a.json", json.dumps(records))
    wrapped = _write(tmp_path / "b.json", json.dumps({"_instructions": {}, "data": records}))

    for path in (plain, wrapped):
        parsed = file_parser.parse(path)
        assert parsed.headers == ["name", "sku", "price"]
        assert list(parsed.rows)[1] == {"name": "Hat", "sku": "SKU-2", "price": ""}


def test_invalid_files_raise_file_format_error(tmp_path):
    broken_json = _write(tmp_path / "bad.json", "{not json")
    not_records = _write(tmp_path / "scalars.json", "[1, 2, 3]")
    fake_excel = _write(tmp_path / "fake.xlsx", "this is not a workbook")

    with pytest.raises(FileFormatError):
        file_parser.parse(broken_json)
    with pytest.raises(FileFormatError):
        file_parser.parse(not_records)
    with pytest.raises(FileFormatError):
        file_parser.parse(fake_excel)


def test_empty_file_has_no_headers(tmp_path):
    path = _write(tmp_path / "empty.csv", "")

    parsed = file_parser.parse(path)

    assert parsed.headers == []
    assert list(parsed.rows) == []
