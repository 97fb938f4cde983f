"""Blank and sample import templates per entity type and format."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, Side

from pim_transfer.core.enums import EntityType, FileFormat
from pim_transfer.core.errors import ValidationError
from pim_transfer.services.serializers import autosize_columns, cell_text, style_header_row

MAX_SAMPLE_ROWS = 1000
TEMPLATE_HEADER_FILL = "FF1E88E5"
TEMPLATE_HEADER_FONT = "FFFFFFFF"

TEMPLATE_HEADERS: dict[EntityType, list[str]] = {
    EntityType.PRODUCTS: [
        "name", "sku", "description", "price", "compareAtPrice", "quantity", "category",
        "brand", "urlKey", "metaTitle", "metaDescription", "status", "isFeatured", "weight",
        "dimensions", "tags",
    ],
    EntityType.VARIANTS: [
        "parentSku", "sku", "name", "price", "compareAtPrice", "quantity", "color", "size",
        "material", "weight", "barcode", "isDefault",
    ],
    EntityType.CATEGORIES: [
        "name", "slug", "description", "parent", "position", "isActive", "metaTitle",
        "metaDescription",
    ],
    EntityType.ATTRIBUTES: [
        "name", "code", "type", "groupName", "isRequired", "isFilterable", "isSearchable",
        "isVisible", "position", "options",
    ],
}

COMMON_INSTRUCTIONS = [
    "1. Fill in the data starting from row 2 (row 1 contains headers)",
    "2. Do not modify the header row",
    "3. Required fields must not be empty",
    "4. Save the file as .xlsx or .csv before importing",
    "5. For boolean fields, use: true/false, 1/0, or yes/no",
    "6. Dates should be in format: YYYY-MM-DD",
    "",
]

TYPE_INSTRUCTIONS: dict[EntityType, list[str]] = {
    EntityType.PRODUCTS: [
        "PRODUCT SPECIFIC INSTRUCTIONS:",
        "- SKU must be unique for each product",
        "- Status values: draft, published, archived",
        "- Price and quantity must be positive numbers",
        "- Category should match existing category name or slug",
        "- Multiple categories and tags can be separated by commas",
        "- URL key should contain only lowercase letters, numbers, and hyphens",
    ],
    EntityType.VARIANTS: [
        "VARIANT SPECIFIC INSTRUCTIONS:",
        "- parentSku must match an existing product SKU",
        "- sku must be unique across products and variants",
        "- At least one variant attribute (color, size, etc.) should be specified",
        "- isDefault: only one variant per product should be default",
        "- Price overrides the parent product price if specified",
    ],
    EntityType.CATEGORIES: [
        "CATEGORY SPECIFIC INSTRUCTIONS:",
        "- Slug must be unique across all categories (derived from the name when empty)",
        "- Parent field should contain the name or slug of parent category",
        "- Position determines the order within the same level",
        "- Leave parent empty for root categories",
    ],
    EntityType.ATTRIBUTES: [
        "ATTRIBUTE SPECIFIC INSTRUCTIONS:",
        "- Code must be unique and contain only lowercase letters, numbers, and underscores",
        "- Type values: text, textarea, number, decimal, select, multiselect, boolean, date, "
        "datetime, color, file, image, url",
        "- For select/multiselect types, provide options separated by pipe (|)",
        "- Group name helps organize attributes",
    ],
}

JSON_NOTES = [
    "Each object in the data array represents one row",
    "Use the exact field names as shown in headers",
    "The _instructions object is ignored on import",
]

_CATEGORIES = ["Electronics", "Clothing", "Home & Garden", "Sports", "Books"]
_BRANDS = ["Brand A", "Brand B", "Brand C", "Brand D", "Brand E"]
_STATUSES = ["published", "draft", "published", "published", "archived"]
_COLORS = ["Red", "Blue", "Green", "Black", "White"]
_SIZES = ["XS", "S", "M", "L", "XL", "XXL"]
_MATERIALS = ["Cotton", "Polyester", "Wool", "Silk", "Leather"]
_ATTRIBUTE_TYPES = ["text", "select", "multiselect", "number", "boolean", "date", "color"]
_GROUPS = ["General", "Technical", "Physical", "Display", "Custom"]


@dataclass
class TemplateFile:
    filename: str
    media_type: str
    content: bytes


def _product_sample(i: int) -> dict[str, Any]:
    return {
        "name": f"Sample Product {i + 1}",
        "sku": f"SKU-{1000 + i}",
        "description": f"This is a detailed description for sample product {i + 1}.",
        "price": f"{19.99 + i * 10:.2f}",
        "compareAtPrice": f"{29.99 + i * 10:.2f}",
        "quantity": str((i * 17) % 100),
        "category": _CATEGORIES[i % 5],
        "brand": _BRANDS[i % 5],
        "urlKey": f"sample-product-{i + 1}",
        "metaTitle": f"Sample Product {i + 1} - Best Deals Online",
        "metaDescription": f"Shop Sample Product {i + 1} at the best prices.",
        "status": _STATUSES[i % 5],
        "isFeatured": "true" if i < 2 else "false",
        "weight": f"{0.5 + (i % 10) * 0.25:.2f}",
        "dimensions": "10x10x10",
        "tags": "new,trending,bestseller",
    }


def _variant_sample(i: int) -> dict[str, Any]:
    return {
        "parentSku": "PARENT-SKU-001",
        "sku": f"VAR-SKU-{1000 + i}",
        "name": f"{_COLORS[i % 5]} {_SIZES[i % 6]} Variant",
        "price": f"{24.99 + i * 5:.2f}",
        "compareAtPrice": f"{34.99 + i * 5:.2f}",
        "quantity": str((i * 7) % 50),
        "color": _COLORS[i % 5],
        "size": _SIZES[i % 6],
        "material": _MATERIALS[i % 5],
        "weight": f"{0.2 + (i % 10) * 0.1:.2f}",
        "barcode": f"BAR{100000000 + i}",
        "isDefault": "true" if i == 0 else "false",
    }


def _category_sample(i: int) -> dict[str, Any]:
    return {
        "name": f"Category {i + 1}",
        "slug": f"category-{i + 1}",
        "description": f"Description for category {i + 1}",
        "parent": "Category 1" if i > 0 else "",
        "position": str(i),
        "isActive": "true",
        "metaTitle": f"Category {i + 1} - Shop Online",
        "metaDescription": f"Browse our selection of products in Category {i + 1}",
    }


def _attribute_sample(i: int) -> dict[str, Any]:
    attr_type = _ATTRIBUTE_TYPES[i % len(_ATTRIBUTE_TYPES)]
    return {
        "name": f"Attribute {i + 1}",
        "code": f"attr_{i + 1}",
        "type": attr_type,
        "groupName": _GROUPS[i % len(_GROUPS)],
        "isRequired": "true" if i < 2 else "false",
        "isFilterable": "true",
        "isSearchable": "true",
        "isVisible": "true",
        "position": str(i),
        "options": "Option 1|Option 2|Option 3" if attr_type in ("select", "multiselect") else "",
    }


SAMPLE_BUILDERS = {
    EntityType.PRODUCTS: _product_sample,
    EntityType.VARIANTS: _variant_sample,
    EntityType.CATEGORIES: _category_sample,
    EntityType.ATTRIBUTES: _attribute_sample,
}


def template_headers(entity_type: EntityType) -> list[str]:
    return list(TEMPLATE_HEADERS[EntityType(entity_type)])


def sample_rows_for(entity_type: EntityType, count: int) -> list[dict[str, Any]]:
    """Deterministic sample rows; the same count always yields the same rows."""
    builder = SAMPLE_BUILDERS[EntityType(entity_type)]
    return [builder(i) for i in range(count)]


def instructions_for(entity_type: EntityType) -> list[str]:
    return COMMON_INSTRUCTIONS + TYPE_INSTRUCTIONS[EntityType(entity_type)]


def _csv_template(headers: list[str], rows: list[dict[str, Any]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([cell_text(row.get(header)) for header in headers])
    return buffer.getvalue().encode("utf-8")


def _json_template(headers: list[str], rows: list[dict[str, Any]]) -> bytes:
    payload = {
        "_instructions": {
            "format": "JSON Import Template",
            "headers": headers,
            "notes": JSON_NOTES,
        },
        "data": rows or [{header: "" for header in headers}],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def _excel_template(entity_type: EntityType, headers: list[str], rows: list[dict[str, Any]]) -> bytes:
    workbook = Workbook()
    data_sheet = workbook.active
    data_sheet.title = "Data"
    data_sheet.append(headers)
    style_header_row(data_sheet, TEMPLATE_HEADER_FILL, font_color=TEMPLATE_HEADER_FONT)
    for cell in data_sheet[1]:
        cell.alignment = Alignment(vertical="center", horizontal="center")
    data_sheet.row_dimensions[1].height = 25

    widths = [len(header) for header in headers]
    for row in rows:
        values = [cell_text(row.get(header)) for header in headers]
        data_sheet.append(values)
        widths = [max(width, len(value)) for width, value in zip(widths, values)]
    autosize_columns(data_sheet, widths)

    thin = Side(style="thin")
    border = Border(top=thin, left=thin, bottom=thin, right=thin)
    for sheet_row in data_sheet.iter_rows():
        for cell in sheet_row:
            cell.border = border

    sheet = workbook.create_sheet("Instructions")
    sheet.merge_cells("A1:D1")
    title = sheet["A1"]
    title.value = f"{entity_type.value.upper()} Import Template Instructions"
    title.font = Font(bold=True, size=16)
    title.alignment = Alignment(horizontal="center")
    for offset, line in enumerate(instructions_for(entity_type)):
        row_number = 3 + offset
        sheet.merge_cells(f"A{row_number}:D{row_number}")
        cell = sheet[f"A{row_number}"]
        cell.value = line
        cell.alignment = Alignment(wrap_text=True)
    sheet.column_dimensions["A"].width = 100

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def generate_template(
    entity_type: EntityType,
    file_format: FileFormat,
    include_sample_data: bool = False,
    sample_rows: int = 5,
) -> TemplateFile:
    entity_type = EntityType(entity_type)
    file_format = FileFormat(file_format)
    if not 0 <= sample_rows <= MAX_SAMPLE_ROWS:
        raise ValidationError(
            f"sample_rows must be between 0 and {MAX_SAMPLE_ROWS}", field="sample_rows"
        )

    headers = template_headers(entity_type)
    rows = sample_rows_for(entity_type, sample_rows) if include_sample_data else []

    if file_format is FileFormat.CSV:
        content = _csv_template(headers, rows)
    elif file_format is FileFormat.EXCEL:
        content = _excel_template(entity_type, headers, rows)
    else:
        content = _json_template(headers, rows)

    return TemplateFile(
        filename=f"{entity_type.value}-template{file_format.extension}",
        media_type=file_format.media_type,
        content=content,
    )
