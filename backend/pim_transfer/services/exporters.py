"""Per-entity exporters: column planning and relation flattening."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from pim_transfer.core.enums import EntityType
from pim_transfer.db.models import Attribute, Category, Product
from pim_transfer.services.drafts import attribute_for
from pim_transfer.services.records import ExportOptions

LIST_SEPARATOR = ", "

# Requested field -> relation it expands, and the columns it expands to.
RELATION_FIELDS = {
    "categories": ("include_categories", ("categories",)),
    "variants": ("include_variants", ("variantCount", "variantSkus")),
    "images": ("include_images", ("imageCount", "primaryImage")),
    "attributes": ("include_attributes", ()),
}

# Export column -> model attribute where they are not derivable.
_COLUMN_ATTRIBUTES = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def column_attribute(column: str) -> str:
    return _COLUMN_ATTRIBUTES.get(column) or attribute_for(column)


def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return LIST_SEPARATOR.join(str(item) for item in value)
    return value


class RowExporter(Protocol):
    entity_type: EntityType
    default_fields: tuple[str, ...]

    def columns(
        self, fields: Sequence[str], options: ExportOptions, attribute_codes: Sequence[str]
    ) -> list[str]: ...

    def flatten(self, record: Any, columns: Sequence[str]) -> dict[str, Any]: ...


class _BaseExporter:
    entity_type: EntityType
    default_fields: tuple[str, ...] = ()
    relations: frozenset[str] = frozenset()

    def columns(
        self, fields: Sequence[str], options: ExportOptions, attribute_codes: Sequence[str]
    ) -> list[str]:
        """Plan the output columns up front so every row shares one header."""
        requested = list(fields) or list(self.default_fields)
        for relation in ("categories", "attributes", "variants", "images"):
            flag, _ = RELATION_FIELDS[relation]
            if relation in self.relations and getattr(options, flag) and relation not in requested:
                requested.append(relation)

        columns: list[str] = []
        for name in requested:
            if name in RELATION_FIELDS:
                if name not in self.relations:
                    continue
                expanded = RELATION_FIELDS[name][1]
                if name == "attributes":
                    expanded = tuple(f"attr_{code}" for code in attribute_codes)
                columns.extend(c for c in expanded if c not in columns)
            elif name not in columns:
                columns.append(name)
        return columns

    def value(self, record: Any, column: str) -> Any:
        return _plain(getattr(record, column_attribute(column), None))

    def flatten(self, record: Any, columns: Sequence[str]) -> dict[str, Any]:
        return {column: self.value(record, column) for column in columns}


class ProductExporter(_BaseExporter):
    entity_type = EntityType.PRODUCTS
    relations = frozenset({"categories", "attributes", "variants", "images"})
    default_fields = (
        "id", "name", "sku", "description", "price", "compareAtPrice", "quantity", "status",
        "isFeatured", "urlKey", "metaTitle", "metaDescription", "brand", "weight",
        "dimensions", "createdAt", "updatedAt",
    )

    def value(self, record: Product, column: str) -> Any:
        if column == "categories":
            return LIST_SEPARATOR.join(c.name for c in record.categories)
        if column == "variantCount":
            return len(record.variants)
        if column == "variantSkus":
            return LIST_SEPARATOR.join(v.sku for v in record.variants)
        if column == "imageCount":
            return len(record.media)
        if column == "primaryImage":
            primary = next((m for m in record.media if m.is_primary), None)
            return primary.url if primary else ""
        if column.startswith("attr_"):
            code = column[len("attr_"):]
            for attribute_value in record.attribute_values:
                if attribute_value.attribute is not None and attribute_value.attribute.code == code:
                    return attribute_value.value
            return None
        if column == "tags":
            return _plain(record.tags or [])
        return super().value(record, column)


class VariantExporter(_BaseExporter):
    entity_type = EntityType.VARIANTS
    default_fields = (
        "id", "parentSku", "sku", "name", "price", "compareAtPrice", "quantity", "barcode",
        "weight", "isDefault", "color", "size", "material", "style", "status", "createdAt",
    )

    def value(self, record: Product, column: str) -> Any:
        if column == "parentSku":
            return record.parent.sku if record.parent is not None else None
        if column in ("color", "size", "material", "style"):
            return (record.options or {}).get(column)
        return super().value(record, column)


class CategoryExporter(_BaseExporter):
    entity_type = EntityType.CATEGORIES
    default_fields = (
        "id", "name", "slug", "description", "parent", "position", "isActive",
        "metaTitle", "metaDescription", "createdAt",
    )

    def value(self, record: Category, column: str) -> Any:
        if column == "parent":
            return record.parent.slug if record.parent is not None else None
        return super().value(record, column)


class AttributeExporter(_BaseExporter):
    entity_type = EntityType.ATTRIBUTES
    default_fields = (
        "id", "name", "code", "type", "groupName", "isRequired", "isFilterable",
        "isSearchable", "isVisible", "position", "options", "createdAt",
    )

    def value(self, record: Attribute, column: str) -> Any:
        if column == "options":
            return "|".join(str(option) for option in record.options or [])
        return super().value(record, column)


ROW_EXPORTERS: dict[EntityType, RowExporter] = {
    exporter.entity_type: exporter
    for exporter in (ProductExporter(), VariantExporter(), CategoryExporter(), AttributeExporter())
}
