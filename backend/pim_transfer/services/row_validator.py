"""Validate raw records and transform them into typed drafts.

Validation and transformation deliberately disagree on bad numbers: validation
reports a hard error, transformation coerces to 0 and never raises.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pim_transfer.core.enums import EntityType
from pim_transfer.services import mapping_engine
from pim_transfer.services.catalog_store import CatalogStore
from pim_transfer.services.drafts import (
    AttributeDraft,
    CategoryDraft,
    Draft,
    ProductDraft,
    VariantDraft,
)

logger = logging.getLogger(__name__)

SKU_PATTERN = re.compile(r"^[A-Za-z0-9\-_]+$")
SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
CODE_PATTERN = re.compile(r"^[a-z0-9_]+$")

PRODUCT_STATUSES = ("draft", "published", "archived")
ATTRIBUTE_TYPES = (
    "text", "textarea", "number", "decimal", "select", "multiselect", "boolean",
    "date", "datetime", "color", "file", "image", "url",
)
TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")

NUMERIC_FIELDS = ("price", "compareAtPrice", "quantity", "weight", "position")
SKU_FIELDS = ("sku", "parentSku")
BOOLEAN_FIELDS = (
    "isFeatured", "isDefault", "isActive", "isRequired", "isFilterable", "isSearchable", "isVisible",
)
VARIANT_AXES = ("color", "size", "material", "style")


@dataclass
class RowValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def extend(self, other: RowValidation) -> RowValidation:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self


def prepare_values(
    row: Mapping[str, str],
    mapping: Mapping[str, str],
    transformations: Mapping[str, Any] | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> dict[str, str]:
    """Map a raw record to target fields, then apply transformations and defaults."""
    values = mapping_engine.map_record(row, mapping)
    values = mapping_engine.apply_transformations(values, transformations)
    return mapping_engine.merge_with_defaults(values, defaults)


def split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def split_options(value: str | None) -> list[str]:
    """Attribute options are pipe separated; commas are accepted when no pipe is present."""
    if not value:
        return []
    separator = "|" if "|" in value else ","
    return [item.strip() for item in value.split(separator) if item.strip()]


def check_values(values: Mapping[str, str], entity_type: EntityType) -> RowValidation:
    """Static rules: required fields, number / enum / format checks."""
    entity_type = EntityType(entity_type)
    result = RowValidation()

    for name in mapping_engine.REQUIRED_FIELDS[entity_type]:
        if not values.get(name):
            result.errors.append(f"Missing required field: {name}")
    if entity_type is EntityType.VARIANTS and not values.get("parentSku"):
        result.errors.append("Variant requires a parent product SKU (parentSku)")

    for name in NUMERIC_FIELDS:
        raw = values.get(name)
        if not raw:
            continue
        number = mapping_engine.parse_number(raw)
        if number is None:
            result.errors.append(f"Field '{name}' must be a number, got '{raw}'")
        elif number < 0:
            result.errors.append(f"Field '{name}' must not be negative")

    for name in SKU_FIELDS:
        raw = values.get(name)
        if raw and not SKU_PATTERN.match(raw):
            result.errors.append(
                f"Field '{name}' may only contain letters, numbers, hyphens and underscores"
            )

    for name in BOOLEAN_FIELDS:
        raw = values.get(name)
        if raw and raw.lower() not in TRUE_VALUES + FALSE_VALUES:
            result.errors.append(f"Field '{name}' must be a boolean, got '{raw}'")

    status = values.get("status")
    if status and entity_type in (EntityType.PRODUCTS, EntityType.VARIANTS):
        if status.lower() not in PRODUCT_STATUSES:
            result.errors.append(
                f"Invalid status '{status}'. Allowed: {', '.join(PRODUCT_STATUSES)}"
            )

    if entity_type is EntityType.ATTRIBUTES:
        attr_type = values.get("type")
        if attr_type and attr_type.lower() not in ATTRIBUTE_TYPES:
            result.errors.append(
                f"Invalid attribute type '{attr_type}'. Allowed: {', '.join(ATTRIBUTE_TYPES)}"
            )
        code = values.get("code")
        if code and not CODE_PATTERN.match(code):
            result.errors.append(
                "Attribute code may only contain lowercase letters, numbers and underscores"
            )

    for name in ("urlKey", "slug"):
        raw = values.get(name)
        if raw and not SLUG_PATTERN.match(raw):
            result.errors.append(
                f"Field '{name}' may only contain lowercase letters, numbers and hyphens"
            )

    return result


def check_references(
    values: Mapping[str, str], entity_type: EntityType, catalog: CatalogStore
) -> RowValidation:
    """Catalog lookups: soft references warn, a missing variant parent is an error."""
    entity_type = EntityType(entity_type)
    result = RowValidation()

    if entity_type is EntityType.PRODUCTS:
        for ref in split_list(values.get("category")):
            if catalog.find_category(ref) is None:
                result.warnings.append(f"Category '{ref}' not found; it will be left unset")
        sku = values.get("sku")
        if sku and catalog.find_product(sku) is not None:
            result.warnings.append(f"Product with SKU '{sku}' already exists")

    elif entity_type is EntityType.VARIANTS:
        parent_sku = values.get("parentSku")
        if parent_sku:
            parent = catalog.find_product(parent_sku)
            if parent is None or parent.parent_id is not None:
                result.errors.append(f"Parent product '{parent_sku}' not found")
        sku = values.get("sku")
        if sku and catalog.find_product(sku) is not None:
            result.warnings.append(f"Variant with SKU '{sku}' already exists")

    elif entity_type is EntityType.CATEGORIES:
        parent = values.get("parent")
        if parent and catalog.find_category(parent) is None:
            result.warnings.append(f"Parent category '{parent}' not found; it will be left unset")
        slug = values.get("slug") or mapping_engine.slugify(values.get("name", ""))
        if slug and catalog.find_category(slug) is not None:
            result.warnings.append(f"Category '{slug}' already exists")

    else:
        code = values.get("code")
        if code and catalog.find_attribute(code) is not None:
            result.warnings.append(f"Attribute '{code}' already exists")

    return result


def validate_row(
    row: Mapping[str, str],
    mapping: Mapping[str, str],
    entity_type: EntityType,
    *,
    catalog: CatalogStore | None = None,
    transformations: Mapping[str, Any] | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> RowValidation:
    values = prepare_values(row, mapping, transformations, defaults)
    result = check_values(values, entity_type)
    if catalog is not None:
        result.extend(check_references(values, entity_type, catalog))
    return result


# -- transformation ----------------------------------------------------------

def _number(value: str | None) -> float:
    number = mapping_engine.parse_number(value) if value else None
    return number if number is not None else 0.0


def _optional_number(value: str | None) -> float | None:
    return _number(value) if value else None


def _integer(value: str | None) -> int:
    return int(_number(value))


def _boolean(value: str | None, default: bool) -> bool:
    if not value:
        return default
    return value.strip().lower() in TRUE_VALUES


def _text(value: str | None) -> str | None:
    return value or None


def build_draft(values: Mapping[str, str], entity_type: EntityType) -> Draft:
    """Coerce prepared target values into the entity's typed draft."""
    entity_type = EntityType(entity_type)
    provided = frozenset(name for name, value in values.items() if value != "")
    get = values.get

    if entity_type is EntityType.PRODUCTS:
        name = get("name", "")
        return ProductDraft(
            sku=get("sku", ""),
            name=name,
            description=_text(get("description")),
            price=_number(get("price")),
            compare_at_price=_optional_number(get("compareAtPrice")),
            quantity=_integer(get("quantity")),
            categories=split_list(get("category")),
            brand=_text(get("brand")),
            url_key=get("urlKey") or mapping_engine.slugify(name) or None,
            meta_title=_text(get("metaTitle")),
            meta_description=_text(get("metaDescription")),
            status=(get("status") or "draft").lower(),
            is_featured=_boolean(get("isFeatured"), False),
            weight=_optional_number(get("weight")),
            dimensions=_text(get("dimensions")),
            tags=split_list(get("tags")),
            provided=provided,
        )

    if entity_type is EntityType.VARIANTS:
        return VariantDraft(
            sku=get("sku", ""),
            parent_sku=_text(get("parentSku")),
            name=_text(get("name")),
            price=_number(get("price")),
            compare_at_price=_optional_number(get("compareAtPrice")),
            quantity=_integer(get("quantity")),
            barcode=_text(get("barcode")),
            weight=_optional_number(get("weight")),
            is_default=_boolean(get("isDefault"), False),
            axes={axis: get(axis) for axis in VARIANT_AXES if get(axis)},
            provided=provided,
        )

    if entity_type is EntityType.CATEGORIES:
        name = get("name", "")
        return CategoryDraft(
            name=name,
            slug=get("slug") or mapping_engine.slugify(name),
            description=_text(get("description")),
            parent=_text(get("parent")),
            position=_integer(get("position")),
            is_active=_boolean(get("isActive"), True),
            meta_title=_text(get("metaTitle")),
            meta_description=_text(get("metaDescription")),
            provided=provided,
        )

    return AttributeDraft(
        name=get("name", ""),
        code=get("code", ""),
        type=(get("type") or "text").lower(),
        group_name=_text(get("groupName")),
        is_required=_boolean(get("isRequired"), False),
        is_filterable=_boolean(get("isFilterable"), False),
        is_searchable=_boolean(get("isSearchable"), False),
        is_visible=_boolean(get("isVisible"), True),
        position=_integer(get("position")),
        options=split_options(get("options")),
        provided=provided,
    )


def transform_row(
    row: Mapping[str, str],
    mapping: Mapping[str, str],
    entity_type: EntityType,
    transformations: Mapping[str, Any] | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> Draft:
    return build_draft(prepare_values(row, mapping, transformations, defaults), entity_type)
