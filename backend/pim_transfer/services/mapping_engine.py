"""Column mapping: synonym dictionary, fuzzy suggestions, mapping validation.

Headers and synonyms are compared in normalized form (lowercase, alphanumerics
only). Target fields are scanned in declaration order, so the first target whose
synonyms contain (or are contained in) the header wins. Headers with no
containment match fall back to Levenshtein similarity against every synonym.
"""

from __future__ import annotations

import html
import logging
import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pim_transfer.core.enums import EntityType

logger = logging.getLogger(__name__)

FUZZY_THRESHOLD = 0.7

_QTY = ["quantity", "qty", "stock", "inventory", "available", "onhand"]
_WEIGHT = ["weight", "shippingweight", "wt"]
_COMPARE = ["compare", "msrp", "rrp", "original"]
_META_TITLE = ["metatitle", "seotitle", "pagetitle"]
_META_DESCRIPTION = ["meta", "seo"]

FIELD_SYNONYMS: dict[EntityType, dict[str, list[str]]] = {
    EntityType.PRODUCTS: {
        "sku": ["sku", "code", "partnumber", "partno", "mpn"],
        "category": ["category", "categories", "department", "collection"],
        "brand": ["brand", "manufacturer", "vendor", "make"],
        "name": ["name", "productname", "producttitle", "itemtitle"],
        "metaTitle": _META_TITLE,
        "metaDescription": _META_DESCRIPTION,
        "description": ["description", "desc", "details", "longdescription", "body"],
        "compareAtPrice": _COMPARE,
        "price": ["price", "cost", "amount", "sellingprice", "retailprice", "unitprice"],
        "quantity": _QTY,
        "urlKey": ["urlkey", "url", "slug", "permalink", "handle"],
        "status": ["status", "state", "visibility", "published"],
        "isFeatured": ["featured", "isfeatured", "highlight", "promoted"],
        "weight": _WEIGHT,
        "dimensions": ["dimensions", "measurements", "size"],
        "tags": ["tags", "keywords", "labels"],
    },
    EntityType.VARIANTS: {
        "parentSku": ["parent", "master", "product"],
        "barcode": ["barcode", "upc", "ean", "gtin", "isbn"],
        "sku": ["sku", "variantsku", "childsku", "code"],
        "name": ["name", "variantname", "title", "optionname"],
        "compareAtPrice": _COMPARE,
        "price": ["price", "variantprice", "cost", "amount"],
        "quantity": _QTY,
        "color": ["color", "colour"],
        "size": ["size", "variantsize"],
        "material": ["material", "fabric", "composition"],
        "style": ["style", "pattern"],
        "weight": _WEIGHT,
        "isDefault": ["default", "isdefault", "primary", "main"],
    },
    EntityType.CATEGORIES: {
        "parent": ["parent"],
        "name": ["name", "categoryname", "category", "categorytitle"],
        "metaTitle": _META_TITLE,
        "metaDescription": _META_DESCRIPTION,
        "slug": ["slug", "urlkey", "url", "permalink", "handle"],
        "description": ["description", "desc", "details"],
        "position": ["position", "order", "sortorder", "sequence", "sort"],
        "isActive": ["active", "isactive", "enabled", "status", "visible"],
    },
    EntityType.ATTRIBUTES: {
        "groupName": ["group", "section", "attributegroup"],
        "name": ["name", "attributename", "label"],
        "code": ["code", "attributecode", "key", "identifier"],
        "type": ["type", "datatype", "fieldtype", "inputtype"],
        "isRequired": ["required", "isrequired", "mandatory"],
        "isFilterable": ["filterable", "isfilterable", "filter"],
        "isSearchable": ["searchable", "issearchable", "search"],
        "isVisible": ["visible", "isvisible", "display", "show"],
        "position": ["position", "order", "sortorder", "sequence"],
        "options": ["options", "values", "choices"],
    },
}

REQUIRED_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.PRODUCTS: ("name", "sku"),
    EntityType.VARIANTS: ("sku",),
    EntityType.CATEGORIES: ("name",),
    EntityType.ATTRIBUTES: ("name", "code"),
}

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass
class MappingSuggestion:
    confidence: float
    mapping: dict[str, str]
    unmapped_source: list[str] = field(default_factory=list)
    unmapped_target_required: list[str] = field(default_factory=list)


@dataclass
class MappingValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


def normalize_header(header: str) -> str:
    return _NON_ALNUM.sub("", (header or "").lower())


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein(a, b)) / longer


def _match_header(normalized: str, synonyms: Mapping[str, list[str]]) -> str | None:
    for target, candidates in synonyms.items():
        for synonym in candidates:
            if synonym in normalized or normalized in synonym:
                return target

    best_target: str | None = None
    best_score = 0.0
    for target, candidates in synonyms.items():
        for synonym in candidates:
            score = similarity(normalized, synonym)
            if score > best_score:
                best_target, best_score = target, score
    if best_score > FUZZY_THRESHOLD:
        return best_target
    return None


def suggest_mapping(headers: Iterable[str], entity_type: EntityType) -> MappingSuggestion:
    """Suggest a source column -> target field mapping for the given headers."""
    entity_type = EntityType(entity_type)
    synonyms = FIELD_SYNONYMS[entity_type]
    headers = list(headers)

    mapping: dict[str, str] = {}
    unmapped: list[str] = []
    for header in headers:
        normalized = normalize_header(header)
        target = _match_header(normalized, synonyms) if normalized else None
        if target is None:
            unmapped.append(header)
        else:
            mapping[header] = target

    mapped_targets = set(mapping.values())
    missing_required = [f for f in REQUIRED_FIELDS[entity_type] if f not in mapped_targets]
    confidence = len(mapping) / len(headers) if headers else 0.0

    logger.debug(
        f"Suggested {len(mapping)}/{len(headers)} column(s) for {entity_type.value}"
    )
    return MappingSuggestion(
        confidence=confidence,
        mapping=mapping,
        unmapped_source=unmapped,
        unmapped_target_required=missing_required,
    )


def validate_mapping(mapping: Mapping[str, str], entity_type: EntityType) -> MappingValidation:
    """Check required coverage, unknown targets and duplicate targets."""
    entity_type = EntityType(entity_type)
    allowed = FIELD_SYNONYMS[entity_type]
    targets = list(mapping.values())
    errors: list[str] = []

    for required in REQUIRED_FIELDS[entity_type]:
        if required not in targets:
            errors.append(f"Required field '{required}' is not mapped")

    for source, target in mapping.items():
        if target not in allowed:
            errors.append(f"Unknown target field '{target}' for column '{source}'")

    for target, count in Counter(targets).items():
        if count > 1:
            errors.append(f"Field '{target}' is mapped from {count} columns")

    return MappingValidation(valid=not errors, errors=errors)


def map_record(row: Mapping[str, str], mapping: Mapping[str, str]) -> dict[str, str]:
    """Project a raw record onto target fields (values trimmed)."""
    mapped: dict[str, str] = {}
    for source, target in mapping.items():
        value = row.get(source)
        if value is None:
            continue
        mapped[target] = value.strip()
    return mapped


def merge_with_defaults(values: Mapping[str, Any], defaults: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = dict(values)
    for name, default in (defaults or {}).items():
        if merged.get(name) in (None, ""):
            merged[name] = "" if default is None else str(default)
    return merged


# -- value transformations ---------------------------------------------------

_TAG = re.compile(r"<[^>]*>")
_SPECIAL = re.compile(r"[^a-zA-Z0-9\s]")
_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%Y/%m/%d", "%d.%m.%Y")


def parse_number(value: str) -> float | None:
    """Parse a finite number; "nan", "inf" and overflowing input count as unparseable."""
    try:
        number = float(str(value).strip().replace(",", ""))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _format_number(number: float) -> str:
    return str(int(number)) if number.is_integer() else str(number)


def _to_date(value: str) -> str:
    text = value.strip()
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return text


def slugify(value: str) -> str:
    return _SLUG_SEPARATORS.sub("-", value.lower()).strip("-")


TRANSFORMATIONS = {
    "uppercase": str.upper,
    "lowercase": str.lower,
    "trim": str.strip,
    "number": lambda v: _format_number(parse_number(v) or 0.0),
    "integer": lambda v: str(int(parse_number(v) or 0)),
    "boolean": lambda v: "true" if v.strip().lower() in ("true", "1", "yes", "on") else "false",
    "date": _to_date,
    "slug": slugify,
    "remove_html": lambda v: html.unescape(_TAG.sub("", v)),
    "remove_special_chars": lambda v: _SPECIAL.sub("", v),
}


def transform_value(value: str, transformation: str) -> str:
    """Apply one named transformation; unknown names leave the value unchanged."""
    func = TRANSFORMATIONS.get(transformation)
    if func is None:
        logger.debug(f"Ignoring unknown transformation '{transformation}'")
        return value
    return func(value)


def apply_transformations(
    values: Mapping[str, str], transformations: Mapping[str, Any] | None
) -> dict[str, str]:
    result = dict(values)
    for target, names in (transformations or {}).items():
        if target not in result:
            continue
        if isinstance(names, str):
            names = [names]
        for name in names:
            result[target] = transform_value(result[target], name)
    return result
