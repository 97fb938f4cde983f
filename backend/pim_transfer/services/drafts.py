"""Typed row drafts produced by the transformer, one per entity type.

Values here are already coerced: numbers are floats/ints (unparseable input
becomes 0), booleans are real booleans and list fields are split. ``provided``
holds the target fields the source row actually carried, so an update only
touches those columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Union

from pim_transfer.core.enums import EntityType


@dataclass
class ProductDraft:
    entity_type: ClassVar[EntityType] = EntityType.PRODUCTS

    sku: str
    name: str
    description: str | None = None
    price: float = 0.0
    compare_at_price: float | None = None
    quantity: int = 0
    categories: list[str] = field(default_factory=list)
    brand: str | None = None
    url_key: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    status: str = "draft"
    is_featured: bool = False
    weight: float | None = None
    dimensions: str | None = None
    tags: list[str] = field(default_factory=list)
    provided: frozenset[str] = frozenset()

    @property
    def natural_key(self) -> str:
        return self.sku


@dataclass
class VariantDraft:
    entity_type: ClassVar[EntityType] = EntityType.VARIANTS

    sku: str
    parent_sku: str | None = None
    name: str | None = None
    price: float = 0.0
    compare_at_price: float | None = None
    quantity: int = 0
    barcode: str | None = None
    weight: float | None = None
    is_default: bool = False
    axes: dict[str, str] = field(default_factory=dict)
    provided: frozenset[str] = frozenset()

    @property
    def natural_key(self) -> str:
        return self.sku


@dataclass
class CategoryDraft:
    entity_type: ClassVar[EntityType] = EntityType.CATEGORIES

    name: str
    slug: str
    description: str | None = None
    parent: str | None = None
    position: int = 0
    is_active: bool = True
    meta_title: str | None = None
    meta_description: str | None = None
    provided: frozenset[str] = frozenset()

    @property
    def natural_key(self) -> str:
        return self.slug


@dataclass
class AttributeDraft:
    entity_type: ClassVar[EntityType] = EntityType.ATTRIBUTES

    name: str
    code: str
    type: str = "text"
    group_name: str | None = None
    is_required: bool = False
    is_filterable: bool = False
    is_searchable: bool = False
    is_visible: bool = True
    position: int = 0
    options: list[str] = field(default_factory=list)
    provided: frozenset[str] = frozenset()

    @property
    def natural_key(self) -> str:
        return self.code


Draft = Union[ProductDraft, VariantDraft, CategoryDraft, AttributeDraft]

# Target field -> draft attribute where the names differ.
FIELD_ATTRIBUTES = {
    "compareAtPrice": "compare_at_price",
    "urlKey": "url_key",
    "metaTitle": "meta_title",
    "metaDescription": "meta_description",
    "isFeatured": "is_featured",
    "parentSku": "parent_sku",
    "isDefault": "is_default",
    "isActive": "is_active",
    "groupName": "group_name",
    "isRequired": "is_required",
    "isFilterable": "is_filterable",
    "isSearchable": "is_searchable",
    "isVisible": "is_visible",
    "category": "categories",
}


def attribute_for(target: str) -> str:
    return FIELD_ATTRIBUTES.get(target, target)
