"""Per-entity row importers returning a result value for every row."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol, Union

from pim_transfer.core.enums import EntityType
from pim_transfer.core.errors import CatalogReferenceError, ConflictError
from pim_transfer.db.models import Product
from pim_transfer.services.catalog_store import CatalogStore
from pim_transfer.services.drafts import (
    AttributeDraft,
    CategoryDraft,
    Draft,
    ProductDraft,
    VariantDraft,
)

logger = logging.getLogger(__name__)

FailureKind = Literal["validation", "reference", "conflict"]


@dataclass(frozen=True)
class RowOutcome:
    action: Literal["created", "updated", "validated"]
    key: str


@dataclass(frozen=True)
class RowFailure:
    kind: FailureKind
    message: str
    field: str | None = None


RowResult = Union[RowOutcome, RowFailure]


class RowImporter(Protocol):
    entity_type: EntityType

    def import_row(self, draft: Draft, catalog: CatalogStore, *, update_existing: bool) -> RowResult: ...


def _conflict(label: str, key: str, field: str) -> RowFailure:
    return RowFailure(
        kind="conflict",
        message=f"{label} with {field} '{key}' already exists",
        field=field,
    )


class _BaseImporter:
    entity_type: EntityType
    label = "Record"
    key_field = "key"

    def import_row(self, draft: Draft, catalog: CatalogStore, *, update_existing: bool) -> RowResult:
        try:
            return self._import(draft, catalog, update_existing)
        except CatalogReferenceError as e:
            return RowFailure(kind="reference", message=str(e), field=e.field)
        except ConflictError as e:
            return RowFailure(kind="conflict", message=str(e), field=e.field or self.key_field)

    def _import(self, draft: Draft, catalog: CatalogStore, update_existing: bool) -> RowResult:
        raise NotImplementedError


class ProductImporter(_BaseImporter):
    entity_type = EntityType.PRODUCTS
    label = "Product"
    key_field = "sku"

    def _import(self, draft: ProductDraft, catalog: CatalogStore, update_existing: bool) -> RowResult:
        existing = catalog.find_product(draft.sku)
        if existing is not None and not update_existing:
            return _conflict(self.label, draft.sku, self.key_field)

        categories = []
        for ref in draft.categories:
            category = catalog.find_category(ref)
            if category is None:
                logger.debug(f"Category '{ref}' not found for product {draft.sku}; left unset")
                continue
            categories.append(category)

        catalog.save_product(draft, existing, categories)
        return RowOutcome("updated" if existing is not None else "created", draft.sku)


class VariantImporter(_BaseImporter):
    entity_type = EntityType.VARIANTS
    label = "Variant"
    key_field = "sku"

    def _import(self, draft: VariantDraft, catalog: CatalogStore, update_existing: bool) -> RowResult:
        parent = catalog.find_product(draft.parent_sku or "")
        if parent is None or parent.parent_id is not None:
            raise CatalogReferenceError(
                f"Parent product '{draft.parent_sku}' not found", field="parentSku"
            )

        existing = catalog.find_product(draft.sku)
        if existing is not None:
            if not update_existing:
                return _conflict(self.label, draft.sku, self.key_field)
            if existing.parent_id is None:
                raise ConflictError(
                    f"SKU '{draft.sku}' belongs to a product, not a variant", field="sku"
                )

        catalog.save_variant(draft, parent, existing)
        return RowOutcome("updated" if existing is not None else "created", draft.sku)


def resolve_parent(catalog: CatalogStore, identifier: str, *, use_sku: bool) -> Product | None:
    """Find the top-level product a whole variant import attaches to."""
    identifier = identifier.strip()
    if use_sku:
        product = catalog.find_product(identifier)
    elif identifier.isdigit():
        product = catalog.get_product(int(identifier))
    else:
        product = None
    if product is None or product.parent_id is not None:
        return None
    return product


class CategoryImporter(_BaseImporter):
    entity_type = EntityType.CATEGORIES
    label = "Category"
    key_field = "slug"

    def _import(self, draft: CategoryDraft, catalog: CatalogStore, update_existing: bool) -> RowResult:
        existing = catalog.find_category(draft.slug)
        if existing is not None and existing.slug != draft.slug:
            # matched on name only; the slug itself is free
            existing = None
        if existing is not None and not update_existing:
            return _conflict(self.label, draft.slug, self.key_field)

        parent = catalog.find_category(draft.parent) if draft.parent else None
        if parent is not None and existing is not None and parent.id == existing.id:
            parent = None

        catalog.save_category(draft, parent, existing)
        return RowOutcome("updated" if existing is not None else "created", draft.slug)


class AttributeImporter(_BaseImporter):
    entity_type = EntityType.ATTRIBUTES
    label = "Attribute"
    key_field = "code"

    def _import(self, draft: AttributeDraft, catalog: CatalogStore, update_existing: bool) -> RowResult:
        existing = catalog.find_attribute(draft.code)
        if existing is not None and not update_existing:
            return _conflict(self.label, draft.code, self.key_field)

        catalog.save_attribute(draft, existing)
        return RowOutcome("updated" if existing is not None else "created", draft.code)


ROW_IMPORTERS: dict[EntityType, RowImporter] = {
    importer.entity_type: importer
    for importer in (ProductImporter(), VariantImporter(), CategoryImporter(), AttributeImporter())
}


def importer_for(entity_type: EntityType) -> RowImporter:
    return ROW_IMPORTERS[EntityType(entity_type)]
