"""Catalog persistence collaborator used by row importers and exporters."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, Protocol

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, aliased, sessionmaker

from pim_transfer.core.clock import Clock, SystemClock
from pim_transfer.core.enums import EntityType
from pim_transfer.core.errors import ConflictError
from pim_transfer.db.models import Attribute, Category, Product
from pim_transfer.services.drafts import (
    AttributeDraft,
    CategoryDraft,
    ProductDraft,
    VariantDraft,
    attribute_for,
)
from pim_transfer.services.records import ExportFilters

logger = logging.getLogger(__name__)


class CatalogStore(Protocol):
    def find_product(self, sku: str) -> Product | None: ...

    def get_product(self, product_id: int) -> Product | None: ...

    def find_category(self, ref: str) -> Category | None: ...

    def find_attribute(self, code: str) -> Attribute | None: ...

    def save_product(
        self, draft: ProductDraft, existing: Product | None, categories: list[Category]
    ) -> Product: ...

    def save_variant(self, draft: VariantDraft, parent: Product, existing: Product | None) -> Product: ...

    def save_category(
        self, draft: CategoryDraft, parent: Category | None, existing: Category | None
    ) -> Category: ...

    def save_attribute(self, draft: AttributeDraft, existing: Attribute | None) -> Attribute: ...

    def count_records(self, entity_type: EntityType, filters: ExportFilters) -> int: ...

    def iter_records(
        self, entity_type: EntityType, filters: ExportFilters, batch_size: int
    ) -> Iterator[list[Any]]: ...

    def attribute_codes(self) -> list[str]: ...

    def close(self) -> None: ...


# Draft attributes that map straight onto same-named columns.
_PRODUCT_COLUMNS = (
    "name", "description", "price", "compare_at_price", "quantity", "brand", "url_key",
    "meta_title", "meta_description", "status", "is_featured", "weight", "dimensions", "tags",
)
_VARIANT_COLUMNS = ("name", "price", "compare_at_price", "quantity", "barcode", "weight", "is_default")
_CATEGORY_COLUMNS = (
    "name", "slug", "description", "position", "is_active", "meta_title", "meta_description",
)
_ATTRIBUTE_COLUMNS = (
    "name", "type", "group_name", "is_required", "is_filterable", "is_searchable",
    "is_visible", "position", "options",
)
_AXES = ("color", "size", "material", "style")


def _assign(target: Any, draft: Any, columns: tuple[str, ...], *, creating: bool) -> None:
    provided = {attribute_for(name) for name in draft.provided}
    for column in columns:
        if creating or column in provided:
            setattr(target, column, getattr(draft, column))


class SqlCatalogStore:
    """SQLAlchemy implementation. Each write commits on its own so one bad row
    never rolls back rows already imported."""

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session = session_factory()
        self._clock = clock or SystemClock()

    # -- lookups ---------------------------------------------------------

    def find_product(self, sku: str) -> Product | None:
        if not sku:
            return None
        stmt = select(Product).where(func.lower(Product.sku) == sku.strip().lower())
        return self._session.execute(stmt).scalars().first()

    def get_product(self, product_id: int) -> Product | None:
        return self._session.get(Product, product_id)

    def find_category(self, ref: str) -> Category | None:
        if not ref:
            return None
        ref = ref.strip().lower()
        stmt = (
            select(Category)
            .where(or_(Category.slug == ref, func.lower(Category.name) == ref))
            .order_by(Category.id)
        )
        return self._session.execute(stmt).scalars().first()

    def find_attribute(self, code: str) -> Attribute | None:
        if not code:
            return None
        stmt = select(Attribute).where(Attribute.code == code.strip())
        return self._session.execute(stmt).scalars().first()

    # -- writes ----------------------------------------------------------

    def _commit(self, instance: Any, natural_key: str) -> Any:
        self._session.add(instance)
        try:
            self._session.commit()
        except IntegrityError as e:
            self._session.rollback()
            logger.debug(f"Integrity error saving '{natural_key}': {e}")
            raise ConflictError(f"Record with key '{natural_key}' already exists") from e
        except SQLAlchemyError:
            self._session.rollback()
            raise
        return instance

    def save_product(
        self, draft: ProductDraft, existing: Product | None, categories: list[Category]
    ) -> Product:
        product = existing or Product(sku=draft.sku, created_at=self._clock.now())
        _assign(product, draft, _PRODUCT_COLUMNS, creating=existing is None)
        if existing is None or "category" in draft.provided:
            product.categories = list(categories)
        if existing is not None:
            product.updated_at = self._clock.now()
        return self._commit(product, draft.sku)

    def save_variant(self, draft: VariantDraft, parent: Product, existing: Product | None) -> Product:
        variant = existing or Product(
            sku=draft.sku,
            status=parent.status,
            brand=parent.brand,
            created_at=self._clock.now(),
        )
        _assign(variant, draft, _VARIANT_COLUMNS, creating=existing is None)
        if not variant.name:
            variant.name = f"{parent.name} - {draft.sku}"
        variant.parent_id = parent.id
        if draft.axes:
            variant.options = {**(variant.options or {}), **draft.axes}
        if existing is not None:
            variant.updated_at = self._clock.now()
        return self._commit(variant, draft.sku)

    def save_category(
        self, draft: CategoryDraft, parent: Category | None, existing: Category | None
    ) -> Category:
        category = existing or Category(created_at=self._clock.now())
        _assign(category, draft, _CATEGORY_COLUMNS, creating=existing is None)
        if existing is None or "parent" in draft.provided:
            category.parent_id = parent.id if parent is not None else None
        if existing is not None:
            category.updated_at = self._clock.now()
        return self._commit(category, draft.slug)

    def save_attribute(self, draft: AttributeDraft, existing: Attribute | None) -> Attribute:
        attribute = existing or Attribute(code=draft.code, created_at=self._clock.now())
        _assign(attribute, draft, _ATTRIBUTE_COLUMNS, creating=existing is None)
        if existing is not None:
            attribute.updated_at = self._clock.now()
        return self._commit(attribute, draft.code)

    # -- export queries --------------------------------------------------

    def _query(self, entity_type: EntityType, filters: ExportFilters) -> Select:
        if entity_type in (EntityType.PRODUCTS, EntityType.VARIANTS):
            return self._product_query(entity_type, filters)
        if entity_type is EntityType.CATEGORIES:
            stmt = select(Category)
            if filters.search:
                term = f"%{filters.search.lower()}%"
                stmt = stmt.where(
                    or_(
                        func.lower(Category.name).like(term),
                        Category.slug.like(term),
                        func.lower(Category.description).like(term),
                    )
                )
            return self._created_range(stmt, Category, filters).order_by(Category.position, Category.id)

        stmt = select(Attribute)
        if filters.search:
            term = f"%{filters.search.lower()}%"
            stmt = stmt.where(or_(func.lower(Attribute.name).like(term), Attribute.code.like(term)))
        return self._created_range(stmt, Attribute, filters).order_by(Attribute.position, Attribute.id)

    @staticmethod
    def _created_range(stmt: Select, model: Any, filters: ExportFilters) -> Select:
        if filters.created_from is not None:
            stmt = stmt.where(model.created_at >= filters.created_from)
        if filters.created_to is not None:
            stmt = stmt.where(model.created_at <= filters.created_to)
        return stmt

    def _product_query(self, entity_type: EntityType, filters: ExportFilters) -> Select:
        stmt = select(Product)
        if entity_type is EntityType.VARIANTS:
            stmt = stmt.where(Product.parent_id.is_not(None))
            if filters.parent:
                ref = filters.parent.strip()
                parent = aliased(Product)
                match = func.lower(parent.sku) == ref.lower()
                if ref.isdigit():
                    match = or_(match, parent.id == int(ref))
                stmt = stmt.join(parent, Product.parent_id == parent.id).where(match)
        else:
            stmt = stmt.where(Product.parent_id.is_(None))

        if filters.status:
            stmt = stmt.where(Product.status.in_([s.lower() for s in filters.status]))
        if filters.brands and entity_type is EntityType.PRODUCTS:
            stmt = stmt.where(func.lower(Product.brand).in_([b.lower() for b in filters.brands]))
        if filters.categories and entity_type is EntityType.PRODUCTS:
            refs = [c.lower() for c in filters.categories]
            stmt = stmt.where(
                Product.categories.any(
                    or_(Category.slug.in_(refs), func.lower(Category.name).in_(refs))
                )
            )
        if filters.price_min is not None:
            stmt = stmt.where(Product.price >= filters.price_min)
        if filters.price_max is not None:
            stmt = stmt.where(Product.price <= filters.price_max)
        if filters.stock_min is not None:
            stmt = stmt.where(Product.quantity >= filters.stock_min)
        if filters.stock_max is not None:
            stmt = stmt.where(Product.quantity <= filters.stock_max)
        if filters.search:
            term = f"%{filters.search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Product.name).like(term),
                    func.lower(Product.sku).like(term),
                    func.lower(Product.description).like(term),
                )
            )
        return self._created_range(stmt, Product, filters).order_by(Product.id)

    def count_records(self, entity_type: EntityType, filters: ExportFilters) -> int:
        subquery = self._query(EntityType(entity_type), filters).order_by(None).subquery()
        return self._session.execute(select(func.count()).select_from(subquery)).scalar_one()

    def iter_records(
        self, entity_type: EntityType, filters: ExportFilters, batch_size: int
    ) -> Iterator[list[Any]]:
        """Yield records in id-stable pages of ``batch_size``."""
        stmt = self._query(EntityType(entity_type), filters)
        offset = 0
        while True:
            batch = list(
                self._session.execute(stmt.limit(batch_size).offset(offset)).scalars().unique()
            )
            if not batch:
                return
            yield batch
            if len(batch) < batch_size:
                return
            offset += batch_size
            self._session.expunge_all()

    def attribute_codes(self) -> list[str]:
        stmt = select(Attribute.code).order_by(Attribute.position, Attribute.code)
        return list(self._session.execute(stmt).scalars())

    def close(self) -> None:
        self._session.close()
