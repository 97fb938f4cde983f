"""Catalog records the transfer engine reads and writes.

Variants live in the products table and point at their parent through
``parent_id``; their option axes (color, size, material, style) are kept in
``options``.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import DateTime

from pim_transfer.db.base import Base, JSONType

product_categories = Table(
    "product_categories",
    Base.metadata,
    Column("product_id", ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    description = Column(Text)
    parent_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))
    position = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    meta_title = Column(String(255))
    meta_description = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))

    parent = relationship("Category", remote_side=[id])


class Attribute(Base):
    __tablename__ = "attributes"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    code = Column(String(128), nullable=False, unique=True)
    type = Column(String(32), nullable=False, default="text")
    group_name = Column(String(255))
    is_required = Column(Boolean, nullable=False, default=False)
    is_filterable = Column(Boolean, nullable=False, default=False)
    is_searchable = Column(Boolean, nullable=False, default=False)
    is_visible = Column(Boolean, nullable=False, default=True)
    position = Column(Integer, nullable=False, default=0)
    options = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    sku = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    price = Column(Float, nullable=False, default=0)
    compare_at_price = Column(Float)
    quantity = Column(Integer, nullable=False, default=0)
    brand = Column(String(255), index=True)
    url_key = Column(String(255))
    status = Column(String(16), nullable=False, default="draft", index=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    weight = Column(Float)
    dimensions = Column(String(255))
    tags = Column(JSONType, nullable=False, default=list)
    meta_title = Column(String(255))
    meta_description = Column(Text)
    parent_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True)
    barcode = Column(String(64))
    is_default = Column(Boolean, nullable=False, default=False)
    options = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True))

    categories = relationship("Category", secondary=product_categories, lazy="selectin")
    variants = relationship(
        "Product", back_populates="parent", lazy="selectin", order_by="Product.id"
    )
    parent = relationship("Product", back_populates="variants", remote_side=[id])
    media = relationship(
        "ProductMedia", lazy="selectin", order_by="ProductMedia.position"
    )
    attribute_values = relationship("ProductAttributeValue", lazy="selectin")

    __table_args__ = (Index("ix_products_sku_lower", func.lower(sku), unique=True),)


class ProductMedia(Base):
    __tablename__ = "product_media"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    is_primary = Column(Boolean, nullable=False, default=False)


class ProductAttributeValue(Base):
    __tablename__ = "product_attribute_values"

    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    attribute_id = Column(Integer, ForeignKey("attributes.id", ondelete="CASCADE"), primary_key=True)
    value = Column(Text)

    attribute = relationship("Attribute", lazy="joined")
