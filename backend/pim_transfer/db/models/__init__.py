"""Database models package."""
from pim_transfer.db.models.catalog import (
    Attribute,
    Category,
    Product,
    ProductAttributeValue,
    ProductMedia,
    product_categories,
)
from pim_transfer.db.models.export_job import ExportJob
from pim_transfer.db.models.import_job import ImportJob
from pim_transfer.db.models.mapping_template import MappingTemplate

__all__ = [
    "Attribute",
    "Category",
    "ExportJob",
    "ImportJob",
    "MappingTemplate",
    "Product",
    "ProductAttributeValue",
    "ProductMedia",
    "product_categories",
]
