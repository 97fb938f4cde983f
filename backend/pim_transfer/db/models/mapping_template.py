"""Reusable column mapping templates."""

import uuid

from sqlalchemy import Boolean, Column, Index, Integer, String, Text
from sqlalchemy.types import DateTime

from pim_transfer.db.base import Base, JSONType


class MappingTemplate(Base):
    __tablename__ = "mapping_templates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    entity_type = Column(String(32), nullable=False)
    mapping = Column(JSONType, nullable=False, default=dict)
    transformations = Column(JSONType)
    defaults = Column(JSONType)
    validation = Column(JSONType)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used_at = Column(DateTime(timezone=True))
    owner_id = Column(String(64))
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))

    __table_args__ = (Index("ix_mapping_templates_type_owner", entity_type, owner_id),)
