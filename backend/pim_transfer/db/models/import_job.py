"""Import job rows: source file, resolved mapping, counters and bounded errors."""

import uuid

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.types import DateTime

from pim_transfer.db.base import Base, JSONType


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String(32), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="pending", index=True)
    file_path = Column(Text, nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_format = Column(String(16), nullable=False)
    mapping = Column(JSONType, nullable=False, default=dict)
    transformations = Column(JSONType, nullable=False, default=dict)
    defaults = Column(JSONType, nullable=False, default=dict)
    options = Column(JSONType, nullable=False, default=dict)
    total_rows = Column(Integer, nullable=False, default=0)
    processed_rows = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    errors = Column(JSONType, nullable=False, default=list)
    summary = Column(JSONType)
    owner_id = Column(String(64), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
