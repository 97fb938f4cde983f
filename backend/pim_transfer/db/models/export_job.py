"""Export job rows: filters, requested fields and the produced artifact."""

import uuid

from sqlalchemy import BigInteger, Column, Integer, String, Text
from sqlalchemy.types import DateTime

from pim_transfer.db.base import Base, JSONType


class ExportJob(Base):
    __tablename__ = "export_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String(32), nullable=False, index=True)
    format = Column(String(16), nullable=False)
    status = Column(String(32), nullable=False, default="pending", index=True)
    filters = Column(JSONType, nullable=False, default=dict)
    fields = Column(JSONType, nullable=False, default=list)
    options = Column(JSONType, nullable=False, default=dict)
    total_records = Column(Integer, nullable=False, default=0)
    processed_records = Column(Integer, nullable=False, default=0)
    filename = Column(String(255))
    file_path = Column(Text)
    file_size = Column(BigInteger)
    download_url = Column(Text)
    error_message = Column(Text)
    owner_id = Column(String(64), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True), nullable=False)
