"""CRUD for reusable mapping templates.

At most one template is the default per (entity type, owner); making a
template the default clears the flag on its siblings in the same transaction.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from pim_transfer.core.clock import Clock, SystemClock
from pim_transfer.core.enums import EntityType
from pim_transfer.core.errors import NotFoundError, ValidationError
from pim_transfer.db.models import MappingTemplate
from pim_transfer.services import mapping_engine
from pim_transfer.services.records import MappingTemplateRecord, Page

logger = logging.getLogger(__name__)


class MappingTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    entity_type: EntityType
    mapping: dict[str, str]
    transformations: dict[str, list[str]] | None = None
    defaults: dict[str, Any] | None = None
    validation: dict[str, Any] | None = None
    is_default: bool = False
    owner_id: str | None = None


class MappingTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    mapping: dict[str, str] | None = None
    transformations: dict[str, list[str]] | None = None
    defaults: dict[str, Any] | None = None
    validation: dict[str, Any] | None = None
    is_default: bool | None = None
    is_active: bool | None = None


class MappingTemplateFilters(BaseModel):
    entity_type: EntityType | None = None
    owner_id: str | None = None
    include_shared: bool = True
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


def _check_mapping(mapping: dict[str, str], entity_type: EntityType) -> None:
    result = mapping_engine.validate_mapping(mapping, entity_type)
    if not result.valid:
        raise ValidationError("Invalid mapping", field="mapping", errors=result.errors)


class SqlMappingTemplateStore:
    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    @staticmethod
    def _unset_defaults(session: Session, template: MappingTemplate) -> None:
        owner_clause = (
            MappingTemplate.owner_id.is_(None)
            if template.owner_id is None
            else MappingTemplate.owner_id == template.owner_id
        )
        session.execute(
            update(MappingTemplate)
            .where(
                MappingTemplate.entity_type == template.entity_type,
                owner_clause,
                MappingTemplate.id != template.id,
                MappingTemplate.is_default.is_(True),
            )
            .values(is_default=False)
        )

    def _load(self, session: Session, template_id: str) -> MappingTemplate:
        template = session.get(MappingTemplate, template_id)
        if template is None:
            raise NotFoundError(f"Mapping template {template_id} not found")
        return template

    def create(self, payload: MappingTemplateCreate) -> MappingTemplateRecord:
        _check_mapping(payload.mapping, payload.entity_type)
        with self._session_factory() as session, session.begin():
            template = MappingTemplate(
                **payload.model_dump(exclude={"entity_type"}),
                entity_type=payload.entity_type.value,
                created_at=self._clock.now(),
            )
            session.add(template)
            session.flush()
            if template.is_default:
                self._unset_defaults(session, template)
            record = MappingTemplateRecord.model_validate(template)
        logger.info(f"Created mapping template {record.id} ({record.name})")
        return record

    def get(self, template_id: str) -> MappingTemplateRecord:
        with self._session_factory() as session:
            return MappingTemplateRecord.model_validate(self._load(session, template_id))

    def list_templates(self, filters: MappingTemplateFilters) -> Page[MappingTemplateRecord]:
        stmt = select(MappingTemplate).where(MappingTemplate.is_active.is_(True))
        if filters.entity_type is not None:
            stmt = stmt.where(MappingTemplate.entity_type == filters.entity_type.value)
        if filters.owner_id is not None:
            owned = MappingTemplate.owner_id == filters.owner_id
            stmt = stmt.where(
                owned | MappingTemplate.owner_id.is_(None) if filters.include_shared else owned
            )
        with self._session_factory() as session:
            total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            rows = session.execute(
                stmt.order_by(
                    MappingTemplate.is_default.desc(),
                    MappingTemplate.usage_count.desc(),
                    MappingTemplate.created_at.desc(),
                )
                .offset((filters.page - 1) * filters.limit)
                .limit(filters.limit)
            ).scalars()
            items = [MappingTemplateRecord.model_validate(row) for row in rows]
        return Page[MappingTemplateRecord](
            items=items, total=total, page=filters.page, limit=filters.limit
        )

    def update(self, template_id: str, payload: MappingTemplateUpdate) -> MappingTemplateRecord:
        changes = payload.model_dump(exclude_unset=True)
        with self._session_factory() as session, session.begin():
            template = self._load(session, template_id)
            if "mapping" in changes and changes["mapping"] is not None:
                _check_mapping(changes["mapping"], EntityType(template.entity_type))
            for name, value in changes.items():
                if name in ("name", "mapping", "is_default", "is_active") and value is None:
                    continue
                setattr(template, name, value)
            template.updated_at = self._clock.now()
            session.flush()
            if template.is_default:
                self._unset_defaults(session, template)
            record = MappingTemplateRecord.model_validate(template)
        return record

    def delete(self, template_id: str) -> None:
        with self._session_factory() as session, session.begin():
            session.delete(self._load(session, template_id))
        logger.info(f"Deleted mapping template {template_id}")

    def record_usage(self, template_id: str) -> MappingTemplateRecord:
        """Fetch a template for a new job and bump its usage counters."""
        with self._session_factory() as session, session.begin():
            template = self._load(session, template_id)
            template.usage_count = (template.usage_count or 0) + 1
            template.last_used_at = self._clock.now()
            session.flush()
            return MappingTemplateRecord.model_validate(template)
