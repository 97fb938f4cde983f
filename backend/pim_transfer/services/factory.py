"""Wire the transfer service from settings (API process and Celery workers)."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pim_transfer.core.clock import SystemClock
from pim_transfer.core.config import Settings, get_settings
from pim_transfer.core.enums import EntityType
from pim_transfer.db.session import get_session_factory
from pim_transfer.services.catalog_store import SqlCatalogStore
from pim_transfer.services.export_builder import ExportBuilder
from pim_transfer.services.import_orchestrator import ImportOrchestrator
from pim_transfer.services.job_store import SqlJobStore
from pim_transfer.services.mapping_templates import SqlMappingTemplateStore
from pim_transfer.services.progress_tracker import RedisProgressPublisher
from pim_transfer.services.transfer_service import TransferService
from pim_transfer.storage.file_storage import LocalFileStorage
from pim_transfer.utils.memory_monitor import MemoryGuard
from pim_transfer.utils.redis_client import create_redis_client
from pim_transfer.workers.queue import CeleryJobQueue


def build_transfer_service(settings: Settings) -> TransferService:
    from pim_transfer.workers.celery_app import celery_app

    session_factory = get_session_factory()
    clock = SystemClock()
    storage = LocalFileStorage(settings.uploads_dir, settings.exports_dir)
    job_store = SqlJobStore(session_factory, max_errors=settings.max_job_errors)
    publisher = RedisProgressPublisher(
        settings.redis_url, ttl=timedelta(seconds=settings.progress_ttl_seconds)
    )
    guard = MemoryGuard(settings.worker_memory_baseline_mb, settings.worker_memory_limit_mb)

    def catalog_factory() -> SqlCatalogStore:
        return SqlCatalogStore(session_factory, clock)

    queue = CeleryJobQueue(
        celery_app,
        create_redis_client(settings.redis_url, decode_responses=True),
        {"import": settings.import_queue, "export": settings.export_queue},
    )
    return TransferService(
        job_store=job_store,
        mapping_store=SqlMappingTemplateStore(session_factory, clock),
        catalog_factory=catalog_factory,
        storage=storage,
        queue=queue,
        clock=clock,
        orchestrator=ImportOrchestrator(
            job_store=job_store,
            catalog_factory=catalog_factory,
            storage=storage,
            clock=clock,
            publisher=publisher,
            memory_guard=guard,
            batch_size=settings.import_batch_size,
            progress_interval=settings.progress_interval,
            batch_sizes={EntityType.VARIANTS: settings.variant_batch_size},
        ),
        export_builder=ExportBuilder(
            job_store=job_store,
            catalog_factory=catalog_factory,
            storage=storage,
            clock=clock,
            publisher=publisher,
            memory_guard=guard,
            batch_size=settings.export_batch_size,
            download_base_url=settings.download_base_url,
        ),
        export_ttl=timedelta(days=settings.export_ttl_days),
        max_errors=settings.max_job_errors,
        preview_rows=settings.preview_rows,
    )


@lru_cache
def get_transfer_service() -> TransferService:
    """Process-wide service; API dependencies and Celery tasks share it."""
    return build_transfer_service(get_settings())
