"""
Pytest fixtures for the transfer engine tests.

Every test gets a fresh SQLite database file, temp upload/export directories,
a frozen clock and an in-memory work queue, so jobs can be created through the
service and then run synchronously by draining the queue.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pim_transfer.core.clock import FrozenClock
from pim_transfer.db.session import init_db
from pim_transfer.services.catalog_store import SqlCatalogStore
from pim_transfer.services.export_builder import ExportBuilder
from pim_transfer.services.import_orchestrator import ImportOrchestrator
from pim_transfer.services.job_store import SqlJobStore
from pim_transfer.services.mapping_templates import SqlMappingTemplateStore
from pim_transfer.services.transfer_service import TransferService
from pim_transfer.storage.file_storage import LocalFileStorage
from pim_transfer.utils.memory_monitor import MemoryGuard
from pim_transfer.workers.queue import InMemoryJobQueue

from helpers import RecordingPublisher


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pim.db'}", connect_args={"check_same_thread": False}
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path / "uploads", tmp_path / "exports")


@pytest.fixture
def queue():
    return InMemoryJobQueue()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def job_store(session_factory):
    return SqlJobStore(session_factory, max_errors=100)


@pytest.fixture
def catalog_factory(session_factory, clock):
    def factory() -> SqlCatalogStore:
        return SqlCatalogStore(session_factory, clock)

    return factory


@pytest.fixture
def catalog(catalog_factory):
    store = catalog_factory()
    yield store
    store.close()


@pytest.fixture
def orchestrator(job_store, catalog_factory, storage, clock, publisher):
    return ImportOrchestrator(
        job_store=job_store,
        catalog_factory=catalog_factory,
        storage=storage,
        clock=clock,
        publisher=publisher,
        memory_guard=MemoryGuard(0, 0),
        batch_size=100,
        progress_interval=10,
    )


@pytest.fixture
def export_builder(job_store, catalog_factory, storage, clock, publisher):
    return ExportBuilder(
        job_store=job_store,
        catalog_factory=catalog_factory,
        storage=storage,
        clock=clock,
        publisher=publisher,
        memory_guard=MemoryGuard(0, 0),
        batch_size=2,
    )


@pytest.fixture
def service(
    job_store, session_factory, catalog_factory, storage, queue, clock, orchestrator, export_builder
):
    return TransferService(
        job_store=job_store,
        mapping_store=SqlMappingTemplateStore(session_factory, clock),
        catalog_factory=catalog_factory,
        storage=storage,
        queue=queue,
        clock=clock,
        orchestrator=orchestrator,
        export_builder=export_builder,
    )


@pytest.fixture
def drain(service, queue):
    """Run every queued work item, the way a worker would."""

    def run_pending() -> list:
        results = []
        for work in list(queue.pending()):
            claimed = queue.claim(work.work_id)
            if claimed is None:
                continue
            try:
                if claimed.kind == "import":
                    results.append(service.run_import(claimed))
                else:
                    results.append(service.run_export(claimed))
            finally:
                queue.ack(claimed.work_id)
        return results

    return run_pending


@pytest.fixture
def client(service):
    from pim_transfer.api.dependencies.service import get_service
    from pim_transfer.main import create_app

    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)

