"""End-to-end import job tests: create through the service, run via the queue."""

import pytest

from pim_transfer.core.enums import EntityType, JobStatus
from pim_transfer.core.errors import JobStateError, NotFoundError, ValidationError
from pim_transfer.services.import_orchestrator import ImportOrchestrator
from pim_transfer.services.importers import ROW_IMPORTERS, ProductImporter
from pim_transfer.services.mapping_templates import MappingTemplateCreate
from pim_transfer.services.records import ImportOptions
from pim_transfer.utils.memory_monitor import MemoryGuard

from helpers import PRODUCT_MAPPING, RecordingPublisher, csv_upload, product_rows


def _uploads_left(storage):
    return list(storage.uploads_dir.glob("*")) if storage.uploads_dir.exists() else []


def test_batches_of_five_over_twelve_rows(service, publisher, drain, queue):
    job = service.create_import_job(csv_upload(product_rows(12)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    service.process_import_job(job.id, batch_size=5)

    assert len(queue.pending("import")) == 1
    [finished] = drain()

    assert finished.status is JobStatus.COMPLETED
    assert finished.processed_rows == 12
    assert finished.success_count == 12
    assert finished.summary.created == 12
    assert publisher.processed_for(job.id)[:3] == [5, 10, 12]


def test_progress_never_decreases_or_exceeds_total(service, publisher, drain):
    job = service.create_import_job(csv_upload(product_rows(37)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    drain()

    seen = publisher.processed_for(job.id)
    assert seen == sorted(seen)
    assert max(seen) == 37
    assert service.get_import_job(job.id).processed_rows == 37


def test_bad_row_does_not_block_later_rows(service, drain, catalog):
    rows = product_rows(5)
    rows[2][2] = "not-a-price"
    job = service.create_import_job(csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING)

    [finished] = drain()

    assert finished.status is JobStatus.COMPLETED
    assert finished.success_count == 4
    assert finished.error_count == 1
    [error] = finished.errors
    assert error.row == 3
    assert "Field 'price' must be a number" in error.message
    assert error.data["SKU Code"] == "SKU-002"
    assert catalog.find_product("SKU-005") is not None


def test_existing_sku_is_a_conflict_unless_updating(service, drain, catalog):
    service.create_import_job(csv_upload(product_rows(2)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    drain()

    rows = product_rows(3)
    rows[1][0] = "Renamed Product"
    again = service.create_import_job(csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING)
    [conflicted] = drain()

    assert conflicted.status is JobStatus.COMPLETED
    assert conflicted.error_count == 2
    assert conflicted.success_count == 1
    assert conflicted.errors[0].message == "Product with sku 'SKU-001' already exists"
    assert conflicted.errors[0].field == "sku"

    updating = service.create_import_job(
        csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING, ImportOptions(update_existing=True)
    )
    [updated] = drain()

    assert updated.summary.updated == 3
    assert updated.error_count == 0
    assert catalog.find_product("SKU-001").name == "Renamed Product"
    assert again.id != updating.id


def test_start_row_counts_skipped_rows(service, drain):
    job = service.create_import_job(csv_upload(product_rows(6)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    service.process_import_job(job.id, start_row=4)

    [finished] = drain()

    assert finished.processed_rows == 6
    assert finished.skip_count == 4
    assert finished.success_count == 2
    assert finished.summary.skipped == 4


def test_non_finite_stock_fails_only_its_row(service, drain):
    rows = product_rows(5)
    rows[4][3] = "inf"
    job = service.create_import_job(csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING)

    [finished] = drain()

    assert finished.status is JobStatus.COMPLETED
    assert finished.success_count == 4
    assert finished.error_count == 1
    assert finished.errors[0].row == 5
    assert "Field 'quantity' must be a number" in finished.errors[0].message
    assert job.total_rows == 5


def test_rows_missing_sku_are_reported_with_file_row_numbers(service, drain):
    rows = product_rows(10)
    rows[3][1] = ""
    rows[7][1] = ""

    report = service.validate_import(csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING)

    assert report.total_rows == 10
    assert report.valid_rows == 8
    assert report.invalid_rows == 2
    assert [issue.row for issue in report.errors] == [4, 8]
    assert all("Missing required field: sku" in issue.errors for issue in report.errors)

    service.create_import_job(csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING)
    [finished] = drain()

    assert finished.total_rows == 10
    assert finished.success_count == 8
    assert finished.error_count == 2
    assert [error.row for error in finished.errors] == [4, 8]


def test_missing_file_fails_the_job_with_row_zero_error(service, storage, drain):
    job = service.create_import_job(csv_upload(product_rows(3)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    storage.delete(job.file_path)

    [failed] = drain()

    assert failed.status is JobStatus.FAILED
    assert len(failed.errors) == 1
    assert failed.errors[0].row == 0
    assert failed.errors[0].message.startswith("Job failed:")


def test_memory_limit_is_a_job_level_failure(service, job_store, catalog_factory, storage, clock):
    job = service.create_import_job(csv_upload(product_rows(3)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    orchestrator = ImportOrchestrator(
        job_store=job_store,
        catalog_factory=catalog_factory,
        storage=storage,
        clock=clock,
        publisher=RecordingPublisher(),
        memory_guard=MemoryGuard(0, 0.001),
    )

    failed = orchestrator.run(job.id)

    assert failed.status is JobStatus.FAILED
    assert "memory limit" in failed.errors[0].message


def test_job_failure_keeps_progress_and_row_errors(service, job_store, catalog_factory, storage, clock):
    class FlakyImporter(ProductImporter):
        def import_row(self, draft, catalog, *, update_existing):
            if draft.sku == "SKU-003":
                raise RuntimeError("catalog connection lost")
            return super().import_row(draft, catalog, update_existing=update_existing)

    rows = product_rows(4)
    rows[2][0] = ""
    job = service.create_import_job(csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING)
    orchestrator = ImportOrchestrator(
        job_store=job_store,
        catalog_factory=catalog_factory,
        storage=storage,
        clock=clock,
        publisher=RecordingPublisher(),
        memory_guard=MemoryGuard(0, 0),
        importers={**ROW_IMPORTERS, EntityType.PRODUCTS: FlakyImporter()},
    )

    failed = orchestrator.run(job.id)

    assert failed.status is JobStatus.FAILED
    assert failed.processed_rows == 2
    assert failed.success_count == 1
    assert failed.error_count == 1
    assert [error.row for error in failed.errors] == [0, 3]
    assert failed.errors[0].message == "Job failed: catalog connection lost"
    assert failed.summary.created == 1


def test_error_list_is_capped_but_counts_are_not(service, drain):
    rows = [["Product Name", "SKU Code"]] + [["", f"SKU-{i}"] for i in range(105)]
    job = service.create_import_job(
        csv_upload(rows), EntityType.PRODUCTS, {"Product Name": "name", "SKU Code": "sku"}
    )

    [finished] = drain()

    assert finished.error_count == 105
    assert len(finished.errors) == 100
    assert finished.status is JobStatus.COMPLETED
    assert job.total_rows == 105


def test_cancel_takes_effect_at_the_next_batch_boundary(
    service, job_store, catalog_factory, storage, clock, catalog
):
    class CancellingPublisher(RecordingPublisher):
        def publish(self, kind, job_id, **snapshot):
            super().publish(kind, job_id, **snapshot)
            if len(self.events) == 1:
                service.cancel_import_job(job_id)

    job = service.create_import_job(csv_upload(product_rows(12)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    orchestrator = ImportOrchestrator(
        job_store=job_store,
        catalog_factory=catalog_factory,
        storage=storage,
        clock=clock,
        publisher=CancellingPublisher(),
        memory_guard=MemoryGuard(0, 0),
        batch_size=5,
    )

    finished = orchestrator.run(job.id)

    assert finished.status is JobStatus.CANCELLED
    assert finished.processed_rows == 5
    # rows written before the cancel was observed are kept
    assert catalog.find_product("SKU-010") is not None
    assert catalog.find_product("SKU-011") is None
    assert _uploads_left(storage) == []


def test_state_legality(service, job_store, clock, drain):
    job = service.create_import_job(csv_upload(product_rows(1)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    job_store.claim_import_job(job.id, clock.now())

    with pytest.raises(JobStateError) as processing:
        service.process_import_job(job.id)
    assert processing.value.current_status == "processing"

    done = service.create_import_job(csv_upload(product_rows(1, start=5)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    service.cancel_import_job(job.id)
    drain()
    assert service.get_import_job(done.id).status is JobStatus.COMPLETED

    with pytest.raises(JobStateError) as completed:
        service.cancel_import_job(done.id)
    assert completed.value.current_status == "completed"

    with pytest.raises(NotFoundError):
        service.get_import_job("missing")


def test_redelivered_work_is_rejected(service, queue, drain):
    job = service.create_import_job(csv_upload(product_rows(2)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    [work] = queue.pending("import")
    drain()

    with pytest.raises(JobStateError):
        service.run_import(work)
    assert service.get_import_job(job.id).success_count == 2


def test_work_stays_queued_until_acknowledged(service, queue):
    job = service.create_import_job(csv_upload(product_rows(2)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    [work] = queue.pending("import")

    claimed = queue.claim(work.work_id)
    assert claimed == work
    assert queue.pending("import") == [work]
    service.run_import(claimed)

    # the worker died before acknowledging: the redelivery is rejected by the job claim
    with pytest.raises(JobStateError):
        service.run_import(queue.claim(work.work_id))

    queue.ack(work.work_id)
    assert queue.pending() == []
    assert queue.claim(work.work_id) is None
    assert service.get_import_job(job.id).success_count == 2


def test_cancel_pending_job_withdraws_work_and_upload(service, queue, storage):
    job = service.create_import_job(csv_upload(product_rows(2)), EntityType.PRODUCTS, PRODUCT_MAPPING)

    cancelled = service.cancel_import_job(job.id)

    assert cancelled.status is JobStatus.CANCELLED
    assert queue.pending() == []
    assert _uploads_left(storage) == []


def test_validate_only_job_is_not_queued_and_never_writes(service, queue, drain, catalog):
    rows = product_rows(3)
    rows[3][1] = ""
    job = service.create_import_job(
        csv_upload(rows), EntityType.PRODUCTS, PRODUCT_MAPPING, ImportOptions(validate_only=True)
    )
    assert queue.pending() == []

    service.process_import_job(job.id)
    [finished] = drain()

    assert finished.status is JobStatus.COMPLETED
    assert finished.success_count == 2
    assert finished.error_count == 1
    assert finished.summary.created == 0
    assert catalog.find_product("SKU-001") is None


def test_invalid_mapping_persists_nothing(service, storage, queue):
    with pytest.raises(ValidationError) as missing:
        service.create_import_job(
            csv_upload(product_rows(2)), EntityType.PRODUCTS, {"Product Name": "name"}
        )
    assert "Required field 'sku' is not mapped" in missing.value.errors

    with pytest.raises(ValidationError):
        service.create_import_job(
            csv_upload(product_rows(2)), EntityType.PRODUCTS, {"Nope": "name", "SKU Code": "sku"}
        )

    assert service.list_import_jobs().total == 0
    assert queue.pending() == []
    assert _uploads_left(storage) == []


def test_suggested_mapping_is_used_when_none_given(service, drain):
    job = service.create_import_job(csv_upload(product_rows(2)), EntityType.PRODUCTS)

    assert job.mapping == PRODUCT_MAPPING
    [finished] = drain()
    assert finished.success_count == 2


def test_mapping_template_supplies_mapping_and_defaults(service, drain, catalog):
    template = service.create_mapping(
        MappingTemplateCreate(
            name="Supplier feed",
            entity_type=EntityType.PRODUCTS,
            mapping=PRODUCT_MAPPING,
            transformations={"sku": ["lowercase"]},
            defaults={"status": "published"},
        )
    )

    job = service.create_import_job(
        csv_upload(product_rows(1)),
        EntityType.PRODUCTS,
        options=ImportOptions(mapping_id=template.id),
    )
    drain()

    assert job.mapping == PRODUCT_MAPPING
    assert job.defaults == {"status": "published"}
    assert catalog.find_product("sku-001").status == "published"
    assert catalog.find_product("sku-001").sku == "sku-001"
    assert service.get_mapping(template.id).usage_count == 1


def test_variants_need_an_existing_parent(service, drain, catalog):
    service.create_import_job(csv_upload(product_rows(1)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    drain()

    rows = [
        ["Parent SKU", "Variant SKU", "Colour", "Size"],
        ["SKU-001", "SKU-001-RED-M", "Red", "M"],
        ["GHOST", "GHOST-1", "Blue", "L"],
    ]
    job = service.create_import_job(csv_upload(rows), EntityType.VARIANTS)
    assert job.mapping == {
        "Parent SKU": "parentSku",
        "Variant SKU": "sku",
        "Colour": "color",
        "Size": "size",
    }
    [finished] = drain()

    assert finished.success_count == 1
    assert finished.errors[0].message == "Parent product 'GHOST' not found"
    assert finished.errors[0].field == "parentSku"
    variant = catalog.find_product("SKU-001-RED-M")
    assert variant.options == {"color": "Red", "size": "M"}
    assert variant.parent.sku == "SKU-001"


def test_categories_resolve_parents_and_products_link_categories(service, drain, catalog):
    categories = [
        ["name", "slug", "parent"],
        ["Apparel", "", ""],
        ["Shirts", "", "apparel"],
    ]
    service.create_import_job(csv_upload(categories), EntityType.CATEGORIES)
    drain()
    products = [["name", "sku", "category"], ["Tee", "TEE-1", "\"Shirts, Missing\""]]
    service.create_import_job(csv_upload(products), EntityType.PRODUCTS)
    drain()

    shirts = catalog.find_category("shirts")
    assert shirts.parent.slug == "apparel"
    assert [c.slug for c in catalog.find_product("TEE-1").categories] == ["shirts"]


VARIANT_ROWS = [["Variant SKU", "Colour"], ["SKU-001-RED", "Red"], ["SKU-001-BLUE", "Blue"]]
VARIANT_MAPPING = {"Variant SKU": "sku", "Colour": "color"}


@pytest.mark.parametrize("use_sku", [False, True])
def test_variant_import_attaches_rows_to_the_job_parent(service, drain, catalog, use_sku):
    service.create_import_job(csv_upload(product_rows(1)), EntityType.PRODUCTS, PRODUCT_MAPPING)
    drain()
    parent = catalog.find_product("SKU-001")
    identifier = "SKU-001" if use_sku else str(parent.id)

    service.create_import_job(
        csv_upload(VARIANT_ROWS),
        EntityType.VARIANTS,
        VARIANT_MAPPING,
        ImportOptions(product_identifier=identifier, use_sku=use_sku),
    )
    [finished] = drain()

    assert finished.status is JobStatus.COMPLETED
    assert finished.success_count == 2
    assert catalog.find_product("SKU-001-RED").parent.sku == "SKU-001"
    assert catalog.find_product("SKU-001-BLUE").options == {"color": "Blue"}


def test_missing_job_parent_fails_the_variant_import(service, drain, catalog):
    options = ImportOptions(product_identifier="GHOST", use_sku=True)

    report = service.validate_import(
        csv_upload(VARIANT_ROWS), EntityType.VARIANTS, VARIANT_MAPPING, options
    )
    assert not report.valid
    assert report.mapping_errors == ["Parent product 'GHOST' not found"]

    service.create_import_job(csv_upload(VARIANT_ROWS), EntityType.VARIANTS, VARIANT_MAPPING, options)
    [failed] = drain()

    assert failed.status is JobStatus.FAILED
    assert failed.processed_rows == 0
    assert failed.errors[0].row == 0
    assert failed.errors[0].message == "Job failed: Parent product 'GHOST' not found"
    assert catalog.find_product("SKU-001-RED") is None
