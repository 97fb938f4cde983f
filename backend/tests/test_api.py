"""HTTP surface tests through FastAPI's TestClient."""

import json

from helpers import PRODUCT_MAPPING, csv_bytes, product_rows


def _upload(client, rows, *, mapping=PRODUCT_MAPPING, filename="products.csv", **form):
    data = {"entity_type": "products", **form}
    if mapping is not None:
        data["mapping"] = json.dumps(mapping)
    return client.post(
        "/api/imports/",
        files={"file": (filename, csv_bytes(rows), "text/csv")},
        data=data,
    )


def test_liveness(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "pim-transfer-api"}


def test_upload_then_poll_then_process(client, drain):
    created = _upload(client, product_rows(3))

    assert created.status_code == 202
    body = created.json()
    assert body["status"] == "pending"
    assert body["total_rows"] == 3
    assert body["progress"] == 0.0
    assert "file_path" not in body

    drain()
    polled = client.get(f"/api/imports/{body['id']}").json()
    assert polled["status"] == "completed"
    assert polled["success_count"] == 3
    assert polled["summary"]["created"] == 3
    assert polled["progress"] == 1.0


def test_upload_without_mapping_uses_suggestion(client):
    response = _upload(client, [["Name", "SKU"], ["Mug", "MUG-1"]], mapping=None)

    assert response.status_code == 202
    assert response.json()["mapping"] == {"Name": "name", "SKU": "sku"}


def test_unsupported_file_type_is_bad_request(client):
    response = _upload(client, product_rows(1), filename="catalog.pdf")

    assert response.status_code == 400
    assert "Unsupported file type" in response.json()["detail"]["message"]


def test_mapping_missing_required_field_is_unprocessable(client):
    response = _upload(client, product_rows(1), mapping={"Product Name": "name"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["field"] == "mapping"
    assert "Required field 'sku' is not mapped" in detail["errors"]


def test_mapping_that_is_not_an_object_is_unprocessable(client, queue):
    response = _upload(client, product_rows(1), mapping=[["Product Name", "name"], ["SKU Code", "sku"]])

    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "mapping"
    assert queue.pending() == []


def test_malformed_options_are_unprocessable(client):
    response = _upload(client, product_rows(1), options="{not json")

    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "options"


def test_unknown_job_is_not_found(client):
    response = client.get("/api/imports/does-not-exist")

    assert response.status_code == 404
    assert "not found" in response.json()["detail"]["message"]


def test_processing_a_finished_job_conflicts(client, drain):
    job_id = _upload(client, product_rows(1)).json()["id"]
    drain()

    response = client.post(f"/api/imports/{job_id}/process", json={"start_row": 0})

    assert response.status_code == 409
    assert response.json()["detail"]["current_status"] == "completed"


def test_cancel_pending_import(client, queue):
    job_id = _upload(client, product_rows(2)).json()["id"]

    response = client.delete(f"/api/imports/{job_id}")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert queue.pending() == []
    assert client.delete(f"/api/imports/{job_id}").status_code == 409


def test_list_imports_filters_by_status(client, drain):
    _upload(client, product_rows(1))
    drain()
    _upload(client, product_rows(1, start=5))

    page = client.get("/api/imports/", params={"status": "pending"}).json()

    assert page["total"] == 1
    assert page["items"][0]["status"] == "pending"


def test_preview_returns_rows_and_suggestion(client):
    response = client.post(
        "/api/imports/preview",
        files={"file": ("products.csv", csv_bytes(product_rows(5)), "text/csv")},
        data={"entity_type": "products", "rows": "2"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["headers"] == ["Product Name", "SKU Code", "Unit Price", "Stock"]
    assert len(body["rows"]) == 2
    assert body["suggested_mapping"]["mapping"]["SKU Code"] == "sku"


def test_validate_reports_row_errors(client):
    rows = product_rows(2) + [["", "SKU-999", "1.00", "1"]]
    response = client.post(
        "/api/imports/validate",
        files={"file": ("products.csv", csv_bytes(rows), "text/csv")},
        data={"entity_type": "products", "mapping": json.dumps(PRODUCT_MAPPING)},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["valid"] is False
    assert body["valid_rows"] == 2
    assert body["invalid_rows"] == 1
    assert body["errors"][0]["row"] == 4


def test_export_lifecycle(client, drain, clock):
    _upload(client, product_rows(2))
    drain()

    created = client.post("/api/exports/", json={"entity_type": "products", "fields": ["sku", "name"]})
    assert created.status_code == 202
    export_id = created.json()["id"]
    assert client.get(f"/api/exports/{export_id}/download").status_code == 409

    drain()
    download = client.get(f"/api/exports/{export_id}/download")
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/csv")
    assert download.headers["content-disposition"].startswith("attachment; filename=")
    assert download.text.splitlines() == ["sku,name,categories", "SKU-001,Product 1,", "SKU-002,Product 2,"]

    listed = client.get("/api/exports/").json()
    assert [item["id"] for item in listed["items"]] == [export_id]

    clock.advance(days=8)
    assert client.get(f"/api/exports/{export_id}/download").status_code == 410


def test_template_download_headers(client):
    response = client.get(
        "/api/templates/products",
        params={"format": "csv", "include_sample_data": "true", "sample_rows": 3},
    )

    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="products-template.csv"'
    assert len(response.text.strip().splitlines()) == 4


def test_template_rejects_unknown_format(client):
    response = client.get("/api/templates/products", params={"format": "xml"})

    assert response.status_code == 400


def test_mapping_suggest_and_validate(client):
    suggested = client.post(
        "/api/mappings/suggest",
        json={"entity_type": "products", "headers": ["Product Name", "SKU Code", "Unit Price", "Stock"]},
    ).json()
    assert suggested["mapping"] == PRODUCT_MAPPING
    assert suggested["confidence"] == 1.0

    checked = client.post(
        "/api/mappings/validate",
        json={"entity_type": "products", "mapping": {"A": "sku", "B": "sku"}},
    ).json()
    assert checked["valid"] is False


def test_mapping_template_crud(client):
    created = client.post(
        "/api/mappings/",
        json={"name": "Feed", "entity_type": "products", "mapping": PRODUCT_MAPPING},
    )
    assert created.status_code == 201
    template_id = created.json()["id"]

    patched = client.patch(f"/api/mappings/{template_id}", json={"description": "weekly"})
    assert patched.json()["description"] == "weekly"

    assert client.get("/api/mappings/", params={"entity_type": "products"}).json()["total"] == 1
    assert client.delete(f"/api/mappings/{template_id}").status_code == 204
    assert client.get(f"/api/mappings/{template_id}").status_code == 404
