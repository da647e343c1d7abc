"""
Integration Tests - HTTP API
"""
import uuid
from pathlib import Path

import httpx
import pytest

from warehouse_analytics.serving.api import create_api_app


@pytest.fixture
def app(service, ingestor, report_cache, tmp_path):
    app = create_api_app()
    app.state.report_service = service
    app.state.ingestor = ingestor
    app.state.report_cache = report_cache
    app.state.upload_dir = str(tmp_path / "uploads")
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def upload(client, kind, path, filename=None):
    with open(path, "rb") as fh:
        return await client.post(
            f"/api/v1/uploads/{kind}",
            files={"file": (filename or path.name, fh.read(), "text/csv")},
        )


class TestUploads:
    """Tests for the upload endpoints"""

    async def test_upload_then_report(self, client, sheets):
        response = await upload(client, "catalog", sheets.catalog([("SKU-1", "Electronics", 0.5)]))
        assert response.status_code == 201
        assert response.json()["status"] == "processed"

        response = await upload(client, "inbound", sheets.inbound([("2024-01-05", "SKU-1", "SKU-1", 10, 10, 10)]))
        assert response.status_code == 201
        body = response.json()
        assert body["sourceKind"] == "inbound"
        assert body["rowsInserted"] == 1
        upload_id = body["batchId"]

        response = await client.get("/api/v1/inbound/summary", params={"uploadId": upload_id})
        assert response.status_code == 200
        report = response.json()
        assert report["uploadId"] == upload_id
        assert report["cards"]["fulfilledQtyTotal"] == 10
        assert report["cards"]["totalCbm"] == pytest.approx(5.0)

    async def test_rejected_file_answers_422(self, client, sheets, tmp_path):
        response = await upload(client, "inbound", sheets.inbound([]))
        assert response.status_code == 422
        assert response.json()["status"] == "failed"

        text_file = tmp_path / "notes.txt"
        text_file.write_text("hello")
        response = await upload(client, "inbound", text_file)
        assert response.status_code == 422

    async def test_uploaded_files_are_removed(self, client, sheets, app):
        await upload(client, "inbound", sheets.inbound([("2024-01-05", "A", "A", 1, 1, 1)]))
        assert list(Path(app.state.upload_dir).iterdir()) == []

    async def test_list_and_delete(self, client, sheets):
        created = (await upload(client, "inbound", sheets.inbound([("2024-01-05", "A", "A", 1, 1, 1)]))).json()

        listing = await client.get("/api/v1/uploads", params={"kind": "inbound"})
        assert listing.status_code == 200
        assert [b["batchId"] for b in listing.json()] == [created["batchId"]]

        response = await client.delete(f"/api/v1/uploads/{created['batchId']}")
        assert response.status_code == 200

        response = await client.delete(f"/api/v1/uploads/{created['batchId']}")
        assert response.status_code == 404

        response = await client.delete("/api/v1/uploads/not-a-uuid")
        assert response.status_code == 422

    async def test_unknown_kind(self, client, sheets):
        response = await upload(client, "returns", sheets.inbound([]))
        assert response.status_code == 422


class TestReportEndpoints:
    """Tests for report parameter handling"""

    async def test_not_found_without_uploads(self, client):
        for path in ("/api/v1/inbound/summary", "/api/v1/outbound/summary", "/api/v1/inventory/summary"):
            response = await client.get(path)
            assert response.status_code == 404
            assert "detail" in response.json()

    async def test_unknown_upload_id(self, client):
        response = await client.get("/api/v1/inbound/summary", params={"uploadId": str(uuid.uuid4())})
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "path, params, field",
        [
            ("/api/v1/inbound/summary", {"fromDate": "05/01/2024"}, "fromDate"),
            ("/api/v1/inbound/summary", {"timeGranularity": "hour"}, "timeGranularity"),
            ("/api/v1/inbound/summary", {"productCategory": "Spaceships"}, "productCategory"),
            ("/api/v1/inbound/summary", {"warehouse": "WH-1"}, "warehouse"),
            ("/api/v1/outbound/summary", {"month": "Smarch 2024"}, "month"),
            ("/api/v1/inventory/summary", {"uploadId": "abc"}, "uploadId"),
            ("/api/v1/outbound/top-products", {"limit": 0}, "limit"),
            ("/api/v1/outbound/top-products", {"limit": "many"}, "limit"),
            ("/api/v1/inbound/summary", {"month": "January 99999"}, "month"),
            ("/api/v1/inbound/top-products", {"rankBy": "price"}, "rankBy"),
        ],
    )
    async def test_validation_failures(self, client, path, params, field):
        response = await client.get(path, params=params)

        assert response.status_code == 422
        assert response.json()["field"] == field

    async def test_repeatable_category_and_top_products(self, client, sheets):
        await upload(client, "catalog", sheets.catalog([("SKU-1", "Electronics", 0.5), ("SKU-2", "Edel", 0.2)]))
        await upload(
            client,
            "outbound",
            sheets.outbound([
                {"date": "2024-02-01", "so_item": "SKU-1", "so_qty": 4, "dn_item": "SKU-1", "dn_qty": 4,
                 "customer_group": "Amazon", "warehouse": "WH-1"},
                {"date": "2024-02-02", "so_item": "SKU-2", "so_qty": 10, "dn_item": "SKU-2", "dn_qty": 10,
                 "customer_group": "Blinkit", "warehouse": "WH-2"},
            ]),
        )

        response = await client.get(
            "/api/v1/outbound/summary",
            params=[("productCategory", "Electronics"), ("productCategory", "EDEL"), ("timeGranularity", "day")],
        )
        assert response.status_code == 200
        report = response.json()
        assert [row["key"] for row in report["categoryTable"]] == ["EDEL", "ELECTRONICS", "TOTAL"]
        assert len(report["timeSeries"]["points"]) == 2

        response = await client.get("/api/v1/outbound/top-products", params={"rankBy": "qty", "limit": 1})
        assert response.status_code == 200
        products = response.json()["products"]
        assert [p["product"] for p in products] == ["SKU-2"]
        assert products[0]["percentageOfTotal"] == pytest.approx(71.43)


class TestServiceEndpoints:
    """Tests for health and middleware behaviour"""

    async def test_liveness_and_headers(self, client):
        response = await client.get("/api/v1/health/live", headers={"X-Request-ID": "req-42"})

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        assert response.headers["X-Request-ID"] == "req-42"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Response-Time" in response.headers

    async def test_api_info(self, client):
        response = await client.get("/api")
        assert response.status_code == 200
        assert response.json()["name"] == "Warehouse Analytics API"
