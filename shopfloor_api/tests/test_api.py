"""HTTP surface: routing, status codes and the error envelope."""

from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tracker.api.generate_openapi import build_openapi_schema
from tracker.api.main import app, status_for
from tracker.core.deps import get_settings_dep
from tracker.core.errors import (
    ConsistencyFault,
    InvalidQuantityError,
    QuantityOverrunError,
    UnknownCheckpointError,
)
from tracker.db.session import get_async_session

API = "/api/v1"


@pytest_asyncio.fixture
async def client(session_maker, settings):
    async def _session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session
    app.dependency_overrides[get_settings_dep] = lambda: settings
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


class TestErrorMapping:
    def test_families_map_to_status_codes(self):
        assert status_for(UnknownCheckpointError("x")) == 404
        assert status_for(InvalidQuantityError("bad")) == 422
        assert status_for(QuantityOverrunError(uuid4(), 8, 10)) == 409
        assert status_for(ConsistencyFault("broken")) == 500


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_echoes_correlation_id(self, client):
        resp = await client.get(f"{API}/health", headers={"X-Correlation-ID": "corr-123"})
        assert resp.status_code == 200
        assert resp.json()["message"] == "Healthy"
        assert resp.headers["X-Correlation-ID"] == "corr-123"

    @pytest.mark.asyncio
    async def test_websocket_info(self, client):
        resp = await client.get(f"{API}/websocket-info")
        assert resp.status_code == 200
        assert resp.json()["endpoints"][0]["path"] == "/ws/floor"


class TestShopFloorFlow:
    """Order intake through completion over HTTP."""

    @pytest.mark.asyncio
    async def test_full_flow(self, client, floor):
        part = await floor.part(steps=((10, 1.0), (20, 1.0)))
        operator = await floor.operator()

        resp = await client.post(
            f"{API}/production-orders",
            json={"po_number": "PO-9000", "part_number_id": str(part.id), "quantity": 20},
        )
        assert resp.status_code == 201
        order = resp.json()
        assert order["status"] == "Created"

        resp = await client.post(
            f"{API}/production-orders/{order['id']}/generate-travel-sheet", json={"batch_number": "LOT-1"}
        )
        assert resp.status_code == 201
        sheet = resp.json()
        assert sheet["travel_sheet_number"] == "TS-PO-9000-01"
        first, second = sheet["operations"]

        resp = await client.post(
            f"{API}/qr-scanner/scan",
            json={"badge_id": operator.badge_token, "qr_code": first["checkpoint_token"]},
            headers={"X-Station-ID": "ST-4"},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "started"

        resp = await client.post(
            f"{API}/qr-scanner/scan",
            json={"badge_id": operator.badge_token, "qr_code": first["checkpoint_token"]},
        )
        assert resp.json()["status"] == "awaiting_completion"
        assert resp.json()["intake_quantity"] == 20

        resp = await client.put(
            f"{API}/qr-scanner/operations/{first['id']}/complete",
            json={"badge_id": operator.badge_token, "quantity_good": 19, "quantity_scrap": 1},
        )
        assert resp.status_code == 200
        assert resp.json()["quantity_scrapped"] == 1
        assert resp.json()["travel_sheet_status"] == "Active"

        await client.post(
            f"{API}/qr-scanner/scan",
            json={"badge_id": operator.badge_token, "qr_code": second["checkpoint_token"]},
        )
        resp = await client.put(
            f"{API}/qr-scanner/operations/{second['id']}/complete",
            json={"badge_id": operator.badge_token, "quantity_good": 19, "quantity_scrap": 0},
        )
        body = resp.json()
        assert body["updated_order_status"] == "Completed"
        assert (body["quantity_completed"], body["quantity_scrapped"]) == (19, 1)

        resp = await client.get(f"{API}/production-orders/{order['id']}/travel-sheets")
        assert [s["status"] for s in resp.json()] == ["Completed"]

        resp = await client.get(f"{API}/qr-scanner/operations/{second['id']}")
        assert resp.json()["quantity_good"] == 19
        assert resp.json()["operator_id"] == str(operator.id)

        resp = await client.get(f"{API}/production-orders", params={"status": "Completed"})
        assert [o["po_number"] for o in resp.json()] == ["PO-9000"]

        resp = await client.get(f"{API}/production-orders/{order['id']}/risk")
        assert resp.json()["risk_status"] == "Green"
        assert resp.json()["completion_percentage"] == 95

        resp = await client.get(f"{API}/dashboard/stats")
        assert resp.json()["total_completed_orders"] == 1

        resp = await client.get(f"{API}/dashboard/daily-production", params={"days": 2})
        assert resp.status_code == 200
        assert len(resp.json()) == 2
        assert sum(day["good"] for day in resp.json()) == 19

        resp = await client.get(f"{API}/dashboard/work-center-load")
        assert resp.status_code == 200
        assert all(row["pending"] == row["in_progress"] == 0 for row in resp.json())

        resp = await client.get(f"{API}/dashboard/daily-production", params={"days": 0})
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"


class TestErrorEnvelope:
    @pytest.mark.asyncio
    async def test_unknown_checkpoint_is_404(self, client, floor):
        operator = await floor.operator()
        resp = await client.post(
            f"{API}/qr-scanner/scan",
            json={"badge_id": operator.badge_token, "qr_code": "nope"},
            headers={"X-Correlation-ID": "corr-404", "X-Station-ID": "ST-1"},
        )
        assert resp.status_code == 404
        body = resp.json()
        assert body["error"]["type"] == "unknown_checkpoint"
        assert body["correlation_id"] == "corr-404"
        assert body["station_id"] == "ST-1"
        assert body["path"] == f"{API}/qr-scanner/scan"

    @pytest.mark.asyncio
    async def test_sequence_violation_is_409(self, client, floor):
        _, sheet = await floor.released(5, steps=((10, 1.0), (20, 1.0)))
        operator = await floor.operator()
        resp = await client.post(
            f"{API}/qr-scanner/scan",
            json={"badge_id": operator.badge_token, "qr_code": sheet.operations[1].checkpoint_token},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "sequence_violation"
        assert resp.json()["error"]["message"] == "Previous operation not yet complete."

    @pytest.mark.asyncio
    async def test_overrun_is_409_with_quantities(self, client, floor):
        _, sheet = await floor.released(8)
        operator = await floor.operator()
        op = sheet.operations[0]
        await client.post(
            f"{API}/qr-scanner/scan", json={"badge_id": operator.badge_token, "qr_code": op.checkpoint_token}
        )
        resp = await client.put(
            f"{API}/qr-scanner/operations/{op.id}/complete",
            json={"badge_id": operator.badge_token, "quantity_good": 10, "quantity_scrap": 0, "quantity_pending": 0},
        )
        assert resp.status_code == 409
        details = resp.json()["error"]["details"]
        assert (details["expected_max"], details["received"]) == (8, 10)

    @pytest.mark.asyncio
    async def test_negative_quantity_is_rejected_at_the_boundary(self, client, floor):
        _, sheet = await floor.released(8)
        operator = await floor.operator()
        op = sheet.operations[0]
        await client.post(
            f"{API}/qr-scanner/scan", json={"badge_id": operator.badge_token, "qr_code": op.checkpoint_token}
        )
        resp = await client.put(
            f"{API}/qr-scanner/operations/{op.id}/complete",
            json={"badge_id": operator.badge_token, "quantity_good": 2, "quantity_scrap": -1},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"

        resp = await client.get(f"{API}/qr-scanner/operations/{op.id}")
        assert resp.json()["status"] == "In Progress"
        assert resp.json()["quantity_pending"] is None

    @pytest.mark.asyncio
    async def test_malformed_payload_is_validation_error(self, client):
        resp = await client.post(f"{API}/qr-scanner/scan", json={"badge_id": "   ", "qr_code": "x"})
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_delete_with_live_sheet_is_409(self, client, floor):
        order, sheet = await floor.released(5)
        resp = await client.delete(f"{API}/production-orders/{order.id}")
        assert resp.status_code == 409

        resp = await client.post(f"{API}/travel-sheets/{sheet.id}/cancel")
        assert resp.json()["status"] == "Cancelled"
        resp = await client.delete(f"{API}/production-orders/{order.id}")
        assert resp.status_code == 200
        resp = await client.get(f"{API}/production-orders/{order.id}")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_generation_is_409(self, client, floor):
        order, _ = await floor.released(5)
        resp = await client.post(f"{API}/production-orders/{order.id}/generate-travel-sheet")
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "duplicate_travel_sheet"


def test_openapi_documents_websocket():
    schema = build_openapi_schema()
    assert "/api/v1/qr-scanner/scan" in schema["paths"]
    assert schema["x-websocket-endpoints"][0]["path"] == "/ws/floor"
