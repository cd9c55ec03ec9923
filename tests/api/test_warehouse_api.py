# tests/api/test_warehouse_api.py
from __future__ import annotations

import pytest

from tests.factories import make_unit

pytestmark = pytest.mark.asyncio


async def _seed_unit(session_factory, world, barcode, **kw):
    async with session_factory() as s:
        u = await make_unit(s, warehouse_id=world.wh_id, barcode=barcode, **kw)
        await s.commit()
        return u.id


async def test_cells_crud(client, world, auth):
    r = await client.post("/cells/create", json={"code": "c-09", "cell_type": "storage"}, headers=auth("manager"))
    assert r.status_code == 200, r.text
    cell = r.json()["cell"]
    assert (cell["code"], cell["cell_type"], cell["is_active"]) == ("C-09", "storage", True)

    r = await client.post("/cells/create", json={"code": "C-10", "cellType": "storage"}, headers=auth("worker"))
    assert r.status_code == 403

    r = await client.post("/cells/block", json={"cellId": cell["id"], "blocked": True}, headers=auth("manager"))
    assert r.json()["cell"]["meta"]["blocked"] is True

    r = await client.post("/cells/delete", json={"cellId": cell["id"]}, headers=auth("head"))
    assert r.json()["cell"]["is_active"] is False

    r = await client.get("/cells", params={"cellType": "storage"}, headers=auth("worker"))
    assert [c["code"] for c in r.json()["cells"]] == ["A-01", "A-02"]


async def test_inventory_blocks_moves_with_423(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9101", cell_id=world.cell("A-01"), status="stored")

    r = await client.post("/inventory/start", headers=auth("manager"))
    assert r.status_code == 200, r.text
    assert r.json()["active"] is True

    r = await client.post("/units/move", json={"unitId": unit_id, "toCellId": world.cell("A-02")}, headers=auth("worker"))
    assert r.status_code == 423
    assert "INVENTORY_ACTIVE" in r.json()["error"]

    r = await client.post(
        "/inventory/cell-scan", json={"cellCode": "A-01", "unitBarcodes": ["9101", "9199"]}, headers=auth("worker")
    )
    assert r.status_code == 200, r.text
    assert r.json()["missing"] == []
    assert r.json()["extra"] == ["9199"]

    r = await client.post("/inventory/stop", headers=auth("manager"))
    assert r.json()["active"] is False

    r = await client.get("/inventory/status", headers=auth("worker"))
    assert r.json() == {"ok": True, "active": False, "sessionId": None}

    r = await client.post("/units/move", json={"unitId": unit_id, "toCellId": world.cell("A-02")}, headers=auth("worker"))
    assert r.status_code == 200


async def test_receiving_then_scan_move(client, world, auth):
    r = await client.post("/receiving/scan", json={"cellCode": "BIN-01", "unitBarcode": "9201"}, headers=auth("worker"))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["created"] is True
    unit_id = body["unitId"]

    r = await client.post(
        "/units/move-by-scan",
        json={"unitBarcode": "9201", "fromCellCode": "BIN-01", "toCellCode": "R-01"},
        headers=auth("worker"),
    )
    assert r.status_code == 200, r.text
    assert r.json()["toStatus"] == "rejected"

    # rejected → bin 一律拒绝，包裹原地不动
    r = await client.post("/units/move", json={"unitId": unit_id, "toCellId": world.cell("BIN-01")}, headers=auth("worker"))
    assert r.status_code == 400
    assert r.json()["error_code"] == "REJECTED_TO_BIN_FORBIDDEN"
    r = await client.get(f"/units/{unit_id}", headers=auth("worker"))
    assert r.json()["unit"]["cell_id"] == world.cell("R-01")


async def test_create_unit_then_place_by_scan(client, world, auth):
    r = await client.post("/units/create", json={"digits": "9301"}, headers=auth("worker"))
    assert r.status_code == 200, r.text
    assert r.json()["unit"]["status"] == "receiving"

    r = await client.post("/units/create", json={"digits": "93O1"}, headers=auth("worker"))
    assert r.json()["error_code"] == "INVALID_BARCODE"

    r = await client.post("/units/place-by-scan", json={"unitBarcode": "9301", "cellCode": "A-02"}, headers=auth("worker"))
    assert r.status_code == 200, r.text
    assert r.json()["toStatus"] == "stored"


async def test_ship_out_transfer_and_hub_receive(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9401", cell_id=world.cell("S-01"), status="shipping")

    r = await client.post(
        "/logistics/ship-out",
        json={"unitId": unit_id, "courierName": "Line haul", "transferToWarehouseId": world.other_wh_id},
        headers=auth("logistics"),
    )
    assert r.status_code == 200, r.text
    shipment = r.json()["shipment"]
    assert shipment["transferId"] is not None

    r = await client.get("/logistics/out-shipments", headers=auth("logistics"))
    assert [s["id"] for s in r.json()["shipments"]] == [shipment["shipmentId"]]

    r = await client.get("/transfers/incoming", headers=auth("user-hub"))
    transfers = r.json()["transfers"]
    assert [t["unit"]["barcode"] for t in transfers] == ["9401"]

    r = await client.post("/transfers/receive", json={"unitId": unit_id, "cellCode": "HUB-BIN"}, headers=auth("user-hub"))
    assert r.status_code == 200, r.text
    assert r.json()["transferId"] == shipment["transferId"]

    r = await client.get("/transfers/incoming", headers=auth("user-hub"))
    assert r.json()["transfers"] == []


async def test_return_from_out(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9402", cell_id=world.cell("S-01"), status="shipping")
    r = await client.post("/logistics/ship-out", json={"unitId": unit_id, "courierName": "DHL"}, headers=auth("logistics"))
    shipment_id = r.json()["shipment"]["shipmentId"]

    r = await client.post(
        "/logistics/return-from-out",
        json={"shipmentId": shipment_id, "targetCellCode": "A-01", "returnReason": "refused"},
        headers=auth("logistics"),
    )
    assert r.status_code == 200, r.text
    assert r.json()["result"]["status"] == "stored"

    r = await client.post(
        "/logistics/return-from-out",
        json={"shipmentId": shipment_id, "targetCellCode": "A-01"},
        headers=auth("logistics"),
    )
    assert r.status_code == 400
    assert r.json()["error_code"] == "SHIPMENT_NOT_OUT"


async def test_admin_tools(client, session_factory, world, auth):
    a = await _seed_unit(session_factory, world, "9501")
    b = await _seed_unit(session_factory, world, "9502", cell_id=world.cell("R-01"), status="rejected")

    r = await client.post("/admin/units/move", json={"unitId": a, "toCellId": world.cell("A-01")}, headers=auth("ops"))
    assert r.status_code == 403

    r = await client.post(
        "/admin/units/bulk-assign", json={"unitIds": [a, b], "toCellId": world.cell("BIN-01")}, headers=auth("admin")
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert (body["movedCount"], body["failedCount"]) == (1, 1)

    r = await client.post("/admin/picking-tasks/close-stale-in-progress", headers=auth("admin"))
    assert r.status_code == 200
    assert r.json()["closed"] == 0

    r = await client.post("/admin/outbox/dispatch", json={"limit": 10}, headers=auth("admin"))
    assert r.json() == {"ok": True, "processed": 0, "done": 0, "failed": 0}


async def test_admin_purge_unit(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9601", cell_id=world.cell("A-01"), status="stored")

    r = await client.post("/admin/units/delete", json={"barcode": "9601"}, headers=auth("head"))
    assert r.status_code == 403
    assert r.json()["error_code"] == "ROLE_FORBIDDEN"

    r = await client.post("/admin/units/delete", json={"barcode": "9601"}, headers=auth("admin"))
    assert r.status_code == 200, r.text
    assert r.json() == {"ok": True, "barcode": "9601"}

    r = await client.get(f"/units/{unit_id}", headers=auth("worker"))
    assert r.status_code == 404

    r = await client.post("/admin/units/delete", json={"barcode": "9601"}, headers=auth("admin"))
    assert r.status_code == 404
    assert r.json()["error_code"] == "UNIT_NOT_FOUND"


async def test_unit_lookup_list_and_cell_position(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9701", cell_id=world.cell("A-02"), status="stored")

    r = await client.get("/units/by-barcode", params={"barcode": "9701"}, headers=auth("worker"))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["unit"]["id"] == unit_id
    assert body["cell"]["code"] == "A-02"

    r = await client.get("/units/by-barcode", headers=auth("worker"))
    assert r.status_code == 400

    r = await client.get("/units", params={"status": "stored"}, headers=auth("worker"))
    assert [u["barcode"] for u in r.json()["units"]] == ["9701"]

    r = await client.post("/cells/update", json={"id": world.cell("A-02"), "x": 15, "y": 25}, headers=auth("worker"))
    assert r.status_code == 200, r.text
    assert (r.json()["cell"]["x"], r.json()["cell"]["y"]) == (15, 25)
