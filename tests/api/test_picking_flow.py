# tests/api/test_picking_flow.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from parcelwms.models.outbox_event import OutboxEvent
from parcelwms.models.picking_task import PickingTask, PickingTaskUnit
from parcelwms.services.outbox import publish

from tests.factories import make_unit

pytestmark = pytest.mark.asyncio


async def _seed_unit(session_factory, world, barcode, **kw):
    async with session_factory() as s:
        u = await make_unit(s, warehouse_id=world.wh_id, barcode=barcode, **kw)
        await s.commit()
        return u.id


async def test_assign_pick_and_complete(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9001")
    c1, c2 = world.cell("A-01"), world.cell("P-01")

    r = await client.post("/units/assign", json={"unitId": unit_id, "cellId": c1}, headers=auth("worker"))
    assert r.status_code == 200, r.text
    assert r.json()["toStatus"] == "stored"

    r = await client.get(f"/units/{unit_id}/history", headers=auth("worker"))
    items = r.json()["items"]
    assert len(items) == 1
    assert (items[0]["from_cell_id"], items[0]["to_cell_id"]) == (None, c1)

    r = await client.post(
        "/ops/picking-tasks/create",
        json={"targetPickingCellId": c2, "unitIds": [unit_id], "scenario": "handle with care"},
        headers=auth("ops"),
    )
    assert r.status_code == 200, r.text
    task_id = r.json()["taskId"]

    r = await client.get(f"/picking-tasks/{task_id}", headers=auth("worker"))
    body = r.json()
    assert body["task"]["status"] == "open"
    assert body["units"][0]["from_cell_id"] == c1

    r = await client.get("/tsd/shipping-tasks/list", headers=auth("worker"))
    tasks = r.json()["tasks"]
    assert [(t["id"], t["unit_count"]) for t in tasks] == [(task_id, 1)]
    assert tasks[0]["target_cell"]["code"] == "P-01"

    r = await client.post("/tsd/shipping-tasks/start", json={"taskId": task_id}, headers=auth("worker"))
    assert r.json()["pickedBy"] == "user-worker"

    r = await client.post(
        "/tsd/shipping-tasks/scan-unit",
        json={"taskId": task_id, "unitBarcode": "9001", "fromCellId": c1},
        headers=auth("worker"),
    )
    assert r.status_code == 200, r.text
    assert r.json()["taskCompleted"] is True

    r = await client.get(f"/units/{unit_id}", headers=auth("worker"))
    unit = r.json()["unit"]
    assert (unit["cell_id"], unit["status"]) == (c2, "picking")

    r = await client.post(f"/picking-tasks/{task_id}/cancel", headers=auth("ops"))
    assert r.status_code == 400
    assert r.json()["error_code"] == "TASK_TERMINAL"

    r = await client.get("/audit", params={"entityType": "picking_task", "entityId": str(task_id)}, headers=auth("ops"))
    actions = [e["action"] for e in r.json()["events"]]
    assert set(actions) == {"picking_task_created", "picking_task_start", "picking_task_completed"}


async def test_cancel_returns_unit_to_origin(client, session_factory, world, auth):
    unit_id = await _seed_unit(
        session_factory, world, "9002", cell_id=world.cell("A-02"), status="stored"
    )
    other_id = await _seed_unit(
        session_factory, world, "9003", cell_id=world.cell("A-02"), status="stored"
    )
    r = await client.post(
        "/ops/picking-tasks/create",
        json={"targetPickingCellId": world.cell("P-02"), "barcodes": ["9002", "9003"]},
        headers=auth("ops"),
    )
    task_id = r.json()["taskId"]
    await client.post(
        "/tsd/shipping-tasks/scan-unit", json={"taskId": task_id, "unitBarcode": "9002"}, headers=auth("ops")
    )

    r = await client.post(f"/picking-tasks/{task_id}/cancel", headers=auth("worker"))
    assert r.status_code == 403

    r = await client.post(f"/picking-tasks/{task_id}/cancel", headers=auth("ops"))
    assert r.status_code == 200, r.text
    body = r.json()
    assert (body["units_returned"], body["units_failed"], body["units_skipped"]) == (1, 0, 1)

    r = await client.get(f"/units/{unit_id}", headers=auth("ops"))
    assert r.json()["unit"]["cell_id"] == world.cell("A-02")
    assert r.json()["cell"]["code"] == "A-02"
    r = await client.get(f"/units/{other_id}", headers=auth("ops"))
    assert r.json()["unit"]["cell_id"] == world.cell("A-02")


async def test_scenario_patch(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9004", cell_id=world.cell("A-01"), status="stored")
    r = await client.post(
        "/ops/picking-tasks/create",
        json={"targetPickingCellId": world.cell("P-01"), "unitIds": [unit_id]},
        headers=auth("ops"),
    )
    task_id = r.json()["taskId"]

    r = await client.patch(f"/ops/picking-tasks/{task_id}/scenario", json={"scenario": " leave at door "}, headers=auth("logistics"))
    assert r.status_code == 200
    assert r.json()["task"]["scenario"] == "leave at door"

    r = await client.patch(f"/ops/picking-tasks/{task_id}/scenario", json={"scenario": "x" * 600}, headers=auth("ops"))
    assert r.status_code == 400
    assert r.json()["error_code"] == "SCENARIO_TOO_LONG"


async def test_postponed_unit_gets_new_task(client, session_factory, world, auth):
    c3, c4 = world.cell("S-01"), world.cell("P-01")
    unit_id = await _seed_unit(session_factory, world, "9005", cell_id=c3, status="shipping")

    r = await client.post(
        "/ops/picking-tasks/create",
        json={"targetPickingCellId": c4, "unitIds": [unit_id], "scenario": "call client"},
        headers=auth("ops"),
    )
    prior_id = r.json()["taskId"]
    r = await client.post(
        "/tsd/shipping-tasks/scan-unit", json={"taskId": prior_id, "unitBarcode": "9005"}, headers=auth("ops")
    )
    assert r.json()["taskCompleted"] is True

    r = await client.post("/units/move", json={"unitId": unit_id, "toCellId": c3}, headers=auth("ops"))
    assert r.json()["toStatus"] == "shipping"

    r = await client.post(
        "/units/ops-status", json={"unitId": unit_id, "status": "postponed_1"}, headers=auth("ops")
    )
    assert r.status_code == 200, r.text
    assert r.json()["unit"]["ops_status"] == "postponed_1"

    # 后台任务可能已经处理过，这里再显式派发一次
    r = await client.post("/admin/outbox/dispatch", headers=auth("admin"))
    assert r.status_code == 200, r.text

    async with session_factory() as s:
        tasks = list(
            (
                await s.execute(
                    select(PickingTask)
                    .join(PickingTaskUnit, PickingTaskUnit.picking_task_id == PickingTask.id)
                    .where(PickingTaskUnit.unit_id == unit_id)
                    .order_by(PickingTask.id)
                )
            ).scalars()
        )
        assert [t.status for t in tasks] == ["done", "open"]
        new_task = tasks[1]
        assert new_task.target_picking_cell_id == c4
        assert new_task.scenario == "call client"
        origin = (
            await s.execute(
                select(PickingTaskUnit.from_cell_id).where(PickingTaskUnit.picking_task_id == new_task.id)
            )
        ).scalar_one()
        assert origin == c3

        ev = (
            await s.execute(select(OutboxEvent).where(OutboxEvent.topic == "unit.ops_status_changed"))
        ).scalars().one()
        assert ev.status == "done"
        assert ev.result == {"created": True, "taskId": new_task.id}

    # 第二次设置：包裹已被 open 任务占用
    r = await client.post(
        "/units/ops-status", json={"unitId": unit_id, "status": "postponed_2"}, headers=auth("ops")
    )
    assert r.status_code == 200
    await client.post("/admin/outbox/dispatch", headers=auth("admin"))

    async with session_factory() as s:
        results = [
            e.result
            for e in (
                await s.execute(
                    select(OutboxEvent)
                    .where(OutboxEvent.topic == "unit.ops_status_changed")
                    .order_by(OutboxEvent.id)
                )
            ).scalars()
        ]
        assert results[-1] == {"created": False, "reason": "already_in_active_task"}


async def test_ops_status_requires_role(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9006")
    r = await client.post("/units/ops-status", json={"unitId": unit_id, "status": "postponed_1"}, headers=auth("worker"))
    assert r.status_code == 403


async def test_assign_dispatches_only_its_own_event(client, session_factory, world, auth):
    unit_id = await _seed_unit(session_factory, world, "9050")
    async with session_factory() as s:
        other = await publish(s, "no.such.topic", {})
        await s.commit()
        other_id = other.id

    r = await client.post(
        "/units/assign", json={"unitId": unit_id, "cellId": world.cell("A-01")}, headers=auth("worker")
    )
    assert r.status_code == 200, r.text

    async with session_factory() as s:
        rows = {e.id: e for e in (await s.execute(select(OutboxEvent))).scalars()}
        assert rows[other_id].status == "pending"
        placed = [e for e in rows.values() if e.topic == "unit.placed"]
        assert [e.status for e in placed] == ["done"]
