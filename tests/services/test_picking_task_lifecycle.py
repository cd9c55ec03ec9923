# tests/services/test_picking_task_lifecycle.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from parcelwms.db.types import utcnow
from parcelwms.models.cell import Cell
from parcelwms.models.picking_task import PickingTask, PickingTaskRollback
from parcelwms.services.errors import Conflict, InvalidInput, InvalidState
from parcelwms.services.picking_task_service import PickingTaskService
from parcelwms.services.unit_placement import place_unit

from tests.factories import make_unit
from tests.helpers import count_audit

pytestmark = pytest.mark.asyncio


async def _stored(session, world, barcode, cell="A-01"):
    return await make_unit(
        session, warehouse_id=world.wh_id, barcode=barcode, cell_id=world.cell(cell), status="stored"
    )


async def test_create_reserves_units_with_origin(session, world):
    u = await _stored(session, world, "3001")
    svc = PickingTaskService(session, world.actor("ops"))

    res = await svc.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id], scenario="  call first ")

    task, target, units = await svc.get(res.task_id)
    assert task.status == "open"
    assert task.scenario == "call first"
    assert target.id == world.cell("P-01")
    assert [(tu.unit_id, tu.from_cell_id) for tu, _ in units] == [(u.id, world.cell("A-01"))]
    assert await count_audit(session, "picking_task_created") == 1


async def test_create_validation(session, world):
    svc = PickingTaskService(session, world.actor("ops"))
    u = await _stored(session, world, "3002")
    in_bin = await make_unit(
        session, warehouse_id=world.wh_id, barcode="3003", cell_id=world.cell("BIN-01"), status="bin"
    )

    with pytest.raises(InvalidInput) as ei:
        await svc.create(target_picking_cell_id=world.cell("A-02"), unit_ids=[u.id])
    assert ei.value.code == "TARGET_NOT_PICKING"

    with pytest.raises(InvalidInput) as ei:
        await svc.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id, in_bin.id, 987654])
    assert ei.value.code == "INVALID_UNITS"
    reasons = {(x.get("unitId"), x["reason"]) for x in ei.value.extra["invalidUnits"]}
    assert (in_bin.id, "not_in_storage_or_shipping") in reasons
    assert (987654, "not_found") in reasons

    await svc.create(target_picking_cell_id=world.cell("P-01"), barcodes=["3002"])
    with pytest.raises(Conflict) as ei:
        await svc.create(target_picking_cell_id=world.cell("P-02"), unit_ids=[u.id])
    assert ei.value.code == "UNITS_ALREADY_RESERVED"


async def test_start_is_idempotent_for_the_same_worker(session, world):
    u = await _stored(session, world, "3004")
    worker = PickingTaskService(session, world.actor("worker"))
    created = await PickingTaskService(session, world.actor("ops")).create(
        target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id]
    )

    first = await worker.start(created.task_id)
    again = await worker.start(created.task_id)

    assert first.already_started is False
    assert again.already_started is True
    assert again.picked_by == first.picked_by == "user-worker"
    assert await count_audit(session, "picking_task_start") == 1

    with pytest.raises(Conflict) as ei:
        await PickingTaskService(session, world.actor("manager")).start(created.task_id)
    assert ei.value.code == "TASK_LOCKED"


async def test_scan_moves_unit_and_completes_task(session, world):
    u = await _stored(session, world, "3005")
    ops = PickingTaskService(session, world.actor("ops"))
    worker = PickingTaskService(session, world.actor("worker"))
    created = await ops.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id])
    await worker.start(created.task_id)

    res = await worker.scan_unit(task_id=created.task_id, unit_barcode="3005", from_cell_id=world.cell("A-01"))

    assert res.task_completed is True
    assert (res.moved, res.total) == (1, 1)
    await session.refresh(u)
    assert u.cell_id == world.cell("P-01")
    assert u.status == "picking"

    task = await session.get(PickingTask, created.task_id)
    assert task.status == "done"
    assert task.completed_by == "user-worker"


async def test_terminal_task_rejects_transitions_without_audit(session, world):
    u = await _stored(session, world, "3006")
    ops = PickingTaskService(session, world.actor("ops"))
    created = await ops.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id])
    await ops.scan_unit(task_id=created.task_id, unit_barcode="3006")

    audits = await count_audit(session)
    with pytest.raises(InvalidState):
        await ops.start(created.task_id)
    with pytest.raises(InvalidState):
        await ops.cancel(created.task_id)
    with pytest.raises(InvalidState):
        await ops.update_scenario(created.task_id, "late note")
    with pytest.raises(InvalidState):
        await ops.complete_batch(task_id=created.task_id)
    assert await count_audit(session) == audits


async def test_complete_batch_reports_progress(session, world):
    a = await _stored(session, world, "3007")
    b = await _stored(session, world, "3008", cell="A-02")
    ops = PickingTaskService(session, world.actor("ops"))
    created = await ops.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[a.id, b.id])
    await ops.start(created.task_id)
    await ops.scan_unit(task_id=created.task_id, unit_barcode="3007")

    res = await ops.complete_batch(task_id=created.task_id)
    assert res.task_completed is False
    assert (res.moved, res.total) == (1, 2)

    res = await ops.complete_batch(task_id=created.task_id, moved_unit_ids=[b.id])
    assert res.task_completed is True


async def test_check_unit_auto_starts_open_task(session, world):
    u = await _stored(session, world, "3009")
    created = await PickingTaskService(session, world.actor("ops")).create(
        target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id]
    )
    worker = PickingTaskService(session, world.actor("worker"))

    miss = await worker.check_unit(unit_barcode="3009", from_cell_id=world.cell("A-02"))
    assert miss.found is False and miss.reason == "not_at_origin"

    hit = await worker.check_unit(unit_barcode="3009", from_cell_id=world.cell("A-01"))
    assert hit.found is True
    assert hit.to_cell.id == world.cell("P-01")
    task = await session.get(PickingTask, created.task_id)
    assert task.status == "in_progress"
    assert task.picked_by == "user-worker"


async def test_cancel_returns_units_and_records_failures(session, world):
    a = await _stored(session, world, "3010", cell="A-01")
    b = await _stored(session, world, "3011", cell="A-02")
    c = await make_unit(
        session, warehouse_id=world.wh_id, barcode="3012", cell_id=world.cell("S-01"), status="shipping"
    )
    ops = PickingTaskService(session, world.actor("ops"))
    created = await ops.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[a.id, b.id, c.id])
    await ops.start(created.task_id)
    await ops.scan_unit(task_id=created.task_id, unit_barcode="3010")
    await ops.scan_unit(task_id=created.task_id, unit_barcode="3011")

    origin_b = await session.get(Cell, world.cell("A-02"))
    origin_b.is_active = False
    await session.flush()

    res = await ops.cancel(created.task_id)

    assert (res.units_returned, res.units_failed, res.units_skipped) == (1, 1, 1)
    assert res.failures[0]["unitId"] == b.id
    task = await session.get(PickingTask, created.task_id)
    assert task.status == "canceled"
    for u in (a, b, c):
        await session.refresh(u)
    assert a.cell_id == world.cell("A-01") and a.status == "stored"
    assert b.cell_id == world.cell("P-01")
    assert c.cell_id == world.cell("S-01")

    statuses = dict(
        (
            await session.execute(
                select(PickingTaskRollback.unit_id, PickingTaskRollback.status).where(
                    PickingTaskRollback.picking_task_id == created.task_id
                )
            )
        ).all()
    )
    assert statuses == {a.id: "done", b.id: "failed", c.id: "skipped"}

    origin_b.is_active = True
    await session.flush()
    resumed = await ops.resume_cancel(created.task_id)
    assert (resumed.units_returned, resumed.units_failed) == (1, 0)
    await session.refresh(b)
    assert b.cell_id == world.cell("A-02")


async def test_resume_requires_canceled_task(session, world):
    u = await _stored(session, world, "3013")
    ops = PickingTaskService(session, world.actor("ops"))
    created = await ops.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id])
    with pytest.raises(InvalidState):
        await ops.resume_cancel(created.task_id)


async def test_scenario_rules(session, world):
    u = await _stored(session, world, "3014")
    ops = PickingTaskService(session, world.actor("ops"))
    created = await ops.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id])

    task = await ops.update_scenario(created.task_id, "  fragile  ")
    assert task.scenario == "fragile"
    task = await ops.update_scenario(created.task_id, "   ")
    assert task.scenario is None

    with pytest.raises(InvalidInput) as ei:
        await ops.update_scenario(created.task_id, "x" * 501)
    assert ei.value.code == "SCENARIO_TOO_LONG"
    with pytest.raises(InvalidInput) as ei:
        await ops.update_scenario(created.task_id, 42)
    assert ei.value.code == "INVALID_SCENARIO"


async def test_close_stale_in_progress(session, world):
    fresh_u = await _stored(session, world, "3015")
    old_u = await _stored(session, world, "3016", cell="A-02")
    admin = PickingTaskService(session, world.actor("admin"))
    fresh = await admin.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[fresh_u.id])
    old = await admin.create(target_picking_cell_id=world.cell("P-02"), unit_ids=[old_u.id])
    await admin.start(fresh.task_id)
    await admin.start(old.task_id)

    stale = await session.get(PickingTask, old.task_id)
    stale.picked_at = utcnow() - timedelta(days=5)
    await session.flush()

    out = await admin.close_stale(older_than_days=2, include_open=False)

    assert out["closed"] == 1
    assert out["taskIds"] == [old.task_id]
    assert (await session.get(PickingTask, fresh.task_id)).status == "in_progress"
    assert (await session.get(PickingTask, old.task_id)).status == "canceled"


async def test_legacy_single_unit_task_is_read_through_adapter(session, world):
    u = await _stored(session, world, "3017")
    legacy = PickingTask(
        warehouse_id=world.wh_id,
        status="open",
        target_picking_cell_id=world.cell("P-01"),
        unit_id=u.id,
        from_cell_id=world.cell("A-01"),
        created_by="user-ops",
    )
    session.add(legacy)
    await session.flush()

    ops = PickingTaskService(session, world.actor("ops"))
    _, _, units = await ops.get(legacy.id)
    assert [(tu.unit_id, tu.from_cell_id) for tu, _ in units] == [(u.id, world.cell("A-01"))]
    assert [(t.id, n) for t, _, n in await ops.list_active()] == [(legacy.id, 1)]

    with pytest.raises(Conflict):
        await ops.create(target_picking_cell_id=world.cell("P-02"), unit_ids=[u.id])

    worker = PickingTaskService(session, world.actor("worker"))
    res = await worker.scan_unit(task_id=legacy.id, unit_barcode="3017", from_cell_id=world.cell("A-01"))
    assert res.task_completed is True
    assert (await session.get(PickingTask, legacy.id)).status == "done"


async def _drifted(session, world, barcode):
    """预留在 A-01，之后被移到 A-02 的包裹。"""
    u = await _stored(session, world, barcode)
    created = await PickingTaskService(session, world.actor("ops")).create(
        target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id]
    )
    await place_unit(session, actor=world.actor("manager"), unit_id=u.id, to_cell_id=world.cell("A-02"))
    return u, created.task_id


async def test_check_unit_requires_recorded_origin(session, world):
    u, task_id = await _drifted(session, world, "3018")
    worker = PickingTaskService(session, world.actor("worker"))

    res = await worker.check_unit(unit_barcode="3018", from_cell_id=world.cell("A-02"))

    assert res.found is False
    assert res.reason == "not_at_origin"
    assert (await session.get(PickingTask, task_id)).status == "open"


async def test_scan_unit_rejects_unit_away_from_origin(session, world):
    u, task_id = await _drifted(session, world, "3019")
    worker = PickingTaskService(session, world.actor("worker"))

    with pytest.raises(InvalidInput) as ei:
        await worker.scan_unit(task_id=task_id, unit_barcode="3019", from_cell_id=world.cell("A-02"))

    assert ei.value.code == "UNIT_NOT_AT_ORIGIN"
    assert ei.value.extra["expectedCellId"] == world.cell("A-01")
    await session.refresh(u)
    assert u.cell_id == world.cell("A-02")
    task = await session.get(PickingTask, task_id)
    assert task.status == "open"
    assert task.completed_at is None
