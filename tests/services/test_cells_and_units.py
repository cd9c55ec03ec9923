# tests/services/test_cells_and_units.py
from __future__ import annotations

import pytest
from sqlalchemy import func, select

from parcelwms.models.outbound import OutboundShipment
from parcelwms.models.picking_task import PickingTask, PickingTaskUnit
from parcelwms.models.unit import Unit
from parcelwms.models.unit_move import UnitMove
from parcelwms.services.cell_service import (
    create_cell,
    deactivate_cell,
    list_cells,
    set_cell_blocked,
    update_cell_position,
)
from parcelwms.services.errors import Forbidden, InvalidInput, NotFound
from parcelwms.services.outbound_service import ship_out
from parcelwms.services.picking_task_service import PickingTaskService
from parcelwms.services.unit_placement import place_unit
from parcelwms.services.unit_service import (
    create_unit,
    get_unit,
    get_unit_by_barcode,
    list_units,
    purge_unit,
    unit_history,
    update_ops_status,
)

from tests.factories import make_unit
from tests.helpers import audit_actions

pytestmark = pytest.mark.asyncio


async def test_create_cell_normalizes_and_rejects_duplicates(session, world):
    actor = world.actor("manager")
    cell = await create_cell(session, actor=actor, code=" cell:b-07 ", cell_type="storage")
    assert cell.code == "B-07"
    assert cell.is_active is True

    with pytest.raises(InvalidInput) as ei:
        await create_cell(session, actor=actor, code="B-07", cell_type="storage")
    assert ei.value.code == "CELL_CODE_EXISTS"

    with pytest.raises(InvalidInput) as ei:
        await create_cell(session, actor=actor, code="B-08", cell_type="garage")
    assert ei.value.code == "INVALID_CELL_TYPE"
    assert "storage" in ei.value.extra["allowed"]


async def test_deactivate_requires_empty_cell(session, world):
    actor = world.actor("admin")
    await make_unit(session, warehouse_id=world.wh_id, barcode="8001", cell_id=world.cell("A-01"), status="stored")

    with pytest.raises(InvalidInput) as ei:
        await deactivate_cell(session, actor=actor, cell_id=world.cell("A-01"))
    assert ei.value.code == "CELL_NOT_EMPTY"
    assert ei.value.extra["unitCount"] == 1

    cell = await deactivate_cell(session, actor=actor, cell_id=world.cell("A-02"))
    assert cell.is_active is False
    codes = [c.code for c in await list_cells(session, warehouse_id=world.wh_id, cell_type="storage")]
    assert codes == ["A-01"]


async def test_block_and_unblock(session, world):
    actor = world.actor("manager")
    cell = await set_cell_blocked(session, actor=actor, cell_id=world.cell("S-01"), blocked=True)
    assert cell.is_blocked is True
    cell = await set_cell_blocked(session, actor=actor, cell_id=world.cell("S-01"), blocked=False)
    assert cell.is_blocked is False
    assert await audit_actions(session, entity_id=cell.id) == ["cell.block", "cell.unblock"]


async def test_create_unit_digits_only(session, world):
    actor = world.actor("worker")
    unit = await create_unit(session, actor=actor, digits="123456")
    assert unit.status == "receiving" and unit.cell_id is None

    with pytest.raises(InvalidInput) as ei:
        await create_unit(session, actor=actor, digits="12a4")
    assert ei.value.code == "INVALID_BARCODE"


async def test_history_is_newest_first(session, world):
    actor = world.actor("worker")
    u = await make_unit(session, warehouse_id=world.wh_id, barcode="8002")
    await place_unit(session, actor=actor, unit_id=u.id, to_cell_id=world.cell("A-01"))
    await place_unit(session, actor=actor, unit_id=u.id, to_cell_id=world.cell("S-01"))

    moves = await unit_history(session, actor=actor, unit_id=u.id)
    assert [m.to_cell_id for m in moves] == [world.cell("S-01"), world.cell("A-01")]

    unit, cell = await get_unit(session, actor=actor, unit_id=u.id)
    assert unit.status == "shipping"
    assert cell.code == "S-01"


async def test_ops_status(session, world):
    ops = world.actor("ops")
    u = await make_unit(session, warehouse_id=world.wh_id, barcode="8003")

    with pytest.raises(InvalidInput) as ei:
        await update_ops_status(session, actor=ops, unit_id=u.id, status="lost_forever")
    assert ei.value.code == "INVALID_OPS_STATUS"
    assert "postponed_1" in ei.value.extra["validStatuses"]

    unit, event = await update_ops_status(session, actor=ops, unit_id=u.id, status="sent_to_client", comment=" ok ")
    assert event is None
    assert unit.ops_status == "sent_to_client"
    assert unit.meta["ops_status_comment"] == "ok"

    unit, event = await update_ops_status(session, actor=ops, unit_id=u.id, status="postponed_1")
    assert event is not None
    assert event.topic == "unit.ops_status_changed"
    assert event.payload["unit_id"] == u.id


async def test_update_cell_position(session, world):
    actor = world.actor("worker")
    cell = await update_cell_position(session, actor=actor, cell_id=world.cell("A-01"), x=320, y=40, w=120)
    assert (cell.x, cell.y, cell.w, cell.h) == (320, 40, 120, 60)
    assert "cell.update" in await audit_actions(session, entity_id=cell.id)

    with pytest.raises(InvalidInput):
        await update_cell_position(session, actor=actor, cell_id=world.cell("A-01"), x=None, y=10)
    with pytest.raises(InvalidInput) as ei:
        await update_cell_position(session, actor=actor, cell_id=world.cell("A-01"), x=1, y=1, h=0)
    assert ei.value.code == "INVALID_SIZE"
    with pytest.raises(Forbidden):
        await update_cell_position(session, actor=actor, cell_id=world.cell("HUB-BIN"), x=1, y=1)


async def test_lookup_and_list_units(session, world):
    actor = world.actor("worker")
    placed = await make_unit(session, warehouse_id=world.wh_id, barcode="8101", cell_id=world.cell("A-01"), status="stored")
    loose = await make_unit(session, warehouse_id=world.wh_id, barcode="8102")

    unit, cell = await get_unit_by_barcode(session, actor=actor, barcode="81-01")
    assert unit.id == placed.id
    assert cell.code == "A-01"
    with pytest.raises(NotFound):
        await get_unit_by_barcode(session, actor=actor, barcode="8199")

    assert [u.id for u in await list_units(session, actor=actor, status="stored")] == [placed.id]
    assert [u.id for u in await list_units(session, actor=actor, cell_id=world.cell("A-01"))] == [placed.id]
    assert [u.id for u in await list_units(session, actor=actor, unplaced=True)] == [loose.id]


async def test_purge_unit_removes_dependent_rows(session, world):
    admin = world.actor("admin")
    u = await make_unit(session, warehouse_id=world.wh_id, barcode="8201", cell_id=world.cell("A-01"), status="stored")
    other = await make_unit(session, warehouse_id=world.wh_id, barcode="8202", cell_id=world.cell("A-02"), status="stored")
    await PickingTaskService(session, world.actor("ops")).create(
        target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id, other.id]
    )
    await place_unit(session, actor=admin, unit_id=u.id, to_cell_id=world.cell("S-01"))
    await ship_out(session, actor=admin, unit_id=u.id, courier_name="DPD")
    legacy = PickingTask(warehouse_id=world.wh_id, status="done", unit_id=u.id, from_cell_id=world.cell("A-01"))
    session.add(legacy)
    await session.flush()

    assert await purge_unit(session, actor=admin, barcode="8201") == "8201"

    assert await session.get(Unit, u.id) is None
    for model in (PickingTaskUnit, UnitMove, OutboundShipment):
        n = (await session.execute(select(func.count()).select_from(model).where(model.unit_id == u.id))).scalar_one()
        assert n == 0, model.__name__
    legacy_unit_id = (
        await session.execute(select(PickingTask.unit_id).where(PickingTask.id == legacy.id))
    ).scalar_one()
    assert legacy_unit_id is None
    # 同任务里的其他包裹不受影响
    assert (
        await session.execute(select(func.count()).select_from(PickingTaskUnit).where(PickingTaskUnit.unit_id == other.id))
    ).scalar_one() == 1
    assert "unit.delete" in await audit_actions(session, entity_id=u.id)

    with pytest.raises(NotFound):
        await purge_unit(session, actor=admin, barcode="8201")
