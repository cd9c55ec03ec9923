# tests/services/test_inventory.py
from __future__ import annotations

import pytest

from parcelwms.services.errors import Conflict
from parcelwms.services.inventory_service import cell_scan, get_status, start_inventory, stop_inventory

from tests.factories import make_unit

pytestmark = pytest.mark.asyncio


async def test_start_stop_cycle(session, world):
    admin = world.actor("admin")
    st = await start_inventory(session, actor=admin, warehouse_id=world.wh_id)
    assert st.active is True and st.session_id is not None
    assert (await get_status(session, world.wh_id)).session_id == st.session_id

    with pytest.raises(Conflict) as ei:
        await start_inventory(session, actor=admin, warehouse_id=world.wh_id)
    assert ei.value.code == "INVENTORY_ALREADY_ACTIVE"

    await stop_inventory(session, actor=admin, warehouse_id=world.wh_id)
    st = await get_status(session, world.wh_id)
    assert st.active is False and st.session_id is None

    with pytest.raises(Conflict):
        await stop_inventory(session, actor=admin, warehouse_id=world.wh_id)


async def test_cell_scan_reports_missing_and_extra(session, world):
    admin = world.actor("admin")
    for code in ("7001", "7002"):
        await make_unit(session, warehouse_id=world.wh_id, barcode=code, cell_id=world.cell("A-01"), status="stored")

    with pytest.raises(Conflict):
        await cell_scan(session, actor=admin, warehouse_id=world.wh_id, cell_code="A-01", unit_barcodes=[])

    await start_inventory(session, actor=admin, warehouse_id=world.wh_id)
    res = await cell_scan(
        session,
        actor=admin,
        warehouse_id=world.wh_id,
        cell_code="a-01",
        unit_barcodes=["7001", "7001", "7999", ""],
    )
    assert res.cell_code == "A-01"
    assert res.scanned == ["7001", "7999"]
    assert res.missing == ["7002"]
    assert res.extra == ["7999"]
    body = res.to_dict()
    assert (body["expected"], body["scanned"]) == (2, 2)
