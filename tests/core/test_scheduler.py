# tests/core/test_scheduler.py
from __future__ import annotations

from datetime import timedelta

import pytest

from parcelwms.core import scheduler
from parcelwms.core.config import AppSettings
from parcelwms.db.types import utcnow
from parcelwms.models.outbox_event import OutboxEvent
from parcelwms.models.picking_task import PickingTask
from parcelwms.services.outbox import publish
from parcelwms.services.picking_task_service import PickingTaskService

from tests.factories import make_unit
from tests.helpers import audit_actions


@pytest.mark.asyncio
async def test_sweep_closes_only_stale_tasks(session_factory, world):
    async with session_factory() as s:
        old_u = await make_unit(s, warehouse_id=world.wh_id, barcode="7001", cell_id=world.cell("A-01"), status="stored")
        new_u = await make_unit(s, warehouse_id=world.wh_id, barcode="7002", cell_id=world.cell("A-02"), status="stored")
        svc = PickingTaskService(s, world.actor("ops"))
        old = await svc.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[old_u.id])
        new = await svc.create(target_picking_cell_id=world.cell("P-02"), unit_ids=[new_u.id])
        await svc.start(old.task_id)
        await svc.start(new.task_id)
        (await s.get(PickingTask, old.task_id)).picked_at = utcnow() - timedelta(days=10)
        await s.commit()

    closed = await scheduler.sweep_stale_tasks(session_factory)

    assert closed == 1
    async with session_factory() as s:
        stale = await s.get(PickingTask, old.task_id)
        assert stale.status == "canceled"
        assert stale.canceled_by == "system"
        assert (await s.get(PickingTask, new.task_id)).status == "in_progress"
        assert "picking_task_auto_closed" in await audit_actions(s, entity_id=str(old.task_id))


@pytest.mark.asyncio
async def test_drain_outbox_processes_pending(session_factory, world):
    async with session_factory() as s:
        ev = await publish(s, "no.such.topic", {})
        await s.commit()

    await scheduler.drain_outbox(session_factory)

    async with session_factory() as s:
        assert (await s.get(OutboxEvent, ev.id)).status == "failed"


def test_scheduler_disabled_by_default(session_factory):
    scheduler.init_scheduler(AppSettings(ENABLE_SCHEDULER=False), session_factory)
    assert scheduler._scheduler is None
