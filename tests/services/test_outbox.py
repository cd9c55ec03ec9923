# tests/services/test_outbox.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from parcelwms.models.outbox_event import OutboxEvent
from parcelwms.models.picking_task import PickingTask
from parcelwms.services.outbox import OutboxDispatcher, publish, registered_topics
from parcelwms.services.picking_task_service import PickingTaskService
from parcelwms.services.unit_service import update_ops_status

from tests.factories import make_unit

pytestmark = pytest.mark.asyncio


def test_handlers_registered():
    topics = registered_topics()
    assert "unit.placed" in topics
    assert "unit.ops_status_changed" in topics


async def test_publish_is_transactional(session, session_factory, world):
    await publish(session, "unit.placed", {"unit_id": 1})
    await session.rollback()

    async with session_factory() as s:
        assert list((await s.execute(select(OutboxEvent))).scalars()) == []


async def test_dispatch_runs_postponed_generator(session, session_factory, world):
    ops = world.actor("ops")
    u = await make_unit(
        session, warehouse_id=world.wh_id, barcode="5001", cell_id=world.cell("A-01"), status="stored"
    )
    svc = PickingTaskService(session, ops)
    prior = await svc.create(target_picking_cell_id=world.cell("P-01"), unit_ids=[u.id], scenario="second try")
    await svc.cancel(prior.task_id)
    _, event = await update_ops_status(session, actor=ops, unit_id=u.id, status="postponed_2")
    assert event is not None
    await session.commit()

    stats = await OutboxDispatcher(session_factory).dispatch_pending()

    assert stats == {"processed": 1, "done": 1, "failed": 0}
    async with session_factory() as s:
        ev = await s.get(OutboxEvent, event.id)
        assert ev.status == "done"
        assert ev.attempts == 1
        assert ev.result["created"] is True
        task = await s.get(PickingTask, ev.result["taskId"])
        assert task.status == "open"
        assert task.scenario == "second try"
        assert task.created_by == ops.id

    # 已处理过的事件不会再派发
    assert await OutboxDispatcher(session_factory).dispatch_pending() == {"processed": 0, "done": 0, "failed": 0}


async def test_unknown_topic_marks_failed(session_factory, world):
    async with session_factory() as s:
        ev = await publish(s, "no.such.topic", {})
        await s.commit()

    stats = await OutboxDispatcher(session_factory).dispatch_pending(ids=[ev.id])

    assert stats["failed"] == 1
    async with session_factory() as s:
        row = await s.get(OutboxEvent, ev.id)
        assert row.status == "failed"
        assert "no handler" in row.last_error
