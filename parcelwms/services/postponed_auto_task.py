# parcelwms/services/postponed_auto_task.py
"""
延期自动建任务：

运营把包裹 ops_status 设为 postponed_1 / postponed_2 后，按上一次任务的目标拣货位 + scenario
重新建一个 open 任务，把包裹从当前货位预留进去。

任何前置条件不满足都返回 {created: False, reason}，从不抛异常；
只由 outbox 派发器在独立事务里调用，不会影响触发它的请求。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.cell import Cell
from parcelwms.models.picking_task import PickingTask, PickingTaskUnit
from parcelwms.models.unit import Unit
from parcelwms.obs.metrics import postponed_auto_tasks_total
from parcelwms.services.actor import SYSTEM_ACTOR, Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import PICKABLE_SOURCE_TYPES
from parcelwms.services.outbox import register_handler
from parcelwms.services.picking_task_loaders import find_active_reservations
from parcelwms.services.picking_task_types import TASK_OPEN

logger = logging.getLogger("parcelwms.tasks")

POSTPONED_STATUSES: FrozenSet[str] = frozenset({"postponed_1", "postponed_2"})


def is_postponed(ops_status: Optional[str]) -> bool:
    return ops_status in POSTPONED_STATUSES


@dataclass
class AutoTaskResult:
    created: bool
    task_id: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.created:
            return {"created": True, "taskId": self.task_id}
        return {"created": False, "reason": self.reason}


def _skip(reason: str, unit_id: int) -> AutoTaskResult:
    postponed_auto_tasks_total.labels(reason).inc()
    logger.info("[postponed] unit=%s no task: %s", unit_id, reason)
    return AutoTaskResult(created=False, reason=reason)


async def _last_task(session: AsyncSession, unit_id: int) -> Optional[PickingTask]:
    stmt = (
        select(PickingTask)
        .join(PickingTaskUnit, PickingTaskUnit.picking_task_id == PickingTask.id)
        .where(PickingTaskUnit.unit_id == unit_id)
        .order_by(PickingTask.created_at.desc(), PickingTask.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


async def try_create_postponed_task(
    session: AsyncSession,
    *,
    unit_id: int,
    actor: Optional[Actor] = None,
) -> AutoTaskResult:
    who = actor or SYSTEM_ACTOR
    try:
        unit = await session.get(Unit, int(unit_id))
        if unit is None:
            return _skip("unit_not_found", unit_id)
        if not is_postponed(unit.ops_status):
            return _skip("not_postponed", unit_id)
        if unit.cell_id is None:
            return _skip("no_cell", unit_id)

        cell = await session.get(Cell, unit.cell_id)
        if cell is None or cell.cell_type not in PICKABLE_SOURCE_TYPES:
            return _skip("cell_not_storage_or_shipping", unit_id)

        last = await _last_task(session, unit.id)
        if last is None:
            return _skip("no_previous_task", unit_id)
        if last.target_picking_cell_id is None:
            return _skip("no_target_cell", unit_id)

        target = await session.get(Cell, last.target_picking_cell_id)
        if (
            target is None
            or target.cell_type != "picking"
            or not target.is_active
            or target.warehouse_id != unit.warehouse_id
        ):
            return _skip("target_cell_invalid", unit_id)

        if await find_active_reservations(session, [unit.id]):
            return _skip("already_in_active_task", unit_id)
    except Exception:
        logger.exception("[postponed] unit=%s precondition check failed", unit_id)
        return AutoTaskResult(created=False, reason="precondition_error")

    task = PickingTask(
        warehouse_id=unit.warehouse_id,
        status=TASK_OPEN,
        target_picking_cell_id=target.id,
        scenario=last.scenario,
        unit_id=None,
        from_cell_id=None,
        created_by=who.id,
        created_by_name=who.full_name,
    )
    try:
        async with session.begin_nested():
            session.add(task)
            await session.flush()
    except Exception:
        logger.exception("[postponed] unit=%s task insert failed", unit_id)
        return AutoTaskResult(created=False, reason="insert_failed")

    try:
        async with session.begin_nested():
            session.add(
                PickingTaskUnit(picking_task_id=task.id, unit_id=unit.id, from_cell_id=unit.cell_id)
            )
            await session.flush()
    except Exception:
        logger.exception("[postponed] unit=%s task-unit insert failed, dropping task %s", unit_id, task.id)
        # 不留孤儿任务
        await session.delete(task)
        await session.flush()
        return AutoTaskResult(created=False, reason="insert_failed")

    await AuditEventWriter.write(
        session,
        action="picking_task_created",
        entity_type="picking_task",
        entity_id=task.id,
        summary=f"Picking task {task.id} auto-created for postponed unit {unit.barcode}",
        actor=who,
        warehouse_id=unit.warehouse_id,
        meta={
            "auto": "postponed",
            "unit_id": unit.id,
            "ops_status": unit.ops_status,
            "previous_task_id": last.id,
            "target_picking_cell_id": target.id,
            "scenario": last.scenario,
        },
    )
    postponed_auto_tasks_total.labels("created").inc()
    logger.info("[postponed] unit=%s created task %s", unit_id, task.id)
    return AutoTaskResult(created=True, task_id=task.id)


def _payload_actor(payload: Dict[str, Any]) -> Optional[Actor]:
    if not payload.get("actor_id"):
        return None
    return Actor(id=str(payload["actor_id"]), full_name=payload.get("actor_name"))


@register_handler("unit.ops_status_changed")
@register_handler("unit.placed")
async def handle_unit_event(session: AsyncSession, payload: Dict[str, Any]) -> Dict[str, Any]:
    res = await try_create_postponed_task(
        session, unit_id=int(payload["unit_id"]), actor=_payload_actor(payload)
    )
    return res.to_dict()
