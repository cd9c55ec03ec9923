# parcelwms/services/picking_task_cancel.py
"""
取消任务（补偿式回滚）：

1) 为每个预留包裹写一行 picking_task_rollbacks（pending）
2) 逐个在 SAVEPOINT 里把包裹移回来源货位；单个失败只记 failed + 日志，继续下一个
3) 任务置为 canceled，写审计

failed / pending 的补偿行可以用 resume_cancel 重跑，回滚中途崩溃也能接着做。
"""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.db.types import utcnow
from parcelwms.models.picking_task import PickingTask, PickingTaskRollback
from parcelwms.models.unit import Unit
from parcelwms.obs.metrics import task_rollback_failures_total
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.errors import InvalidState, WmsError
from parcelwms.services.picking_task_loaders import load_task, load_task_units
from parcelwms.services.picking_task_types import (
    TASK_CANCELED,
    TERMINAL_STATUSES,
    CancelResult,
)
from parcelwms.services.unit_placement import place_unit

logger = logging.getLogger("parcelwms.tasks")

ROLLBACK_RETRYABLE = ("pending", "failed")


def _task_scope(actor: Actor):
    # admin 可以跨仓取消
    return None if actor.role == "admin" else actor.warehouse_id


async def _run_rollback(
    session: AsyncSession,
    *,
    actor: Actor,
    task: PickingTask,
    rb: PickingTaskRollback,
    result: CancelResult,
) -> None:
    if rb.from_cell_id is None:
        rb.status = "skipped"
        rb.error = "no origin cell recorded"
        result.units_skipped += 1
        return

    unit = await session.get(Unit, rb.unit_id)
    if unit is not None and unit.cell_id == rb.from_cell_id:
        rb.status = "skipped"
        rb.error = "already at origin cell"
        result.units_skipped += 1
        return

    try:
        async with session.begin_nested():
            await place_unit(
                session,
                actor=actor,
                unit_id=rb.unit_id,
                to_cell_id=rb.from_cell_id,
                source="picking.cancel",
                note=f"picking task {task.id} canceled",
                warehouse_id=task.warehouse_id,
                allow_blocked=True,
            )
    except Exception as e:
        message = e.message if isinstance(e, WmsError) else f"{type(e).__name__}: {e}"
        logger.warning(
            "[cancel-rollback] task=%s unit=%s to_cell=%s failed: %s",
            task.id,
            rb.unit_id,
            rb.from_cell_id,
            message,
        )
        task_rollback_failures_total.inc()
        rb.status = "failed"
        rb.error = message
        result.units_failed += 1
        result.failures.append({"unitId": rb.unit_id, "error": message})
        return

    rb.status = "done"
    rb.error = None
    result.units_returned += 1


async def cancel_task(session: AsyncSession, *, actor: Actor, task_id: int) -> CancelResult:
    task = await load_task(session, task_id, warehouse_id=_task_scope(actor), for_update=True)
    if task.status in TERMINAL_STATUSES:
        raise InvalidState(f"Task is already {task.status}", code="TASK_TERMINAL")

    rollbacks: List[PickingTaskRollback] = []
    for tu in await load_task_units(session, task.id):
        rb = PickingTaskRollback(
            picking_task_id=task.id,
            unit_id=tu.unit_id,
            from_cell_id=tu.from_cell_id,
            to_cell_id=task.target_picking_cell_id,
            status="pending",
        )
        session.add(rb)
        rollbacks.append(rb)
    await session.flush()

    result = CancelResult(task_id=task.id)
    for rb in rollbacks:
        await _run_rollback(session, actor=actor, task=task, rb=rb, result=result)
    await session.flush()

    task.status = TASK_CANCELED
    task.canceled_by = actor.id
    task.canceled_at = utcnow()
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="picking_task_canceled",
        entity_type="picking_task",
        entity_id=task.id,
        summary=f"Picking task {task.id} canceled, {result.units_returned} unit(s) returned",
        actor=actor,
        warehouse_id=task.warehouse_id,
        meta={
            "units_returned": result.units_returned,
            "units_failed": result.units_failed,
            "units_skipped": result.units_skipped,
        },
    )
    return result


async def resume_cancel(session: AsyncSession, *, actor: Actor, task_id: int) -> CancelResult:
    """重跑已取消任务里 pending / failed 的补偿行。"""
    task = await load_task(session, task_id, warehouse_id=_task_scope(actor), for_update=True)
    if task.status != TASK_CANCELED:
        raise InvalidState(
            f"Only canceled tasks can resume rollback (status={task.status})", code="TASK_NOT_CANCELED"
        )

    stmt = (
        select(PickingTaskRollback)
        .where(
            PickingTaskRollback.picking_task_id == task.id,
            PickingTaskRollback.status.in_(ROLLBACK_RETRYABLE),
        )
        .order_by(PickingTaskRollback.id)
    )
    result = CancelResult(task_id=task.id)
    for rb in list((await session.execute(stmt)).scalars()):
        await _run_rollback(session, actor=actor, task=task, rb=rb, result=result)
    await session.flush()

    if result.units_returned or result.units_failed:
        await AuditEventWriter.write(
            session,
            action="picking_task_rollback_resumed",
            entity_type="picking_task",
            entity_id=task.id,
            summary=f"Picking task {task.id} rollback resumed, {result.units_returned} unit(s) returned",
            actor=actor,
            warehouse_id=task.warehouse_id,
            meta={"units_returned": result.units_returned, "units_failed": result.units_failed},
        )
    return result
