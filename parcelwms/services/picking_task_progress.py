# parcelwms/services/picking_task_progress.py
"""
拣货执行：开始（抢占）/ 扫码查任务 / 逐件扫入 / 批量完成检查。

open → in_progress 只能通过 _acquire 的条件更新（WHERE status='open'）完成，
两个并发 start 最多一个成功，另一个读回持有人后按同人幂等 / 他人冲突处理。
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.db.types import utcnow
from parcelwms.models.cell import Cell
from parcelwms.models.picking_task import PickingTask
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import normalize_barcode
from parcelwms.services.errors import Conflict, InvalidInput, InvalidState, NotFound
from parcelwms.services.picking_task_loaders import (
    find_active_task_for_unit,
    load_task,
    load_task_units_with_units,
)
from parcelwms.services.picking_task_types import (
    TASK_CANCELED,
    TASK_DONE,
    TASK_IN_PROGRESS,
    TASK_OPEN,
    BatchResult,
    CheckUnitResult,
    StartResult,
)
from parcelwms.services.unit_loaders import find_unit_by_barcode
from parcelwms.services.unit_placement import place_unit

logger = logging.getLogger("parcelwms.tasks")


def _held_by_other(task: PickingTask, actor: Actor) -> bool:
    return task.status == TASK_IN_PROGRESS and bool(task.picked_by) and task.picked_by != actor.id


async def _acquire(session: AsyncSession, task: PickingTask, actor: Actor, *, auto: bool) -> bool:
    """
    open → in_progress（CAS）。返回 True 表示本次调用拿到了锁；
    False 表示任务已不是 open（调用方读 task 当前值再判断）。
    """
    res = await session.execute(
        update(PickingTask)
        .where(PickingTask.id == task.id, PickingTask.status == TASK_OPEN)
        .values(status=TASK_IN_PROGRESS, picked_by=actor.id, picked_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.refresh(task)
    if res.rowcount != 1:
        return False

    await AuditEventWriter.write(
        session,
        action="picking_task_start",
        entity_type="picking_task",
        entity_id=task.id,
        summary=f"Picking task {task.id} started by {actor.display_name}",
        actor=actor,
        warehouse_id=task.warehouse_id,
        meta={"auto": auto},
    )
    return True


async def start_task(session: AsyncSession, *, actor: Actor, task_id: Optional[int]) -> StartResult:
    if not task_id:
        raise InvalidInput("taskId is required")
    task = await load_task(session, task_id, warehouse_id=actor.warehouse_id)

    if task.status == TASK_OPEN and await _acquire(session, task, actor, auto=False):
        return StartResult(task_id=task.id, picked_by=task.picked_by)

    if task.status == TASK_IN_PROGRESS:
        if task.picked_by == actor.id:
            return StartResult(task_id=task.id, picked_by=task.picked_by, already_started=True)
        raise Conflict(
            "Task is already being picked by another user",
            code="TASK_LOCKED",
            extra={"pickedBy": task.picked_by},
        )

    raise InvalidState(f"Task cannot be started (status={task.status})", code="TASK_NOT_OPEN")


async def _target_cell(session: AsyncSession, task: PickingTask) -> Cell:
    cell = (
        await session.get(Cell, task.target_picking_cell_id)
        if task.target_picking_cell_id is not None
        else None
    )
    if cell is None:
        raise InvalidState(
            f"Picking task {task.id} has no target picking cell", code="TASK_NO_TARGET"
        )
    return cell


async def check_unit(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_barcode: Optional[str],
    from_cell_id: Optional[int],
) -> CheckUnitResult:
    """
    扫码枪：在 from 货位扫到包裹后，查它属于哪个进行中的任务、应该送到哪个拣货位。
    软性不匹配返回 found=False（带 reason），不算错误；open 任务会被自动开始。
    """
    barcode = normalize_barcode(unit_barcode)
    if not barcode or not from_cell_id:
        raise InvalidInput("unitBarcode and fromCellId are required")

    unit = await find_unit_by_barcode(session, actor.warehouse_id, barcode)
    if unit is None:
        raise NotFound(f"Unit {barcode} not found", code="UNIT_NOT_FOUND")

    hit = await find_active_task_for_unit(session, unit.id, warehouse_id=actor.warehouse_id)
    if hit is None:
        return CheckUnitResult(found=False, unit=unit, reason="no_active_task")
    task, tu = hit

    to_cell = await _target_cell(session, task)
    if unit.cell_id == to_cell.id:
        return CheckUnitResult(found=False, unit=unit, task=task, to_cell=to_cell, reason="already_in_target")
    # 只认预留时记录的来源货位
    if tu.from_cell_id is not None and tu.from_cell_id != int(from_cell_id):
        return CheckUnitResult(found=False, unit=unit, task=task, reason="not_at_origin")
    if unit.cell_id != int(from_cell_id):
        return CheckUnitResult(found=False, unit=unit, task=task, reason="unit_not_in_cell")

    if task.status == TASK_OPEN:
        await _acquire(session, task, actor, auto=True)

    return CheckUnitResult(found=True, unit=unit, task=task, to_cell=to_cell)


async def _mark_done(session: AsyncSession, task: PickingTask, actor: Actor, *, unit_count: int) -> None:
    task.status = TASK_DONE
    task.completed_by = actor.id
    task.completed_at = utcnow()
    await session.flush()
    await AuditEventWriter.write(
        session,
        action="picking_task_completed",
        entity_type="picking_task",
        entity_id=task.id,
        summary=f"Picking task {task.id} completed ({unit_count} unit(s))",
        actor=actor,
        warehouse_id=task.warehouse_id,
        meta={"unit_count": unit_count},
    )


async def _progress(
    session: AsyncSession, task: PickingTask, *, reported: Iterable[int] = ()
) -> tuple[int, int]:
    """(已到位数, 总数)：已在目标货位的包裹 + 客户端报告已移动的本任务包裹。"""
    rows = await load_task_units_with_units(session, task.id)
    reserved = {tu.unit_id for tu, _ in rows}
    moved = {u.id for _, u in rows if u.cell_id == task.target_picking_cell_id}
    moved |= reserved & {int(x) for x in reported}
    return len(moved), len(reserved)


def _ensure_not_terminal(task: PickingTask) -> None:
    if task.status == TASK_DONE:
        raise InvalidState("Task already completed", code="TASK_DONE")
    if task.status == TASK_CANCELED:
        raise InvalidState("Task is canceled", code="TASK_CANCELED")


async def complete_batch(
    session: AsyncSession,
    *,
    actor: Actor,
    task_id: Optional[int],
    moved_unit_ids: Iterable[int] = (),
) -> BatchResult:
    """
    分批完成：每批移动后调用，已到位数 ≥ 总数即把任务置为 done；
    否则保持 in_progress 并返回进度，允许跨多次请求继续。
    """
    if not task_id:
        raise InvalidInput("taskId is required")
    task = await load_task(session, task_id, warehouse_id=actor.warehouse_id, for_update=True)
    _ensure_not_terminal(task)

    moved, total = await _progress(session, task, reported=moved_unit_ids)
    if total == 0:
        await _mark_done(session, task, actor, unit_count=0)
        return BatchResult(task.id, True, 0, 0, "Task has no units; closed")

    if moved >= total:
        await _mark_done(session, task, actor, unit_count=total)
        return BatchResult(task.id, True, moved, total, "Task completed")

    return BatchResult(task.id, False, moved, total, f"Moved {moved} of {total}")


async def scan_unit(
    session: AsyncSession,
    *,
    actor: Actor,
    task_id: Optional[int],
    unit_barcode: Optional[str],
    from_cell_id: Optional[int] = None,
) -> BatchResult:
    """逐件扫入：把本任务的包裹从来源货位移到目标拣货位，随后做完成检查。"""
    barcode = normalize_barcode(unit_barcode)
    if not task_id or not barcode:
        raise InvalidInput("taskId and unitBarcode are required")

    task = await load_task(session, task_id, warehouse_id=actor.warehouse_id, for_update=True)
    _ensure_not_terminal(task)
    if _held_by_other(task, actor):
        raise Conflict(
            "Task is already being picked by another user",
            code="TASK_LOCKED",
            extra={"pickedBy": task.picked_by},
        )

    unit = await find_unit_by_barcode(session, actor.warehouse_id, barcode)
    if unit is None:
        raise NotFound(f"Unit {barcode} not found", code="UNIT_NOT_FOUND")

    rows = await load_task_units_with_units(session, task.id)
    tu = next((r for r, _ in rows if r.unit_id == unit.id), None)
    if tu is None:
        raise InvalidInput(f"Unit {barcode} is not part of task {task.id}", code="UNIT_NOT_IN_TASK")

    target = await _target_cell(session, task)
    if unit.cell_id != target.id and tu.from_cell_id is not None and unit.cell_id != tu.from_cell_id:
        raise InvalidInput(
            f"Unit {barcode} is not at its origin cell {tu.from_cell_id}",
            code="UNIT_NOT_AT_ORIGIN",
            extra={"expectedCellId": tu.from_cell_id, "currentCellId": unit.cell_id},
        )
    if from_cell_id is not None and unit.cell_id not in (int(from_cell_id), target.id):
        raise InvalidInput(
            f"Unit {barcode} is not in cell {from_cell_id}", code="UNIT_NOT_IN_FROM_CELL"
        )

    if task.status == TASK_OPEN:
        await _acquire(session, task, actor, auto=True)
        if _held_by_other(task, actor):
            raise Conflict("Task is already being picked by another user", code="TASK_LOCKED")

    if unit.cell_id != target.id:
        await place_unit(
            session,
            actor=actor,
            unit_id=unit.id,
            to_cell_id=target.id,
            source="picking.scan",
            note=f"picking task {task.id}",
        )

    moved, total = await _progress(session, task)
    if moved >= total:
        await _mark_done(session, task, actor, unit_count=total)
        return BatchResult(task.id, True, moved, total, "Task completed")
    return BatchResult(task.id, False, moved, total, f"Moved {moved} of {total}")
