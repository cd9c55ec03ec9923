# parcelwms/services/picking_task_loaders.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.core.config import get_settings
from parcelwms.models.picking_task import PickingTask, PickingTaskUnit
from parcelwms.models.unit import Unit
from parcelwms.services.errors import NotFound
from parcelwms.services.picking_task_types import ACTIVE_STATUSES


async def load_task(
    session: AsyncSession,
    task_id: int,
    *,
    warehouse_id: Optional[int] = None,
    for_update: bool = False,
) -> PickingTask:
    """
    按仓库范围加载任务：不存在或不在该仓 → NotFound（不暴露其他仓的任务）。
    warehouse_id=None 表示不做仓库过滤（admin 取消）。
    """
    stmt = select(PickingTask).where(PickingTask.id == int(task_id))
    if warehouse_id is not None:
        stmt = stmt.where(PickingTask.warehouse_id == warehouse_id)
    if for_update:
        stmt = stmt.with_for_update()
    task = (await session.execute(stmt)).scalars().first()
    if task is None:
        raise NotFound(f"Picking task not found: id={task_id}", code="TASK_NOT_FOUND")
    return task


async def _legacy_units(session: AsyncSession, task_ids: Sequence[int]) -> Dict[int, PickingTaskUnit]:
    """
    老数据适配：只有 picking_tasks.unit_id / from_cell_id、没有关联行的任务，
    读取时转成一条临时 PickingTaskUnit（不加入 session，不落库）。
    """
    ids = [int(t) for t in task_ids]
    if not ids:
        return {}
    has_rows = select(PickingTaskUnit.id).where(PickingTaskUnit.picking_task_id == PickingTask.id).exists()
    stmt = select(PickingTask.id, PickingTask.unit_id, PickingTask.from_cell_id).where(
        PickingTask.id.in_(ids),
        PickingTask.unit_id.is_not(None),
        ~has_rows,
    )
    return {
        int(tid): PickingTaskUnit(picking_task_id=int(tid), unit_id=int(uid), from_cell_id=from_cell)
        for tid, uid, from_cell in (await session.execute(stmt)).all()
    }


async def load_task_units(session: AsyncSession, task_id: int) -> List[PickingTaskUnit]:
    stmt = (
        select(PickingTaskUnit)
        .where(PickingTaskUnit.picking_task_id == task_id)
        .order_by(PickingTaskUnit.id)
    )
    rows = list((await session.execute(stmt)).scalars())
    if rows:
        return rows
    legacy = await _legacy_units(session, [task_id])
    return [legacy[task_id]] if task_id in legacy else []


async def count_task_units(session: AsyncSession, task_ids: Sequence[int]) -> Dict[int, int]:
    if not task_ids:
        return {}
    stmt = (
        select(PickingTaskUnit.picking_task_id, func.count())
        .where(PickingTaskUnit.picking_task_id.in_(list(task_ids)))
        .group_by(PickingTaskUnit.picking_task_id)
    )
    counts = {int(tid): int(n) for tid, n in (await session.execute(stmt)).all()}
    missing = [t for t in task_ids if int(t) not in counts]
    for tid in await _legacy_units(session, missing):
        counts[tid] = 1
    return counts


def _chunks(items: Sequence[int], size: int):
    for i in range(0, len(items), size):
        yield items[i : i + size]


async def find_active_reservations(
    session: AsyncSession,
    unit_ids: Sequence[int],
    *,
    exclude_task_id: Optional[int] = None,
    chunk_size: Optional[int] = None,
) -> Dict[int, int]:
    """
    返回 {unit_id: task_id}：这些包裹已被 open / in_progress 任务占用。
    IN 列表按 chunk_size 分批查询。
    """
    ids = list(dict.fromkeys(int(u) for u in unit_ids))
    if not ids:
        return {}
    size = chunk_size or get_settings().TASK_UNIT_CHUNK_SIZE

    out: Dict[int, int] = {}
    for chunk in _chunks(ids, size):
        stmt = (
            select(PickingTaskUnit.unit_id, PickingTaskUnit.picking_task_id)
            .join(PickingTask, PickingTask.id == PickingTaskUnit.picking_task_id)
            .where(
                PickingTaskUnit.unit_id.in_(chunk),
                PickingTask.status.in_(ACTIVE_STATUSES),
            )
        )
        if exclude_task_id is not None:
            stmt = stmt.where(PickingTask.id != exclude_task_id)
        for unit_id, task_id in (await session.execute(stmt)).all():
            out.setdefault(int(unit_id), int(task_id))

        legacy = select(PickingTask.unit_id, PickingTask.id).where(
            PickingTask.unit_id.in_(chunk),
            PickingTask.status.in_(ACTIVE_STATUSES),
        )
        if exclude_task_id is not None:
            legacy = legacy.where(PickingTask.id != exclude_task_id)
        for unit_id, task_id in (await session.execute(legacy)).all():
            out.setdefault(int(unit_id), int(task_id))
    return out


async def find_active_task_for_unit(
    session: AsyncSession, unit_id: int, *, warehouse_id: int
) -> Optional[Tuple[PickingTask, PickingTaskUnit]]:
    stmt = (
        select(PickingTask, PickingTaskUnit)
        .join(PickingTaskUnit, PickingTaskUnit.picking_task_id == PickingTask.id)
        .where(
            PickingTaskUnit.unit_id == unit_id,
            PickingTask.warehouse_id == warehouse_id,
            PickingTask.status.in_(ACTIVE_STATUSES),
        )
        .order_by(PickingTask.created_at.desc(), PickingTask.id.desc())
        .limit(1)
    )
    row = (await session.execute(stmt)).first()
    if row is not None:
        return row[0], row[1]

    legacy_stmt = (
        select(PickingTask)
        .where(
            PickingTask.unit_id == unit_id,
            PickingTask.warehouse_id == warehouse_id,
            PickingTask.status.in_(ACTIVE_STATUSES),
        )
        .order_by(PickingTask.created_at.desc(), PickingTask.id.desc())
        .limit(1)
    )
    task = (await session.execute(legacy_stmt)).scalars().first()
    if task is None:
        return None
    legacy = await _legacy_units(session, [task.id])
    if task.id not in legacy:
        return None
    return task, legacy[task.id]


async def load_task_units_with_units(
    session: AsyncSession, task_id: int
) -> List[Tuple[PickingTaskUnit, Unit]]:
    stmt = (
        select(PickingTaskUnit, Unit)
        .join(Unit, Unit.id == PickingTaskUnit.unit_id)
        .where(PickingTaskUnit.picking_task_id == task_id)
        .order_by(PickingTaskUnit.id)
    )
    rows = [(r[0], r[1]) for r in (await session.execute(stmt)).all()]
    if rows:
        return rows
    legacy = await _legacy_units(session, [task_id])
    if task_id not in legacy:
        return []
    unit = await session.get(Unit, legacy[task_id].unit_id)
    return [(legacy[task_id], unit)] if unit is not None else []
