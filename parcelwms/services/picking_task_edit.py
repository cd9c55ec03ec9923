# parcelwms/services/picking_task_edit.py
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.core.config import get_settings
from parcelwms.db.types import utcnow
from parcelwms.models.picking_task import PickingTask
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.errors import InvalidInput, InvalidState
from parcelwms.services.picking_task_loaders import load_task
from parcelwms.services.picking_task_types import (
    ACTIVE_STATUSES,
    TASK_CANCELED,
    TASK_IN_PROGRESS,
    TASK_OPEN,
)


def normalize_scenario(value: Any) -> Optional[str]:
    """scenario 只接受 str / None；去空白，空串视为 None，超长报错。"""
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInput("scenario must be a string or null", code="INVALID_SCENARIO")
    text = value.strip()
    if not text:
        return None
    max_len = get_settings().SCENARIO_MAX_LEN
    if len(text) > max_len:
        raise InvalidInput(
            f"scenario is too long (max {max_len} characters)", code="SCENARIO_TOO_LONG"
        )
    return text


async def update_scenario(
    session: AsyncSession,
    *,
    actor: Actor,
    task_id: int,
    scenario: Any,
) -> PickingTask:
    new_value = normalize_scenario(scenario)

    task = await load_task(session, task_id, warehouse_id=actor.warehouse_id, for_update=True)
    if task.status not in ACTIVE_STATUSES:
        raise InvalidState(
            f"Scenario can only be changed for open or in_progress tasks (status={task.status})",
            code="TASK_TERMINAL",
        )

    old_value = task.scenario
    task.scenario = new_value
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="picking_task_scenario_update",
        entity_type="picking_task",
        entity_id=task.id,
        summary=f"Picking task {task.id} scenario changed",
        actor=actor,
        warehouse_id=task.warehouse_id,
        meta={"old_scenario": old_value, "new_scenario": new_value},
    )
    return task


async def close_stale_tasks(
    session: AsyncSession,
    *,
    actor: Actor,
    older_than_days: Optional[int] = None,
    include_open: bool = False,
) -> Dict[str, Any]:
    """
    清理卡死的任务：picked_at（无则 created_at）早于阈值的 in_progress 任务直接置为 canceled，
    不移动包裹（包裹需要人工核对）。
    """
    days = get_settings().STALE_TASK_DAYS if older_than_days is None else int(older_than_days)
    if days < 0:
        raise InvalidInput("olderThanDays must be >= 0")
    cutoff = utcnow() - timedelta(days=days)

    statuses = [TASK_IN_PROGRESS] + ([TASK_OPEN] if include_open else [])
    stmt = (
        select(PickingTask)
        .where(
            PickingTask.warehouse_id == actor.warehouse_id,
            PickingTask.status.in_(statuses),
            func.coalesce(PickingTask.picked_at, PickingTask.created_at) < cutoff,
        )
        .order_by(PickingTask.id)
        .with_for_update()
    )
    tasks: List[PickingTask] = list((await session.execute(stmt)).scalars())

    now = utcnow()
    for task in tasks:
        prev = task.status
        task.status = TASK_CANCELED
        task.canceled_by = actor.id
        task.canceled_at = now
        await session.flush()
        await AuditEventWriter.write(
            session,
            action="picking_task_auto_closed",
            entity_type="picking_task",
            entity_id=task.id,
            summary=f"Stale picking task {task.id} closed ({prev} older than {days} days)",
            actor=actor,
            warehouse_id=task.warehouse_id,
            meta={"previous_status": prev, "older_than_days": days},
        )

    return {"ok": True, "closed": len(tasks), "taskIds": [t.id for t in tasks]}
