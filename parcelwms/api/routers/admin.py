# parcelwms/api/routers/admin.py
"""管理员工具：强制移位 / 批量移位 / 物理删除包裹，清理卡死任务，手动派发 outbox。"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session, get_session_factory
from parcelwms.api.routers.picking_tasks_schemas import CloseStaleIn
from parcelwms.api.routers.units_schemas import AdminBulkAssignIn, AdminMoveIn, AdminPurgeIn
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.outbox import OutboxDispatcher
from parcelwms.services.picking_task_service import PickingTaskService
from parcelwms.services.unit_moves import admin_bulk_assign, admin_move
from parcelwms.services.unit_service import purge_unit

router = APIRouter(prefix="/admin", tags=["admin"])


class OutboxDispatchIn(BaseModel):
    limit: int = Field(100, ge=1, le=1000)
    eventId: Optional[int] = None


@router.post("/units/move")
async def move_unit_admin(
    payload: AdminMoveIn,
    actor: Actor = Depends(require_op("unit.admin_move")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await admin_move(session, actor=actor, unit_id=payload.unitId, to_cell_id=payload.toCellId)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()


@router.post("/units/bulk-assign")
async def bulk_assign_admin(
    payload: AdminBulkAssignIn,
    actor: Actor = Depends(require_op("unit.admin_move")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await admin_bulk_assign(
            session, actor=actor, unit_ids=payload.unitIds, to_cell_id=payload.toCellId
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()


@router.post("/units/delete")
async def delete_unit_admin(
    payload: AdminPurgeIn,
    actor: Actor = Depends(require_op("unit.purge")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        barcode = await purge_unit(session, actor=actor, barcode=payload.barcode)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return {"ok": True, "barcode": barcode}


@router.post("/picking-tasks/close-stale-in-progress")
async def close_stale_in_progress(
    payload: Optional[CloseStaleIn] = None,
    actor: Actor = Depends(require_op("task.close_stale")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    payload = payload or CloseStaleIn()
    svc = PickingTaskService(session, actor)
    try:
        result = await svc.close_stale(older_than_days=payload.olderThanDays, include_open=payload.includeOpen)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result


@router.post("/outbox/dispatch")
async def dispatch_outbox(
    payload: Optional[OutboxDispatchIn] = None,
    actor: Actor = Depends(require_op("outbox.dispatch")),
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Dict[str, Any]:
    payload = payload or OutboxDispatchIn()
    # 鉴权时开启的读事务先结束，派发器每个事件用独立 session
    await session.rollback()
    ids = [payload.eventId] if payload.eventId is not None else None
    stats = await OutboxDispatcher(session_factory).dispatch_pending(ids=ids, limit=payload.limit)
    return {"ok": True, **stats}
