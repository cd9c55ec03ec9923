# parcelwms/api/routers/picking_tasks_routes_cancel.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.picking_task_service import PickingTaskService


def register_cancel(router: APIRouter) -> None:
    @router.post("/picking-tasks/{task_id}/cancel", tags=["picking-tasks"])
    async def cancel_picking_task(
        task_id: int = Path(..., description="拣货任务 ID"),
        actor: Actor = Depends(require_op("task.cancel")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            result = await svc.cancel(task_id)
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        return result.to_dict()

    @router.post("/picking-tasks/{task_id}/cancel/resume", tags=["picking-tasks"])
    async def resume_cancel_picking_task(
        task_id: int = Path(..., description="拣货任务 ID"),
        actor: Actor = Depends(require_op("task.cancel")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            result = await svc.resume_cancel(task_id)
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        return result.to_dict()
