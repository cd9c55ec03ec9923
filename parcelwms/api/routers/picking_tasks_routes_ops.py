# parcelwms/api/routers/picking_tasks_routes_ops.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.api.routers.picking_tasks_schemas import PickingTaskOut, TaskCreateIn, TaskScenarioIn
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.picking_task_service import PickingTaskService


def register_ops(router: APIRouter) -> None:
    @router.post("/ops/picking-tasks/create", tags=["ops-picking-tasks"])
    async def create_picking_task(
        payload: TaskCreateIn,
        actor: Actor = Depends(require_op("task.create")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            result = await svc.create(
                target_picking_cell_id=payload.targetPickingCellId,
                unit_ids=payload.unitIds,
                barcodes=payload.barcodes,
                scenario=payload.scenario,
            )
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        return result.to_dict()

    @router.patch("/ops/picking-tasks/{task_id}/scenario", tags=["ops-picking-tasks"])
    async def update_picking_task_scenario(
        payload: TaskScenarioIn,
        task_id: int = Path(..., description="拣货任务 ID"),
        actor: Actor = Depends(require_op("task.scenario")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            task = await svc.update_scenario(task_id, payload.scenario)
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        return {"ok": True, "task": PickingTaskOut.model_validate(task).model_dump(mode="json")}
