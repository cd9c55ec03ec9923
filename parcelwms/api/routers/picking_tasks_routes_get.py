# parcelwms/api/routers/picking_tasks_routes_get.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.api.routers.cells_schemas import CellOut
from parcelwms.api.routers.picking_tasks_schemas import PickingTaskOut, PickingTaskUnitOut
from parcelwms.services.actor import Actor
from parcelwms.services.picking_task_service import PickingTaskService


def register_get(router: APIRouter) -> None:
    @router.get("/picking-tasks/{task_id}", tags=["picking-tasks"])
    async def get_picking_task(
        task_id: int = Path(..., description="拣货任务 ID"),
        actor: Actor = Depends(require_op("task.list")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        task, target, rows = await PickingTaskService(session, actor).get(task_id)
        units = [
            PickingTaskUnitOut(
                unit_id=unit.id,
                barcode=unit.barcode,
                cell_id=unit.cell_id,
                status=unit.status,
                from_cell_id=tu.from_cell_id,
            ).model_dump()
            for tu, unit in rows
        ]
        return {
            "ok": True,
            "task": PickingTaskOut.model_validate(task).model_dump(mode="json"),
            "targetCell": CellOut.model_validate(target).model_dump(mode="json") if target else None,
            "units": units,
        }
