# parcelwms/api/routers/picking_tasks_routes_tsd.py
"""扫码枪（TSD）拣货：列表 / 开始 / 查件 / 扫入 / 批量完成。"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.api.routers.cells_schemas import CellOut
from parcelwms.api.routers.picking_tasks_schemas import (
    PickingTaskOut,
    TaskCompleteBatchIn,
    TaskScanUnitIn,
    TaskStartIn,
)
from parcelwms.api.routers.units_schemas import UnitOut
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.picking_task_service import PickingTaskService


def _dump(schema, obj) -> Optional[Dict[str, Any]]:
    return schema.model_validate(obj).model_dump(mode="json") if obj is not None else None


def register_tsd(router: APIRouter) -> None:
    @router.get("/tsd/shipping-tasks/list", tags=["tsd"])
    async def list_shipping_tasks(
        actor: Actor = Depends(require_op("tsd.task_list")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        rows = await PickingTaskService(session, actor).list_active()
        tasks = []
        for task, cell, count in rows:
            item = _dump(PickingTaskOut, task)
            item["unit_count"] = count
            item["target_cell"] = _dump(CellOut, cell)
            tasks.append(item)
        return {"ok": True, "tasks": tasks}

    @router.post("/tsd/shipping-tasks/start", tags=["tsd"])
    async def start_shipping_task(
        payload: TaskStartIn,
        actor: Actor = Depends(require_op("task.start")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            result = await svc.start(payload.taskId)
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        return result.to_dict()

    @router.get("/tsd/shipping-tasks/check-unit", tags=["tsd"])
    async def check_unit(
        unitBarcode: Optional[str] = Query(None),
        fromCellId: Optional[int] = Query(None),
        actor: Actor = Depends(require_op("task.check_unit")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            res = await svc.check_unit(unit_barcode=unitBarcode, from_cell_id=fromCellId)
            # 可能自动开始了 open 任务
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        out: Dict[str, Any] = {
            "found": res.found,
            "unit": _dump(UnitOut, res.unit),
            "task": _dump(PickingTaskOut, res.task),
            "toCell": _dump(CellOut, res.to_cell),
        }
        if res.reason:
            out["reason"] = res.reason
        return out

    @router.post("/tsd/shipping-tasks/scan-unit", tags=["tsd"])
    async def scan_unit(
        payload: TaskScanUnitIn,
        actor: Actor = Depends(require_op("task.scan_unit")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            result = await svc.scan_unit(
                task_id=payload.taskId,
                unit_barcode=payload.unitBarcode,
                from_cell_id=payload.fromCellId,
            )
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        return result.to_dict()

    @router.post("/tsd/shipping-tasks/complete-batch", tags=["tsd"])
    async def complete_batch(
        payload: TaskCompleteBatchIn,
        actor: Actor = Depends(require_op("task.complete_batch")),
        session: AsyncSession = Depends(get_session),
    ) -> Dict[str, Any]:
        svc = PickingTaskService(session, actor)
        try:
            result = await svc.complete_batch(task_id=payload.taskId, moved_unit_ids=payload.movedUnitIds)
            await session.commit()
        except WmsError:
            await session.rollback()
            raise
        return result.to_dict()
