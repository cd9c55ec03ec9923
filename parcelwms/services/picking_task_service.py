# parcelwms/services/picking_task_service.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.cell import Cell
from parcelwms.models.picking_task import PickingTask, PickingTaskUnit
from parcelwms.models.unit import Unit
from parcelwms.services.actor import Actor
from parcelwms.services.picking_task_cancel import cancel_task as _cancel_task
from parcelwms.services.picking_task_cancel import resume_cancel as _resume_cancel
from parcelwms.services.picking_task_create import create_task as _create_task
from parcelwms.services.picking_task_edit import close_stale_tasks as _close_stale_tasks
from parcelwms.services.picking_task_edit import update_scenario as _update_scenario
from parcelwms.services.picking_task_loaders import count_task_units
from parcelwms.services.picking_task_loaders import load_task as _load_task
from parcelwms.services.picking_task_loaders import load_task_units_with_units
from parcelwms.services.picking_task_progress import check_unit as _check_unit
from parcelwms.services.picking_task_progress import complete_batch as _complete_batch
from parcelwms.services.picking_task_progress import scan_unit as _scan_unit
from parcelwms.services.picking_task_progress import start_task as _start_task
from parcelwms.services.picking_task_types import (
    ACTIVE_STATUSES,
    BatchResult,
    CancelResult,
    CheckUnitResult,
    CreateResult,
    StartResult,
)


class PickingTaskService:
    """拣货任务门面：路由只依赖这一层，具体实现分散在 picking_task_* 模块。"""

    def __init__(self, session: AsyncSession, actor: Actor) -> None:
        self.session = session
        self.actor = actor

    async def create(
        self,
        *,
        target_picking_cell_id: Optional[int],
        unit_ids: Sequence[int] = (),
        barcodes: Sequence[str] = (),
        scenario: Any = None,
    ) -> CreateResult:
        return await _create_task(
            self.session,
            actor=self.actor,
            target_picking_cell_id=target_picking_cell_id,
            unit_ids=unit_ids,
            barcodes=barcodes,
            scenario=scenario,
        )

    async def start(self, task_id: Optional[int]) -> StartResult:
        return await _start_task(self.session, actor=self.actor, task_id=task_id)

    async def check_unit(self, *, unit_barcode: Optional[str], from_cell_id: Optional[int]) -> CheckUnitResult:
        return await _check_unit(
            self.session, actor=self.actor, unit_barcode=unit_barcode, from_cell_id=from_cell_id
        )

    async def scan_unit(
        self,
        *,
        task_id: Optional[int],
        unit_barcode: Optional[str],
        from_cell_id: Optional[int] = None,
    ) -> BatchResult:
        return await _scan_unit(
            self.session,
            actor=self.actor,
            task_id=task_id,
            unit_barcode=unit_barcode,
            from_cell_id=from_cell_id,
        )

    async def complete_batch(
        self, *, task_id: Optional[int], moved_unit_ids: Iterable[int] = ()
    ) -> BatchResult:
        return await _complete_batch(
            self.session, actor=self.actor, task_id=task_id, moved_unit_ids=moved_unit_ids
        )

    async def cancel(self, task_id: int) -> CancelResult:
        return await _cancel_task(self.session, actor=self.actor, task_id=task_id)

    async def resume_cancel(self, task_id: int) -> CancelResult:
        return await _resume_cancel(self.session, actor=self.actor, task_id=task_id)

    async def update_scenario(self, task_id: int, scenario: Any) -> PickingTask:
        return await _update_scenario(
            self.session, actor=self.actor, task_id=task_id, scenario=scenario
        )

    async def close_stale(self, *, older_than_days: Optional[int], include_open: bool) -> Dict[str, Any]:
        return await _close_stale_tasks(
            self.session,
            actor=self.actor,
            older_than_days=older_than_days,
            include_open=include_open,
        )

    # ---------------- 查询 ----------------

    async def get(self, task_id: int) -> Tuple[PickingTask, Optional[Cell], List[Tuple[PickingTaskUnit, Unit]]]:
        task = await _load_task(self.session, task_id, warehouse_id=self.actor.warehouse_id)
        target = (
            await self.session.get(Cell, task.target_picking_cell_id)
            if task.target_picking_cell_id is not None
            else None
        )
        units = await load_task_units_with_units(self.session, task.id)
        return task, target, units

    async def list_active(self) -> List[Tuple[PickingTask, Optional[Cell], int]]:
        stmt = (
            select(PickingTask, Cell)
            .outerjoin(Cell, Cell.id == PickingTask.target_picking_cell_id)
            .where(
                PickingTask.warehouse_id == self.actor.warehouse_id,
                PickingTask.status.in_(ACTIVE_STATUSES),
            )
            .order_by(PickingTask.created_at, PickingTask.id)
        )
        rows = (await self.session.execute(stmt)).all()
        counts = await count_task_units(self.session, [r[0].id for r in rows])
        return [(task, cell, counts.get(task.id, 0)) for task, cell in rows]
