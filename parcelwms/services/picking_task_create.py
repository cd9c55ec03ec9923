# parcelwms/services/picking_task_create.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.core.config import get_settings
from parcelwms.models.cell import Cell
from parcelwms.models.picking_task import PickingTask, PickingTaskUnit
from parcelwms.models.unit import Unit
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import PICKABLE_SOURCE_TYPES, normalize_barcode
from parcelwms.services.errors import Conflict, InvalidInput
from parcelwms.services.picking_task_edit import normalize_scenario
from parcelwms.services.picking_task_loaders import find_active_reservations
from parcelwms.services.picking_task_types import TASK_OPEN, CreateResult
from parcelwms.services.unit_loaders import load_cell


async def _resolve_units(
    session: AsyncSession,
    *,
    warehouse_id: int,
    unit_ids: Sequence[int],
    barcodes: Sequence[str],
    invalid: List[Dict[str, Any]],
) -> List[Unit]:
    size = get_settings().TASK_UNIT_CHUNK_SIZE
    found: Dict[int, Unit] = {}

    ids = list(dict.fromkeys(int(u) for u in unit_ids))
    for i in range(0, len(ids), size):
        chunk = ids[i : i + size]
        rows = (
            await session.execute(
                select(Unit).where(Unit.id.in_(chunk), Unit.warehouse_id == warehouse_id)
            )
        ).scalars()
        for u in rows:
            found[u.id] = u
    for uid in ids:
        if uid not in found:
            invalid.append({"unitId": uid, "reason": "not_found"})

    codes = list(dict.fromkeys(b for b in (normalize_barcode(x) for x in barcodes) if b))
    by_code: Dict[str, Unit] = {}
    for i in range(0, len(codes), size):
        chunk = codes[i : i + size]
        rows = (
            await session.execute(
                select(Unit)
                .where(Unit.barcode.in_(chunk), Unit.warehouse_id == warehouse_id)
                .order_by(Unit.created_at, Unit.id)
            )
        ).scalars()
        for u in rows:
            # 同条码取最新
            by_code[u.barcode] = u
    for code in codes:
        u = by_code.get(code)
        if u is None:
            invalid.append({"barcode": code, "reason": "not_found"})
        else:
            found.setdefault(u.id, u)

    return list(found.values())


async def create_task(
    session: AsyncSession,
    *,
    actor: Actor,
    target_picking_cell_id: Optional[int],
    unit_ids: Sequence[int] = (),
    barcodes: Sequence[str] = (),
    scenario: Any = None,
) -> CreateResult:
    """
    一个任务 + 每个包裹一行 picking_task_units（来源货位 = 当前货位）。
    包裹必须在 storage / shipping 货位，且不能已被 open / in_progress 任务占用。
    """
    wh_id = actor.warehouse_id
    if not target_picking_cell_id:
        raise InvalidInput("targetPickingCellId is required")
    if not unit_ids and not barcodes:
        raise InvalidInput("unitIds or barcodes are required")
    scenario_text = normalize_scenario(scenario)

    target = await load_cell(session, target_picking_cell_id, warehouse_id=wh_id)
    if target.cell_type != "picking":
        raise InvalidInput("Target cell must be a picking cell", code="TARGET_NOT_PICKING")
    if not target.is_active:
        raise InvalidInput("Target picking cell is inactive", code="CELL_INACTIVE")

    invalid: List[Dict[str, Any]] = []
    units = await _resolve_units(
        session, warehouse_id=wh_id, unit_ids=unit_ids, barcodes=barcodes, invalid=invalid
    )

    cell_ids = {u.cell_id for u in units if u.cell_id is not None}
    cells: Dict[int, Cell] = {}
    if cell_ids:
        rows = (await session.execute(select(Cell).where(Cell.id.in_(cell_ids)))).scalars()
        cells = {c.id: c for c in rows}

    for u in units:
        cell = cells.get(u.cell_id) if u.cell_id is not None else None
        if cell is None or cell.cell_type not in PICKABLE_SOURCE_TYPES:
            invalid.append(
                {
                    "unitId": u.id,
                    "barcode": u.barcode,
                    "reason": "not_in_storage_or_shipping",
                    "cellType": cell.cell_type if cell is not None else None,
                }
            )

    if invalid:
        raise InvalidInput(
            "Some units cannot be added to a picking task",
            code="INVALID_UNITS",
            extra={"invalidUnits": invalid},
        )

    reserved = await find_active_reservations(session, [u.id for u in units])
    if reserved:
        raise Conflict(
            "Some units are already reserved by an active picking task",
            code="UNITS_ALREADY_RESERVED",
            extra={"reservedUnits": [{"unitId": k, "taskId": v} for k, v in reserved.items()]},
        )

    task = PickingTask(
        warehouse_id=wh_id,
        status=TASK_OPEN,
        target_picking_cell_id=target.id,
        scenario=scenario_text,
        created_by=actor.id,
        created_by_name=actor.full_name,
    )
    session.add(task)
    await session.flush()

    for u in units:
        session.add(PickingTaskUnit(picking_task_id=task.id, unit_id=u.id, from_cell_id=u.cell_id))
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="picking_task_created",
        entity_type="picking_task",
        entity_id=task.id,
        summary=f"Picking task {task.id} created for {len(units)} unit(s) -> {target.code}",
        actor=actor,
        warehouse_id=wh_id,
        meta={
            "unit_ids": [u.id for u in units],
            "unit_count": len(units),
            "target_picking_cell_id": target.id,
            "scenario": scenario_text,
        },
    )
    return CreateResult(task_id=task.id, unit_count=len(units), target_picking_cell_id=target.id)
