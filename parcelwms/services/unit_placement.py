# parcelwms/services/unit_placement.py
"""
包裹移位（唯一写 units.cell_id / units.status 的地方）。

事务约定（在调用方事务内执行，不负责 commit）：
  1) 检查仓库盘点锁（盘点中 → InventoryLocked / 423）
  2) SELECT ... FOR UPDATE 锁包裹行
  3) 校验目标货位（存在 / 同仓 / 启用 / 未封锁）与 rejected → bin 禁令
  4) 状态：显式状态 > 货位类型策略 > 调用方兜底 > 原状态
  5) UPDATE ... WHERE cell_id IS NOT DISTINCT FROM <读到的 cell_id>（CAS，丢失竞争 → Conflict）
  6) 追加 unit_moves 历史 + 审计

同货位且状态不变：视为成功的空操作（noop），不写历史、不写审计。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.db.types import utcnow
from parcelwms.models.cell import Cell
from parcelwms.models.unit import Unit
from parcelwms.models.unit_move import UnitMove
from parcelwms.obs.metrics import unit_move_conflicts_total, unit_moves_total
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import is_rejected_to_bin, status_for_cell_type
from parcelwms.services.errors import Conflict, InvalidInput, PolicyViolation
from parcelwms.services.inventory_service import ensure_not_locked
from parcelwms.services.unit_loaders import load_cell, load_unit

logger = logging.getLogger("parcelwms.placement")


@dataclass
class PlacementResult:
    unit_id: int
    from_cell_id: Optional[int]
    to_cell_id: Optional[int]
    to_status: str
    noop: bool = False
    move_id: Optional[int] = None
    # assign 发布的 unit.placed 事件
    event_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "unitId": self.unit_id,
            "fromCellId": self.from_cell_id,
            "toCellId": self.to_cell_id,
            "toStatus": self.to_status,
            "noop": self.noop,
        }


async def place_unit(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_id: int,
    to_cell_id: Optional[int],
    to_status: Optional[str] = None,
    fallback_status: Optional[str] = None,
    source: str = "move",
    note: Optional[str] = None,
    warehouse_id: Optional[int] = None,
    allow_blocked: bool = False,
    audit_action: Optional[str] = "unit.move",
) -> PlacementResult:
    wh_id = warehouse_id if warehouse_id is not None else actor.warehouse_id
    if wh_id is None:
        raise InvalidInput("Warehouse not assigned", code="WAREHOUSE_NOT_ASSIGNED")

    await ensure_not_locked(session, wh_id)

    unit = await load_unit(session, unit_id, warehouse_id=wh_id, for_update=True)
    seen_cell_id = unit.cell_id

    to_cell: Optional[Cell] = None
    if to_cell_id is not None:
        to_cell = await load_cell(session, to_cell_id, warehouse_id=wh_id)
        if not to_cell.is_active:
            raise Conflict(f"Cell {to_cell.code} is inactive", code="CELL_INACTIVE")
        if to_cell.is_blocked and not allow_blocked:
            raise PolicyViolation(f"Cell {to_cell.code} is blocked", code="CELL_BLOCKED")

    from_type: Optional[str] = None
    if seen_cell_id is not None:
        from_cell = await session.get(Cell, seen_cell_id)
        from_type = from_cell.cell_type if from_cell is not None else None

    to_type = to_cell.cell_type if to_cell is not None else None
    if is_rejected_to_bin(from_type, to_type):
        raise PolicyViolation(
            "Units in a rejected cell cannot be moved directly to a bin cell",
            code="REJECTED_TO_BIN_FORBIDDEN",
        )

    new_status = (
        to_status
        or status_for_cell_type(to_type)
        or fallback_status
        or unit.status
    )

    if seen_cell_id == to_cell_id and new_status == unit.status:
        return PlacementResult(
            unit_id=unit.id,
            from_cell_id=seen_cell_id,
            to_cell_id=to_cell_id,
            to_status=new_status,
            noop=True,
        )

    move = await write_move(
        session,
        unit=unit,
        seen_cell_id=seen_cell_id,
        to_cell_id=to_cell_id,
        new_status=new_status,
        actor=actor,
        warehouse_id=wh_id,
        source=source,
        note=note,
    )

    if audit_action:
        await AuditEventWriter.write(
            session,
            action=audit_action,
            entity_type="unit",
            entity_id=unit.id,
            summary=(
                f"Unit {unit.barcode} moved to "
                f"{to_cell.code if to_cell is not None else 'no cell'} ({new_status})"
            ),
            actor=actor,
            warehouse_id=wh_id,
            meta={
                "barcode": unit.barcode,
                "from_cell_id": seen_cell_id,
                "to_cell_id": to_cell_id,
                "to_status": new_status,
                "source": source,
            },
        )

    return PlacementResult(
        unit_id=unit.id,
        from_cell_id=seen_cell_id,
        to_cell_id=to_cell_id,
        to_status=new_status,
        move_id=move.id,
    )


async def write_move(
    session: AsyncSession,
    *,
    unit: Unit,
    seen_cell_id: Optional[int],
    to_cell_id: Optional[int],
    new_status: str,
    actor: Actor,
    warehouse_id: int,
    source: str,
    note: Optional[str],
    reassign_warehouse: bool = False,
) -> UnitMove:
    """
    唯一的落库路径：cell_id CAS 更新 + unit_moves 记录 + 计数。
    reassign_warehouse=True 时同时把包裹归属改到 warehouse_id（调拨接收）。
    """
    values = {"cell_id": to_cell_id, "status": new_status, "updated_at": utcnow()}
    if reassign_warehouse:
        values["warehouse_id"] = warehouse_id
    res = await session.execute(
        update(Unit)
        .where(Unit.id == unit.id, Unit.cell_id.is_not_distinct_from(seen_cell_id))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        unit_move_conflicts_total.inc()
        logger.warning(
            "placement lost race: unit=%s seen_cell=%s to_cell=%s", unit.id, seen_cell_id, to_cell_id
        )
        raise Conflict("Unit was moved concurrently, retry", code="UNIT_MOVED_CONCURRENTLY")
    await session.refresh(unit)

    move = UnitMove(
        warehouse_id=warehouse_id,
        unit_id=unit.id,
        from_cell_id=seen_cell_id,
        to_cell_id=to_cell_id,
        to_status=new_status,
        moved_by=actor.id,
        source=source,
        note=note,
    )
    session.add(move)
    await session.flush()
    unit_moves_total.labels(source).inc()
    return move
