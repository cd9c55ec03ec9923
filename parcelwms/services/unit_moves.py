# parcelwms/services/unit_moves.py
"""
各移位入口（units/move、units/assign、扫码移位、管理员移位）的参数校验，
最终统一落到 unit_placement.place_unit。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.cell import Cell
from parcelwms.services.actor import Actor
from parcelwms.services.cell_type_policy import (
    MOVE_STATUSES,
    is_scan_move_allowed,
    normalize_barcode,
    normalize_cell_code,
    scan_status_for_cell_type,
    status_for_cell_type,
)
from parcelwms.services.errors import InvalidInput, NotFound, PolicyViolation, WmsError
from parcelwms.services.outbox import publish
from parcelwms.services.unit_loaders import find_unit_by_barcode, load_cell, load_cell_by_code
from parcelwms.services.unit_placement import PlacementResult, place_unit

logger = logging.getLogger("parcelwms.placement")

UNIT_PLACED_TOPIC = "unit.placed"


async def move_unit(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_id: Optional[int],
    to_cell_id: Optional[int],
    to_status: Optional[str] = None,
    note: Optional[str] = None,
) -> PlacementResult:
    if not unit_id or not to_cell_id:
        raise InvalidInput("unitId and toCellId are required")
    if to_status is not None and to_status not in MOVE_STATUSES:
        raise InvalidInput(
            f"Invalid toStatus: {to_status}",
            code="INVALID_STATUS",
            extra={"provided": to_status, "allowed": sorted(MOVE_STATUSES)},
        )
    return await place_unit(
        session,
        actor=actor,
        unit_id=unit_id,
        to_cell_id=to_cell_id,
        to_status=to_status,
        note=note,
        source="move",
    )


async def assign_unit(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_id: Optional[int],
    cell_id: Optional[int],
    to_status: Optional[str] = None,
) -> PlacementResult:
    """
    与 move 相同，但目标货位必填；成功后发布 unit.placed，
    由 outbox 派发器在主事务之外检查是否需要延期自动建任务。
    """
    if not unit_id or not cell_id:
        raise InvalidInput("unitId and cellId are required")
    if to_status is not None and to_status not in MOVE_STATUSES:
        raise InvalidInput(
            f"Invalid toStatus: {to_status}",
            code="INVALID_STATUS",
            extra={"provided": to_status, "allowed": sorted(MOVE_STATUSES)},
        )
    result = await place_unit(
        session,
        actor=actor,
        unit_id=unit_id,
        to_cell_id=cell_id,
        to_status=to_status,
        fallback_status="stored",
        source="assign",
        audit_action="unit.assign",
    )
    event = await publish(
        session,
        UNIT_PLACED_TOPIC,
        {"unit_id": result.unit_id, "actor_id": actor.id, "actor_name": actor.full_name},
    )
    result.event_id = event.id
    return result


def _ensure_scannable(cell: Cell) -> None:
    if not cell.is_active:
        raise InvalidInput(f'Cell "{cell.code}" is inactive', code="CELL_INACTIVE")
    if cell.is_blocked:
        raise InvalidInput(f'Cell "{cell.code}" is blocked', code="CELL_BLOCKED")


async def move_by_scan(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_barcode: Optional[str],
    from_cell_code: Optional[str],
    to_cell_code: Optional[str],
) -> PlacementResult:
    """扫码枪移位：from 货位 + 包裹条码 + to 货位，按扫码迁移表校验。"""
    wh_id = actor.warehouse_id
    barcode = normalize_barcode(unit_barcode)
    from_code = normalize_cell_code(from_cell_code)
    to_code = normalize_cell_code(to_cell_code)
    if not barcode or not from_code or not to_code:
        raise InvalidInput("unitBarcode, fromCellCode and toCellCode are required")

    from_cell = await load_cell_by_code(session, wh_id, from_code)
    to_cell = await load_cell_by_code(session, wh_id, to_code)
    _ensure_scannable(from_cell)
    _ensure_scannable(to_cell)

    unit = await find_unit_by_barcode(session, wh_id, barcode)
    if unit is None:
        raise NotFound(f"Unit {barcode} not found", code="UNIT_NOT_FOUND")
    if unit.cell_id != from_cell.id:
        raise InvalidInput(
            f"Unit {barcode} is not in cell {from_cell.code}", code="UNIT_NOT_IN_FROM_CELL"
        )

    if to_cell.cell_type == "bin" and from_cell.cell_type != "bin":
        raise PolicyViolation("Moving into a BIN cell is only allowed from BIN", code="BIN_INGRESS_FORBIDDEN")
    if not is_scan_move_allowed(from_cell.cell_type, to_cell.cell_type):
        raise PolicyViolation(
            f"Move {from_cell.cell_type} -> {to_cell.cell_type} is not allowed",
            code="MOVE_NOT_ALLOWED",
            extra={"fromType": from_cell.cell_type, "toType": to_cell.cell_type},
        )

    return await place_unit(
        session,
        actor=actor,
        unit_id=unit.id,
        to_cell_id=to_cell.id,
        to_status=scan_status_for_cell_type(to_cell.cell_type),
        source="move_by_scan",
    )


async def place_unplaced_by_scan(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_barcode: Optional[str],
    cell_code: Optional[str],
) -> PlacementResult:
    """旧版单货位扫码：只允许给尚未上架的包裹找位置。"""
    wh_id = actor.warehouse_id
    barcode = normalize_barcode(unit_barcode)
    code = normalize_cell_code(cell_code)
    if not barcode or not code:
        raise InvalidInput("unitBarcode and cellCode are required")

    cell = await load_cell_by_code(session, wh_id, code)
    _ensure_scannable(cell)

    unit = await find_unit_by_barcode(session, wh_id, barcode)
    if unit is None:
        raise NotFound(f"Unit {barcode} not found", code="UNIT_NOT_FOUND")
    if unit.cell_id is not None and unit.cell_id != cell.id:
        raise InvalidInput(
            "Unit is already placed; use fromCellCode/toCellCode to move it",
            code="UNIT_ALREADY_PLACED",
        )

    return await place_unit(
        session,
        actor=actor,
        unit_id=unit.id,
        to_cell_id=cell.id,
        to_status=scan_status_for_cell_type(cell.cell_type),
        source="move_by_scan",
    )


async def admin_move(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_id: int,
    to_cell_id: int,
) -> PlacementResult:
    """管理员移位：状态 = 策略状态，无映射则保留原状态。"""
    cell = await load_cell(session, to_cell_id, warehouse_id=actor.warehouse_id)
    return await place_unit(
        session,
        actor=actor,
        unit_id=unit_id,
        to_cell_id=cell.id,
        to_status=status_for_cell_type(cell.cell_type),
        source="admin.panel",
        audit_action="admin.unit_move",
    )


@dataclass
class BulkAssignResult:
    moved: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": not self.failed,
            "moved": self.moved,
            "failed": self.failed,
            "movedCount": len(self.moved),
            "failedCount": len(self.failed),
        }


async def admin_bulk_assign(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_ids: Sequence[int],
    to_cell_id: int,
) -> BulkAssignResult:
    """逐个移位，单个失败只回滚自己的 SAVEPOINT，继续处理其余包裹。"""
    if not unit_ids:
        raise InvalidInput("unitIds must be a non-empty list")

    out = BulkAssignResult()
    for uid in dict.fromkeys(int(u) for u in unit_ids):
        try:
            async with session.begin_nested():
                res = await admin_move(session, actor=actor, unit_id=uid, to_cell_id=to_cell_id)
        except WmsError as e:
            logger.info("bulk-assign skipped unit=%s: %s", uid, e.message)
            out.failed.append({"unitId": uid, "error": e.message, "error_code": e.code})
            continue
        out.moved.append(res.to_dict())
    return out
