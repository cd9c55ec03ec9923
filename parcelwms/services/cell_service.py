# parcelwms/services/cell_service.py
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.cell import Cell
from parcelwms.models.unit import Unit
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import CELL_TYPES, normalize_cell_code
from parcelwms.services.errors import InvalidInput
from parcelwms.services.unit_loaders import find_cell_by_code, load_cell


async def list_cells(
    session: AsyncSession, *, warehouse_id: int, cell_type: Optional[str] = None
) -> List[Cell]:
    stmt = select(Cell).where(Cell.warehouse_id == warehouse_id, Cell.is_active.is_(True))
    if cell_type:
        stmt = stmt.where(Cell.cell_type == cell_type)
    return list((await session.execute(stmt.order_by(Cell.code))).scalars())


async def create_cell(
    session: AsyncSession,
    *,
    actor: Actor,
    code: Optional[str],
    cell_type: Optional[str],
    x: int = 100,
    y: int = 100,
    w: int = 80,
    h: int = 60,
) -> Cell:
    norm = normalize_cell_code(code)
    if not norm:
        raise InvalidInput("code is required")
    if cell_type not in CELL_TYPES:
        raise InvalidInput(
            f"Invalid cell_type: {cell_type}",
            code="INVALID_CELL_TYPE",
            extra={"allowed": sorted(CELL_TYPES)},
        )
    if await find_cell_by_code(session, actor.warehouse_id, norm) is not None:
        raise InvalidInput(f'Cell "{norm}" already exists', code="CELL_CODE_EXISTS")

    cell = Cell(
        warehouse_id=actor.warehouse_id,
        code=norm,
        cell_type=cell_type,
        is_active=True,
        x=x,
        y=y,
        w=w,
        h=h,
        meta={},
    )
    session.add(cell)
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="cell.create",
        entity_type="cell",
        entity_id=cell.id,
        summary=f"Cell {cell.code} ({cell.cell_type}) created",
        actor=actor,
        meta={"code": cell.code, "cell_type": cell.cell_type},
    )
    return cell


async def deactivate_cell(session: AsyncSession, *, actor: Actor, cell_id: Optional[int]) -> Cell:
    """软删除：货位里还有包裹时拒绝。"""
    if not cell_id:
        raise InvalidInput("cellId is required")
    cell = await load_cell(session, cell_id, warehouse_id=actor.warehouse_id)

    n = (
        await session.execute(select(func.count()).select_from(Unit).where(Unit.cell_id == cell.id))
    ).scalar_one()
    if n:
        raise InvalidInput(
            f"Cell {cell.code} still holds {n} unit(s)", code="CELL_NOT_EMPTY", extra={"unitCount": n}
        )

    cell.is_active = False
    await session.flush()
    await AuditEventWriter.write(
        session,
        action="cell.delete",
        entity_type="cell",
        entity_id=cell.id,
        summary=f"Cell {cell.code} deactivated",
        actor=actor,
        meta={"code": cell.code},
    )
    return cell


async def set_cell_blocked(
    session: AsyncSession, *, actor: Actor, cell_id: Optional[int], blocked: bool
) -> Cell:
    if not cell_id:
        raise InvalidInput("cellId is required")
    cell = await load_cell(session, cell_id, warehouse_id=actor.warehouse_id)

    meta = dict(cell.meta or {})
    meta["blocked"] = bool(blocked)
    cell.meta = meta
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="cell.block" if blocked else "cell.unblock",
        entity_type="cell",
        entity_id=cell.id,
        summary=f"Cell {cell.code} {'blocked' if blocked else 'unblocked'}",
        actor=actor,
        meta={"code": cell.code, "blocked": bool(blocked)},
    )
    return cell


async def update_cell_position(
    session: AsyncSession,
    *,
    actor: Actor,
    cell_id: Optional[int],
    x: Optional[int],
    y: Optional[int],
    w: Optional[int] = None,
    h: Optional[int] = None,
) -> Cell:
    """仓库地图拖拽：改坐标，w/h 可选。"""
    if not cell_id or x is None or y is None:
        raise InvalidInput("cellId, x and y are required")
    if (w is not None and w <= 0) or (h is not None and h <= 0):
        raise InvalidInput("w and h must be positive", code="INVALID_SIZE")
    cell = await load_cell(session, cell_id, warehouse_id=actor.warehouse_id)

    before = {"x": cell.x, "y": cell.y, "w": cell.w, "h": cell.h}
    cell.x, cell.y = int(x), int(y)
    if w is not None:
        cell.w = int(w)
    if h is not None:
        cell.h = int(h)
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="cell.update",
        entity_type="cell",
        entity_id=cell.id,
        summary=f"Cell {cell.code} moved to ({cell.x}, {cell.y})",
        actor=actor,
        meta={"code": cell.code, "before": before, "after": {"x": cell.x, "y": cell.y, "w": cell.w, "h": cell.h}},
    )
    return cell
