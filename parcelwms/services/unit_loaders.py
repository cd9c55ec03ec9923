# parcelwms/services/unit_loaders.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.cell import Cell
from parcelwms.models.unit import Unit
from parcelwms.services.errors import Forbidden, NotFound


async def load_unit(
    session: AsyncSession,
    unit_id: int,
    *,
    warehouse_id: Optional[int] = None,
    for_update: bool = False,
) -> Unit:
    """
    加载包裹：不存在 → NotFound；给了 warehouse_id 且不属于该仓 → Forbidden。
    """
    stmt = select(Unit).where(Unit.id == int(unit_id))
    if for_update:
        stmt = stmt.with_for_update()
    unit = (await session.execute(stmt)).scalars().first()
    if unit is None:
        raise NotFound(f"Unit not found: id={unit_id}", code="UNIT_NOT_FOUND")
    if warehouse_id is not None and unit.warehouse_id != warehouse_id:
        raise Forbidden("Unit belongs to a different warehouse", code="CROSS_WAREHOUSE")
    return unit


async def find_unit_by_barcode(
    session: AsyncSession, warehouse_id: int, barcode: str
) -> Optional[Unit]:
    stmt = (
        select(Unit)
        .where(Unit.warehouse_id == warehouse_id, Unit.barcode == barcode)
        .order_by(Unit.created_at.desc(), Unit.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


async def load_cell(
    session: AsyncSession,
    cell_id: int,
    *,
    warehouse_id: Optional[int] = None,
) -> Cell:
    cell = await session.get(Cell, int(cell_id))
    if cell is None:
        raise NotFound(f"Cell not found: id={cell_id}", code="CELL_NOT_FOUND")
    if warehouse_id is not None and cell.warehouse_id != warehouse_id:
        raise Forbidden("Cell belongs to a different warehouse", code="CROSS_WAREHOUSE")
    return cell


async def find_cell_by_code(session: AsyncSession, warehouse_id: int, code: str) -> Optional[Cell]:
    stmt = select(Cell).where(Cell.warehouse_id == warehouse_id, Cell.code == code)
    return (await session.execute(stmt)).scalars().first()


async def load_cell_by_code(session: AsyncSession, warehouse_id: int, code: str) -> Cell:
    cell = await find_cell_by_code(session, warehouse_id, code)
    if cell is None:
        raise NotFound(f'Cell "{code}" not found', code="CELL_NOT_FOUND")
    return cell
