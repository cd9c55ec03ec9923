# parcelwms/services/inventory_service.py
"""
全仓盘点：

- start / stop：切换 warehouses.inventory_active，期间所有包裹移位返回 423
- cell_scan：盘点中逐货位提交扫描结果，与系统账面比对
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.db.types import utcnow
from parcelwms.models.inventory import InventoryCellCount, InventorySession
from parcelwms.models.unit import Unit
from parcelwms.models.warehouse import Warehouse
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import normalize_barcode, normalize_cell_code
from parcelwms.services.errors import Conflict, InvalidInput, InventoryLocked, NotFound
from parcelwms.services.unit_loaders import load_cell_by_code


async def _load_warehouse(
    session: AsyncSession, warehouse_id: int, *, for_update: bool = False
) -> Warehouse:
    stmt = select(Warehouse).where(Warehouse.id == warehouse_id)
    if for_update:
        stmt = stmt.with_for_update()
    wh = (await session.execute(stmt)).scalars().first()
    if wh is None:
        raise NotFound(f"Warehouse not found: id={warehouse_id}", code="WAREHOUSE_NOT_FOUND")
    return wh


async def is_inventory_active(session: AsyncSession, warehouse_id: int) -> bool:
    row = (
        await session.execute(
            select(Warehouse.inventory_active).where(Warehouse.id == warehouse_id)
        )
    ).first()
    return bool(row and row[0])


async def ensure_not_locked(session: AsyncSession, warehouse_id: int) -> None:
    if await is_inventory_active(session, warehouse_id):
        raise InventoryLocked()


@dataclass
class InventoryStatus:
    active: bool
    session_id: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "active": self.active, "sessionId": self.session_id}


async def get_status(session: AsyncSession, warehouse_id: int) -> InventoryStatus:
    wh = await _load_warehouse(session, warehouse_id)
    return InventoryStatus(
        active=bool(wh.inventory_active),
        session_id=wh.inventory_session_id if wh.inventory_active else None,
    )


async def start_inventory(session: AsyncSession, *, actor: Actor, warehouse_id: int) -> InventoryStatus:
    wh = await _load_warehouse(session, warehouse_id, for_update=True)
    if wh.inventory_active:
        raise Conflict("Inventory is already active", code="INVENTORY_ALREADY_ACTIVE")

    inv = InventorySession(warehouse_id=warehouse_id, status="active", started_by=actor.id)
    session.add(inv)
    await session.flush()

    wh.inventory_active = True
    wh.inventory_session_id = inv.id
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="inventory.started",
        entity_type="inventory_session",
        entity_id=inv.id,
        summary=f"Inventory session {inv.id} started",
        actor=actor,
        warehouse_id=warehouse_id,
    )
    return InventoryStatus(active=True, session_id=inv.id)


async def stop_inventory(session: AsyncSession, *, actor: Actor, warehouse_id: int) -> InventoryStatus:
    wh = await _load_warehouse(session, warehouse_id, for_update=True)
    if not wh.inventory_active:
        raise Conflict("Inventory is not active", code="INVENTORY_NOT_ACTIVE")

    session_id = wh.inventory_session_id
    if session_id is not None:
        inv = await session.get(InventorySession, session_id)
        if inv is not None:
            inv.status = "closed"
            inv.closed_by = actor.id
            inv.closed_at = utcnow()

    # session_id 保留在仓库上，便于之后查看最近一次盘点
    wh.inventory_active = False
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="inventory.stopped",
        entity_type="inventory_session",
        entity_id=session_id,
        summary=f"Inventory session {session_id} stopped",
        actor=actor,
        warehouse_id=warehouse_id,
    )
    return InventoryStatus(active=False, session_id=None)


@dataclass
class CellScanResult:
    cell_id: int
    cell_code: str
    expected: List[str] = field(default_factory=list)
    scanned: List[str] = field(default_factory=list)

    @property
    def missing(self) -> List[str]:
        got = set(self.scanned)
        return [b for b in self.expected if b not in got]

    @property
    def extra(self) -> List[str]:
        exp = set(self.expected)
        return [b for b in self.scanned if b not in exp]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "cellId": self.cell_id,
            "cellCode": self.cell_code,
            "expected": len(self.expected),
            "scanned": len(self.scanned),
            "missing": self.missing,
            "extra": self.extra,
        }


def _dedupe_barcodes(raw: Sequence[Any]) -> List[str]:
    out: List[str] = []
    seen = set()
    for b in raw:
        norm = normalize_barcode(b)
        if not norm or norm in seen:
            continue
        seen.add(norm)
        out.append(norm)
    return out


async def cell_scan(
    session: AsyncSession,
    *,
    actor: Actor,
    warehouse_id: int,
    cell_code: str,
    unit_barcodes: Sequence[Any],
) -> CellScanResult:
    wh = await _load_warehouse(session, warehouse_id)
    if not wh.inventory_active or wh.inventory_session_id is None:
        raise Conflict("Inventory is not active", code="INVENTORY_NOT_ACTIVE")

    code = normalize_cell_code(cell_code)
    if not code:
        raise InvalidInput("cellCode is required")
    cell = await load_cell_by_code(session, warehouse_id, code)

    scanned = _dedupe_barcodes(unit_barcodes)
    expected = list(
        (
            await session.execute(
                select(Unit.barcode).where(Unit.cell_id == cell.id).order_by(Unit.barcode)
            )
        ).scalars()
    )

    stmt = select(InventoryCellCount).where(
        InventoryCellCount.session_id == wh.inventory_session_id,
        InventoryCellCount.cell_id == cell.id,
    )
    row = (await session.execute(stmt)).scalars().first()
    if row is None:
        row = InventoryCellCount(session_id=wh.inventory_session_id, cell_id=cell.id)
        session.add(row)
    row.scanned_by = actor.id
    row.scanned_at = utcnow()
    row.unit_barcodes = scanned
    row.expected_count = len(expected)
    row.scanned_count = len(scanned)
    row.status = "scanned"
    await session.flush()

    return CellScanResult(cell_id=cell.id, cell_code=cell.code, expected=expected, scanned=scanned)
