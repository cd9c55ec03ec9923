# parcelwms/services/receiving_service.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.unit import Unit
from parcelwms.services.actor import Actor
from parcelwms.services.cell_type_policy import normalize_barcode, normalize_cell_code
from parcelwms.services.errors import InvalidInput
from parcelwms.services.unit_loaders import find_unit_by_barcode, load_cell_by_code
from parcelwms.services.unit_placement import place_unit


@dataclass
class ReceivingResult:
    unit_id: int
    barcode: str
    cell_id: int
    cell_code: str
    created: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "unitId": self.unit_id,
            "barcode": self.barcode,
            "cellId": self.cell_id,
            "cellCode": self.cell_code,
            "created": self.created,
            "message": self.message,
        }


async def receiving_scan(
    session: AsyncSession,
    *,
    actor: Actor,
    cell_code: Optional[str],
    unit_barcode: Optional[str],
) -> ReceivingResult:
    """
    收货扫码：先扫 bin 货位，再扫包裹条码。

    - 包裹已在本 bin → ok（already in this bin）
    - 包裹在别的货位 → 400
    - 否则（必要时新建）放入 bin，显式状态 receiving
    """
    code = normalize_cell_code(cell_code)
    barcode = normalize_barcode(unit_barcode)
    if not code or not barcode:
        raise InvalidInput("cellCode and unitBarcode are required")
    if actor.warehouse_id is None:
        raise InvalidInput("Warehouse not assigned", code="WAREHOUSE_NOT_ASSIGNED")

    cell = await load_cell_by_code(session, actor.warehouse_id, code)
    if cell.cell_type != "bin":
        raise InvalidInput(f"Cell {cell.code} is not a BIN cell", code="NOT_BIN_CELL")
    if not cell.is_active:
        raise InvalidInput(f"Cell {cell.code} is inactive", code="CELL_INACTIVE")
    if cell.is_blocked:
        raise InvalidInput(f"Cell {cell.code} is blocked", code="CELL_BLOCKED")

    unit = await find_unit_by_barcode(session, actor.warehouse_id, barcode)
    if unit is not None and unit.cell_id == cell.id:
        return ReceivingResult(unit.id, unit.barcode, cell.id, cell.code, False, "already in this bin")
    if unit is not None and unit.cell_id is not None:
        raise InvalidInput(
            f"Unit {barcode} is already placed in another cell",
            code="UNIT_ALREADY_PLACED",
            extra={"cellId": unit.cell_id},
        )

    created = False
    if unit is None:
        unit = Unit(warehouse_id=actor.warehouse_id, barcode=barcode, status="receiving", meta={})
        session.add(unit)
        await session.flush()
        created = True

    await place_unit(
        session,
        actor=actor,
        unit_id=unit.id,
        to_cell_id=cell.id,
        to_status="receiving",
        source="receiving.scan",
        audit_action="receiving.scan",
    )
    return ReceivingResult(unit.id, unit.barcode, cell.id, cell.code, created, "received")
