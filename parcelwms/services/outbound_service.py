# parcelwms/services/outbound_service.py
"""
出库与退回：

- ship_out：包裹交给快递，下架（cell_id=None, status=out），可选同时建跨仓调拨
- return_from_out：快递退回，按目标货位类型取状态重新上架
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.db.types import utcnow
from parcelwms.models.outbound import OutboundShipment, Transfer
from parcelwms.models.unit import Unit
from parcelwms.models.warehouse import Warehouse
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import normalize_cell_code
from parcelwms.services.errors import InvalidInput, InvalidState, NotFound
from parcelwms.services.unit_loaders import load_cell_by_code, load_unit
from parcelwms.services.unit_placement import place_unit


@dataclass
class ShipOutResult:
    shipment_id: int
    unit_id: int
    unit_barcode: str
    courier_name: str
    transfer_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "shipment": {
                "shipmentId": self.shipment_id,
                "unitId": self.unit_id,
                "unitBarcode": self.unit_barcode,
                "courierName": self.courier_name,
                "transferId": self.transfer_id,
            },
        }


async def ship_out(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_id: Optional[int],
    courier_name: Optional[str],
    transfer_to_warehouse_id: Optional[int] = None,
) -> ShipOutResult:
    courier = (courier_name or "").strip()
    if not unit_id or not courier:
        raise InvalidInput("unitId and courierName are required")

    unit = await load_unit(session, unit_id, warehouse_id=actor.warehouse_id)
    if unit.status == "out":
        raise InvalidState(f"Unit {unit.barcode} is already shipped out", code="UNIT_ALREADY_OUT")

    if transfer_to_warehouse_id is not None and transfer_to_warehouse_id != actor.warehouse_id:
        if await session.get(Warehouse, transfer_to_warehouse_id) is None:
            raise NotFound(
                f"Warehouse not found: id={transfer_to_warehouse_id}", code="WAREHOUSE_NOT_FOUND"
            )
    else:
        transfer_to_warehouse_id = None

    # 盘点锁 / CAS 都在这里
    await place_unit(
        session,
        actor=actor,
        unit_id=unit.id,
        to_cell_id=None,
        to_status="out",
        source="logistics.ship_out",
        note=courier,
        audit_action=None,
    )

    shipment = OutboundShipment(
        warehouse_id=actor.warehouse_id,
        unit_id=unit.id,
        courier_name=courier,
        status="out",
        out_by=actor.id,
        meta={},
    )
    session.add(shipment)

    transfer: Optional[Transfer] = None
    if transfer_to_warehouse_id is not None:
        transfer = Transfer(
            unit_id=unit.id,
            from_warehouse_id=actor.warehouse_id,
            to_warehouse_id=transfer_to_warehouse_id,
            status="in_transit",
            meta={"note": "explicit_transfer"},
        )
        session.add(transfer)
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="logistics.ship_out",
        entity_type="unit",
        entity_id=unit.id,
        summary=f"Unit {unit.barcode} shipped out with {courier}",
        actor=actor,
        meta={
            "shipment_id": shipment.id,
            "unit_barcode": unit.barcode,
            "courier_name": courier,
            "transfer_id": transfer.id if transfer is not None else None,
        },
    )
    return ShipOutResult(
        shipment_id=shipment.id,
        unit_id=unit.id,
        unit_barcode=unit.barcode,
        courier_name=courier,
        transfer_id=transfer.id if transfer is not None else None,
    )


async def return_from_out(
    session: AsyncSession,
    *,
    actor: Actor,
    shipment_id: Optional[int],
    target_cell_code: Optional[str],
    return_reason: Optional[str] = None,
) -> Dict[str, Any]:
    code = normalize_cell_code(target_cell_code)
    if not shipment_id or not code:
        raise InvalidInput("shipmentId and targetCellCode are required")

    stmt = (
        select(OutboundShipment)
        .where(
            OutboundShipment.id == int(shipment_id),
            OutboundShipment.warehouse_id == actor.warehouse_id,
        )
        .with_for_update()
    )
    shipment = (await session.execute(stmt)).scalars().first()
    if shipment is None:
        raise NotFound(f"Shipment not found: id={shipment_id}", code="SHIPMENT_NOT_FOUND")
    if shipment.status != "out":
        raise InvalidState(
            f"Shipment {shipment.id} is not out (status={shipment.status})", code="SHIPMENT_NOT_OUT"
        )

    cell = await load_cell_by_code(session, actor.warehouse_id, code)
    reason = (return_reason or "").strip() or None

    # 没有映射的货位类型（receiving / transfer / surplus）按 stored 处理
    placed = await place_unit(
        session,
        actor=actor,
        unit_id=shipment.unit_id,
        to_cell_id=cell.id,
        fallback_status="stored",
        source="logistics.return_from_out",
        note=reason,
        audit_action=None,
    )

    shipment.status = "returned"
    shipment.returned_by = actor.id
    shipment.returned_at = utcnow()
    shipment.return_reason = reason
    await session.flush()

    unit = await session.get(Unit, shipment.unit_id)
    await AuditEventWriter.write(
        session,
        action="logistics.return_from_out",
        entity_type="unit",
        entity_id=shipment.unit_id,
        summary=f"Unit {unit.barcode} returned from OUT to {cell.code}",
        actor=actor,
        meta={
            "shipment_id": shipment.id,
            "unit_barcode": unit.barcode,
            "target_cell_code": cell.code,
            "target_cell_type": cell.cell_type,
            "return_reason": reason,
        },
    )
    return {
        "ok": True,
        "result": {
            "shipmentId": shipment.id,
            "unitId": unit.id,
            "unitBarcode": unit.barcode,
            "targetCellCode": cell.code,
            "targetCellType": cell.cell_type,
            "status": placed.to_status,
        },
    }


async def list_out_shipments(
    session: AsyncSession, *, warehouse_id: int, limit: int = 200
) -> List[Tuple[OutboundShipment, Unit]]:
    stmt = (
        select(OutboundShipment, Unit)
        .join(Unit, Unit.id == OutboundShipment.unit_id)
        .where(OutboundShipment.warehouse_id == warehouse_id, OutboundShipment.status == "out")
        .order_by(OutboundShipment.out_at.desc(), OutboundShipment.id.desc())
        .limit(limit)
    )
    return [(s, u) for s, u in (await session.execute(stmt)).all()]
