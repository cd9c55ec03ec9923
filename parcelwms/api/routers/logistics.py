# parcelwms/api/routers/logistics.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.outbound_service import list_out_shipments, return_from_out, ship_out

router = APIRouter(prefix="/logistics", tags=["logistics"])


class ShipOutIn(BaseModel):
    unitId: Optional[int] = None
    courierName: Optional[str] = None
    transferToWarehouseId: Optional[int] = None


class ReturnFromOutIn(BaseModel):
    shipmentId: Optional[int] = None
    targetCellCode: Optional[str] = None
    returnReason: Optional[str] = None


class OutShipmentOut(BaseModel):
    id: int
    unit_id: int
    courier_name: str
    status: str
    out_by: Optional[str]
    out_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.post("/ship-out")
async def ship_out_unit(
    payload: ShipOutIn,
    actor: Actor = Depends(require_op("logistics.ship_out")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await ship_out(
            session,
            actor=actor,
            unit_id=payload.unitId,
            courier_name=payload.courierName,
            transfer_to_warehouse_id=payload.transferToWarehouseId,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()


@router.post("/return-from-out")
async def return_unit_from_out(
    payload: ReturnFromOutIn,
    actor: Actor = Depends(require_op("logistics.return")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await return_from_out(
            session,
            actor=actor,
            shipment_id=payload.shipmentId,
            target_cell_code=payload.targetCellCode,
            return_reason=payload.returnReason,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result


@router.get("/out-shipments")
async def out_shipments(
    limit: int = Query(200, ge=1, le=500),
    actor: Actor = Depends(require_op("logistics.list_out")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    rows = await list_out_shipments(session, warehouse_id=actor.warehouse_id, limit=limit)
    items = []
    for shipment, unit in rows:
        item = OutShipmentOut.model_validate(shipment).model_dump(mode="json")
        item["unit_barcode"] = unit.barcode
        items.append(item)
    return {"ok": True, "shipments": items}
