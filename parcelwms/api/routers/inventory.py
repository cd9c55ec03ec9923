# parcelwms/api/routers/inventory.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.services import inventory_service
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError

router = APIRouter(prefix="/inventory", tags=["inventory"])


class CellScanIn(BaseModel):
    cellCode: Optional[str] = None
    unitBarcodes: List[str] = Field(default_factory=list)


@router.post("/start")
async def start(
    actor: Actor = Depends(require_op("inventory.start")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        st = await inventory_service.start_inventory(session, actor=actor, warehouse_id=actor.warehouse_id)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return st.to_dict()


@router.post("/stop")
async def stop(
    actor: Actor = Depends(require_op("inventory.stop")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        st = await inventory_service.stop_inventory(session, actor=actor, warehouse_id=actor.warehouse_id)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return st.to_dict()


@router.get("/status")
async def status(
    actor: Actor = Depends(require_op("inventory.status")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    st = await inventory_service.get_status(session, actor.warehouse_id)
    return st.to_dict()


@router.post("/cell-scan")
async def cell_scan(
    payload: CellScanIn,
    actor: Actor = Depends(require_op("inventory.scan")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await inventory_service.cell_scan(
            session,
            actor=actor,
            warehouse_id=actor.warehouse_id,
            cell_code=payload.cellCode,
            unit_barcodes=payload.unitBarcodes,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()
