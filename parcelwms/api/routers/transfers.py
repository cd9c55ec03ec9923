# parcelwms/api/routers/transfers.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.transfer_service import list_incoming, receive_transfer

router = APIRouter(prefix="/transfers", tags=["transfers"])


class TransferReceiveIn(BaseModel):
    unitId: Optional[int] = None
    cellCode: Optional[str] = None


@router.get("/incoming")
async def incoming(
    actor: Actor = Depends(require_op("transfer.list")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    rows = await list_incoming(session, warehouse_id=actor.warehouse_id)
    return {
        "ok": True,
        "transfers": [
            {
                "id": t.id,
                "unit_id": t.unit_id,
                "from_warehouse_id": t.from_warehouse_id,
                "to_warehouse_id": t.to_warehouse_id,
                "status": t.status,
                "created_at": t.created_at.isoformat() if t.created_at else None,
                "unit": {"id": u.id, "barcode": u.barcode, "status": u.status},
            }
            for t, u in rows
        ],
    }


@router.post("/receive")
async def receive(
    payload: TransferReceiveIn,
    actor: Actor = Depends(require_op("transfer.receive")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        transfer = await receive_transfer(
            session, actor=actor, unit_id=payload.unitId, cell_code=payload.cellCode
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return {"ok": True, "transferId": transfer.id}
