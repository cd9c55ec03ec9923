# parcelwms/api/routers/receiving.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.receiving_service import receiving_scan

router = APIRouter(prefix="/receiving", tags=["receiving"])


class ReceivingScanIn(BaseModel):
    cellCode: Optional[str] = None
    unitBarcode: Optional[str] = None


@router.post("/scan")
async def scan(
    payload: ReceivingScanIn,
    actor: Actor = Depends(require_op("receiving.scan")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await receiving_scan(
            session, actor=actor, cell_code=payload.cellCode, unit_barcode=payload.unitBarcode
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()
