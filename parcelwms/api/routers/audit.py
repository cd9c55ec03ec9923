# parcelwms/api/routers/audit.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.services.actor import Actor
from parcelwms.services.audit_query import MAX_LIMIT, list_audit_events

router = APIRouter(prefix="/audit", tags=["audit"])


class AuditEventOut(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: Optional[str]
    summary: Optional[str]
    actor_id: Optional[str]
    actor_role: Optional[str]
    actor_name: Optional[str]
    meta: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.get("")
async def list_events(
    action: Optional[str] = Query(None),
    entityType: Optional[str] = Query(None),
    entityId: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=MAX_LIMIT),
    actor: Actor = Depends(require_op("audit.read")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    events = await list_audit_events(
        session,
        warehouse_id=actor.warehouse_id,
        action=action,
        entity_type=entityType,
        entity_id=entityId,
        limit=limit,
    )
    return {
        "ok": True,
        "events": [AuditEventOut.model_validate(e).model_dump(mode="json") for e in events],
    }
