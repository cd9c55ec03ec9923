# parcelwms/services/audit_query.py
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.audit_event import AuditEvent

MAX_LIMIT = 500


async def list_audit_events(
    session: AsyncSession,
    *,
    warehouse_id: int,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
) -> List[AuditEvent]:
    stmt = select(AuditEvent).where(AuditEvent.warehouse_id == warehouse_id)
    if action:
        stmt = stmt.where(AuditEvent.action == action)
    if entity_type:
        stmt = stmt.where(AuditEvent.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(AuditEvent.entity_id == str(entity_id))
    stmt = stmt.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(
        max(1, min(int(limit), MAX_LIMIT))
    )
    return list((await session.execute(stmt)).scalars())
