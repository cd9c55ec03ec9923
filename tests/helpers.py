# tests/helpers.py
from __future__ import annotations

from typing import Any, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.audit_event import AuditEvent
from parcelwms.models.unit_move import UnitMove


async def count_moves(session: AsyncSession, unit_id: int) -> int:
    stmt = select(func.count()).select_from(UnitMove).where(UnitMove.unit_id == unit_id)
    return int((await session.execute(stmt)).scalar_one())


async def count_audit(session: AsyncSession, action: str | None = None) -> int:
    stmt = select(func.count()).select_from(AuditEvent)
    if action:
        stmt = stmt.where(AuditEvent.action == action)
    return int((await session.execute(stmt)).scalar_one())


async def audit_actions(session: AsyncSession, entity_id: Any = None) -> List[str]:
    stmt = select(AuditEvent.action).order_by(AuditEvent.id)
    if entity_id is not None:
        stmt = stmt.where(AuditEvent.entity_id == str(entity_id))
    return list((await session.execute(stmt)).scalars())
