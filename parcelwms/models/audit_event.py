# parcelwms/models/audit_event.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, JSONDict, utcnow


class AuditEvent(Base):
    """
    审计事件（只追加）：
    - action:      动作标签，例如 picking_task_canceled / logistics.ship_out
    - entity_type: unit / picking_task / cell / transfer ...
    - summary:     人类可读摘要
    - actor_*:     操作人快照
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    actor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    actor_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDict, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_audit_events_wh_created", "warehouse_id", "created_at"),
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"<AuditEvent id={self.id} action={self.action} entity={self.entity_type}:{self.entity_id}>"
