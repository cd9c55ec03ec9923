# parcelwms/models/unit_move.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, utcnow


class UnitMove(Base):
    """移位历史（只追加，不修改）。"""

    __tablename__ = "unit_moves"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[int] = mapped_column(BigIntPK, nullable=False)
    unit_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("units.id"), nullable=False)
    from_cell_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)
    to_cell_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    moved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (Index("ix_unit_moves_unit_created", "unit_id", "created_at"),)
