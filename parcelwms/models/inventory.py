# parcelwms/models/inventory.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, JSONDict, utcnow


class InventorySession(Base):
    __tablename__ = "inventory_sessions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("warehouses.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active", server_default=text("'active'")
    )
    started_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    closed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class InventoryCellCount(Base):
    """盘点：每个货位一行，重复扫描覆盖。"""

    __tablename__ = "inventory_cell_counts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("inventory_sessions.id"), nullable=False
    )
    cell_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("warehouse_cells.id"), nullable=False)
    scanned_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    scanned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    unit_barcodes: Mapped[List[str]] = mapped_column(JSONDict, nullable=False, default=list)
    expected_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scanned_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="scanned", server_default=text("'scanned'")
    )

    __table_args__ = (
        UniqueConstraint("session_id", "cell_id", name="uq_inventory_cell_counts_session_cell"),
    )
