# parcelwms/models/outbound.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, JSONDict, utcnow


class OutboundShipment(Base):
    """交给快递的包裹：out → returned。"""

    __tablename__ = "outbound_shipments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("warehouses.id"), nullable=False
    )
    unit_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("units.id"), nullable=False)
    courier_name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="out", server_default=text("'out'")
    )

    out_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    out_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    returned_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    returned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    return_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDict, nullable=True, default=dict)

    __table_args__ = (Index("ix_outbound_shipments_wh_status", "warehouse_id", "status"),)


class Transfer(Base):
    """跨仓调拨（hub 模式）：in_transit → received。"""

    __tablename__ = "transfers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    unit_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("units.id"), nullable=False)
    from_warehouse_id: Mapped[int] = mapped_column(BigIntPK, nullable=False)
    to_warehouse_id: Mapped[int] = mapped_column(BigIntPK, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="in_transit", server_default=text("'in_transit'")
    )
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDict, nullable=True, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_transfers_to_status", "to_warehouse_id", "status"),)
