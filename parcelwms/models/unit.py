# parcelwms/models/unit.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, JSONDict, utcnow


class Unit(Base):
    """
    包裹（一个订单 = 一个 unit = 一个条码）。

    - cell_id 可为空（未上架 / 已出库）
    - status 原则上与所在货位类型一致（见 cell_type_policy），但历史数据允许漂移
    - meta 承载外部运营状态 ops_status 等临时字段
    """

    __tablename__ = "units"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("warehouses.id"), nullable=False
    )
    barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    cell_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK, ForeignKey("warehouse_cells.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="receiving", server_default=text("'receiving'")
    )
    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDict, nullable=True, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_units_wh_barcode", "warehouse_id", "barcode"),
        Index("ix_units_cell", "cell_id"),
    )

    @property
    def ops_status(self) -> Optional[str]:
        return (self.meta or {}).get("ops_status")

    def __repr__(self) -> str:
        return f"<Unit id={self.id} barcode={self.barcode} cell={self.cell_id} status={self.status}>"
