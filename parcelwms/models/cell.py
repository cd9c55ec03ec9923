# parcelwms/models/cell.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, JSONDict, utcnow


class Cell(Base):
    """
    货位（warehouse_cells）。

    - code：同仓唯一，统一大写
    - cell_type：bin / storage / picking / shipping / receiving / transfer / surplus / rejected / ff
    - is_active=False 即软删除
    - meta.blocked=True 表示临时封锁（扫码移位 / 收货拒绝进入）
    """

    __tablename__ = "warehouse_cells"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("warehouses.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    cell_type: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=expression.true()
    )

    # 地图渲染坐标
    x: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default=text("100"))
    y: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default=text("100"))
    w: Mapped[int] = mapped_column(Integer, nullable=False, default=80, server_default=text("80"))
    h: Mapped[int] = mapped_column(Integer, nullable=False, default=60, server_default=text("60"))

    meta: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONDict, nullable=True, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("warehouse_id", "code", name="uq_warehouse_cells_wh_code"),
        Index("ix_warehouse_cells_wh_type", "warehouse_id", "cell_type"),
    )

    @property
    def is_blocked(self) -> bool:
        return bool((self.meta or {}).get("blocked"))

    def __repr__(self) -> str:
        return f"<Cell id={self.id} code={self.code} type={self.cell_type} active={self.is_active}>"
