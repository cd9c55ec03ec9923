# parcelwms/models/warehouse.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, utcnow


class Warehouse(Base):
    """
    仓库（租户隔离边界）。

    inventory_active / inventory_session_id 为全仓盘点开关：
    盘点进行中时所有包裹移位一律拒绝（423）。
    """

    __tablename__ = "warehouses"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)

    inventory_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=expression.false()
    )
    inventory_session_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} inventory={self.inventory_active}>"
