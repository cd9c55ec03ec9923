# parcelwms/models/profile.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, utcnow


class Profile(Base):
    """
    用户档案：主键即身份服务里的 user id（token sub）。
    role 决定可执行的操作，warehouse_id 决定数据范围。
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    warehouse_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK, ForeignKey("warehouses.id"), nullable=True
    )
    role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
