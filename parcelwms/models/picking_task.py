# parcelwms/models/picking_task.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from parcelwms.db.base import Base
from parcelwms.db.types import BigIntPK, utcnow


class PickingTask(Base):
    """
    拣货任务：把 N 个包裹集中到一个目标 picking 货位。

    状态：open → in_progress（picked_by 持有）→ done / canceled（终态不可变）。

    unit_id / from_cell_id 为历史单包裹形态遗留列，新任务一律为空，
    包裹关系统一走 picking_task_units。
    """

    __tablename__ = "picking_tasks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("warehouses.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="open", server_default=text("'open'")
    )
    target_picking_cell_id: Mapped[Optional[int]] = mapped_column(
        BigIntPK, ForeignKey("warehouse_cells.id"), nullable=True
    )
    scenario: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # legacy 单包裹列
    unit_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)
    from_cell_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_by_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    picked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    picked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    canceled_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_picking_tasks_wh_status", "warehouse_id", "status"),
        Index("ix_picking_tasks_created", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PickingTask id={self.id} wh={self.warehouse_id} "
            f"status={self.status} target={self.target_picking_cell_id}>"
        )


class PickingTaskUnit(Base):
    """任务 ↔ 包裹关联，记录预留时的来源货位（取消回滚用）。创建后不再修改。"""

    __tablename__ = "picking_task_units"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    picking_task_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("picking_tasks.id", ondelete="CASCADE"), nullable=False
    )
    unit_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("units.id"), nullable=False)
    from_cell_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("picking_task_id", "unit_id", name="uq_picking_task_units_task_unit"),
        Index("ix_picking_task_units_unit", "unit_id"),
    )


class PickingTaskRollback(Base):
    """
    取消任务时的逐包裹补偿记录：
      pending → done / failed / skipped
    failed / pending 的记录可以通过 cancel/resume 重跑。
    """

    __tablename__ = "picking_task_rollbacks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    picking_task_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("picking_tasks.id", ondelete="CASCADE"), nullable=False
    )
    unit_id: Mapped[int] = mapped_column(BigIntPK, nullable=False)
    from_cell_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)
    to_cell_id: Mapped[Optional[int]] = mapped_column(BigIntPK, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", server_default=text("'pending'")
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    __table_args__ = (Index("ix_picking_task_rollbacks_task", "picking_task_id", "status"),)
