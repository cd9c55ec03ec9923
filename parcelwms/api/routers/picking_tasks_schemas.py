# parcelwms/api/routers/picking_tasks_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PickingTaskOut(BaseModel):
    id: int
    warehouse_id: int
    status: str
    target_picking_cell_id: Optional[int]
    scenario: Optional[str]
    created_by: Optional[str]
    created_by_name: Optional[str]
    picked_by: Optional[str]
    picked_at: Optional[datetime]
    completed_by: Optional[str]
    completed_at: Optional[datetime]
    canceled_by: Optional[str]
    canceled_at: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PickingTaskUnitOut(BaseModel):
    unit_id: int
    barcode: str
    cell_id: Optional[int]
    status: str
    from_cell_id: Optional[int]


class TaskCreateIn(BaseModel):
    unitIds: List[int] = Field(default_factory=list)
    barcodes: List[str] = Field(default_factory=list)
    targetPickingCellId: Optional[int] = None
    scenario: Any = None


class TaskScenarioIn(BaseModel):
    # str / None 之外的类型由服务层给出 INVALID_SCENARIO
    scenario: Any = None


class TaskStartIn(BaseModel):
    taskId: Optional[int] = None


class TaskScanUnitIn(BaseModel):
    taskId: Optional[int] = None
    unitBarcode: Optional[str] = None
    fromCellId: Optional[int] = None


class TaskCompleteBatchIn(BaseModel):
    taskId: Optional[int] = None
    movedUnitIds: List[int] = Field(default_factory=list)


class CloseStaleIn(BaseModel):
    olderThanDays: Optional[int] = Field(None, ge=0)
    includeOpen: bool = False
