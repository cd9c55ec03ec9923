# parcelwms/api/routers/units_schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UnitOut(BaseModel):
    id: int
    warehouse_id: int
    barcode: str
    cell_id: Optional[int]
    status: str
    meta: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnitMoveOut(BaseModel):
    id: int
    unit_id: int
    from_cell_id: Optional[int]
    to_cell_id: Optional[int]
    to_status: Optional[str]
    moved_by: Optional[str]
    source: str
    note: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UnitMoveIn(BaseModel):
    unitId: Optional[int] = None
    toCellId: Optional[int] = None
    toStatus: Optional[str] = None
    note: Optional[str] = None


class UnitAssignIn(BaseModel):
    unitId: Optional[int] = None
    cellId: Optional[int] = None
    toStatus: Optional[str] = None


class MoveByScanIn(BaseModel):
    unitBarcode: Optional[str] = None
    fromCellCode: Optional[str] = None
    toCellCode: Optional[str] = None


class PlaceByScanIn(BaseModel):
    unitBarcode: Optional[str] = None
    cellCode: Optional[str] = None


class OpsStatusIn(BaseModel):
    unitId: Optional[int] = None
    status: Optional[str] = None
    comment: Optional[str] = Field(None, max_length=2000)


class UnitCreateIn(BaseModel):
    digits: Optional[str] = None


class AdminMoveIn(BaseModel):
    unitId: int
    toCellId: int


class AdminBulkAssignIn(BaseModel):
    unitIds: List[int] = Field(default_factory=list)
    toCellId: int


class AdminPurgeIn(BaseModel):
    barcode: Optional[str] = None
