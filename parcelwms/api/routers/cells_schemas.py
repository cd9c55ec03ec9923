# parcelwms/api/routers/cells_schemas.py
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CellOut(BaseModel):
    id: int
    warehouse_id: int
    code: str
    cell_type: str
    is_active: bool
    x: int
    y: int
    w: int
    h: int
    meta: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class CellCreateIn(BaseModel):
    code: Optional[str] = None
    cellType: Optional[str] = Field(None, alias="cell_type")
    x: int = 100
    y: int = 100
    w: int = 80
    h: int = 60

    model_config = ConfigDict(populate_by_name=True)


class CellDeleteIn(BaseModel):
    cellId: Optional[int] = None


class CellBlockIn(BaseModel):
    cellId: Optional[int] = None
    blocked: bool = True


class CellUpdateIn(BaseModel):
    cellId: Optional[int] = Field(None, alias="id")
    x: Optional[int] = None
    y: Optional[int] = None
    w: Optional[int] = None
    h: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True)
