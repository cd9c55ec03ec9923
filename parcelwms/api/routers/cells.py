# parcelwms/api/routers/cells.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session
from parcelwms.api.routers.cells_schemas import (
    CellBlockIn,
    CellCreateIn,
    CellDeleteIn,
    CellOut,
    CellUpdateIn,
)
from parcelwms.services.actor import Actor
from parcelwms.services.cell_service import (
    create_cell,
    deactivate_cell,
    list_cells,
    set_cell_blocked,
    update_cell_position,
)
from parcelwms.services.errors import WmsError

router = APIRouter(prefix="/cells", tags=["cells"])


def _dump(cell) -> Dict[str, Any]:
    return CellOut.model_validate(cell).model_dump(mode="json")


@router.get("")
async def list_(
    cellType: Optional[str] = Query(None, description="按货位类型过滤"),
    actor: Actor = Depends(require_op("cell.read")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    cells = await list_cells(session, warehouse_id=actor.warehouse_id, cell_type=cellType)
    return {"ok": True, "cells": [_dump(c) for c in cells]}


@router.post("/create")
async def create(
    payload: CellCreateIn,
    actor: Actor = Depends(require_op("cell.create")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        cell = await create_cell(
            session,
            actor=actor,
            code=payload.code,
            cell_type=payload.cellType,
            x=payload.x,
            y=payload.y,
            w=payload.w,
            h=payload.h,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return {"ok": True, "cell": _dump(cell)}


@router.post("/delete")
async def delete(
    payload: CellDeleteIn,
    actor: Actor = Depends(require_op("cell.delete")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        cell = await deactivate_cell(session, actor=actor, cell_id=payload.cellId)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return {"ok": True, "cell": _dump(cell)}


@router.post("/block")
async def block(
    payload: CellBlockIn,
    actor: Actor = Depends(require_op("cell.block")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        cell = await set_cell_blocked(session, actor=actor, cell_id=payload.cellId, blocked=payload.blocked)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return {"ok": True, "cell": _dump(cell)}


@router.post("/update")
async def update(
    payload: CellUpdateIn,
    actor: Actor = Depends(require_op("cell.update")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        cell = await update_cell_position(
            session,
            actor=actor,
            cell_id=payload.cellId,
            x=payload.x,
            y=payload.y,
            w=payload.w,
            h=payload.h,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return {"ok": True, "cell": _dump(cell)}
