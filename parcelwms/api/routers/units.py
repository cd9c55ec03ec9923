# parcelwms/api/routers/units.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcelwms.api.authz import require_op
from parcelwms.api.deps import get_session, get_session_factory
from parcelwms.api.outbox_hook import schedule_outbox
from parcelwms.api.routers.cells_schemas import CellOut
from parcelwms.api.routers.units_schemas import (
    MoveByScanIn,
    OpsStatusIn,
    PlaceByScanIn,
    UnitAssignIn,
    UnitCreateIn,
    UnitMoveIn,
    UnitMoveOut,
    UnitOut,
)
from parcelwms.services.actor import Actor
from parcelwms.services.errors import WmsError
from parcelwms.services.unit_moves import (
    assign_unit,
    move_by_scan,
    move_unit,
    place_unplaced_by_scan,
)
from parcelwms.services.unit_service import (
    create_unit,
    get_unit,
    get_unit_by_barcode,
    list_units,
    unit_history,
    update_ops_status,
)

router = APIRouter(prefix="/units", tags=["units"])


@router.post("/move")
async def move(
    payload: UnitMoveIn,
    actor: Actor = Depends(require_op("unit.move")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await move_unit(
            session,
            actor=actor,
            unit_id=payload.unitId,
            to_cell_id=payload.toCellId,
            to_status=payload.toStatus,
            note=payload.note,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()


@router.post("/assign")
async def assign(
    payload: UnitAssignIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_op("unit.assign")),
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Dict[str, Any]:
    try:
        result = await assign_unit(
            session,
            actor=actor,
            unit_id=payload.unitId,
            cell_id=payload.cellId,
            to_status=payload.toStatus,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise

    # 延期自动建任务：提交后异步检查，不影响本次响应
    schedule_outbox(background_tasks, session_factory, [result.event_id])
    return result.to_dict()


@router.post("/move-by-scan")
async def move_scan(
    payload: MoveByScanIn,
    actor: Actor = Depends(require_op("unit.move_by_scan")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await move_by_scan(
            session,
            actor=actor,
            unit_barcode=payload.unitBarcode,
            from_cell_code=payload.fromCellCode,
            to_cell_code=payload.toCellCode,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()


@router.post("/place-by-scan")
async def place_scan(
    payload: PlaceByScanIn,
    actor: Actor = Depends(require_op("unit.move_by_scan")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        result = await place_unplaced_by_scan(
            session,
            actor=actor,
            unit_barcode=payload.unitBarcode,
            cell_code=payload.cellCode,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return result.to_dict()


@router.post("/ops-status")
async def ops_status(
    payload: OpsStatusIn,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_op("unit.ops_status")),
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Dict[str, Any]:
    try:
        unit, event = await update_ops_status(
            session,
            actor=actor,
            unit_id=payload.unitId,
            status=payload.status,
            comment=payload.comment,
        )
        await session.commit()
    except WmsError:
        await session.rollback()
        raise

    if event is not None:
        schedule_outbox(background_tasks, session_factory, [event.id])
    return {
        "ok": True,
        "unit": {
            "id": unit.id,
            "barcode": unit.barcode,
            "ops_status": unit.ops_status,
            "ops_status_comment": (unit.meta or {}).get("ops_status_comment"),
        },
    }


@router.post("/create")
async def create(
    payload: UnitCreateIn,
    actor: Actor = Depends(require_op("unit.create")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        unit = await create_unit(session, actor=actor, digits=payload.digits)
        await session.commit()
    except WmsError:
        await session.rollback()
        raise
    return {"ok": True, "unit": UnitOut.model_validate(unit).model_dump(mode="json")}


@router.get("")
async def list_(
    status: Optional[str] = Query(None, description="按包裹状态过滤"),
    cellId: Optional[int] = Query(None, description="按货位过滤"),
    unplaced: bool = Query(False, description="只看未上架"),
    limit: int = Query(50, ge=1, le=500),
    actor: Actor = Depends(require_op("unit.read")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    units = await list_units(
        session, actor=actor, status=status, cell_id=cellId, unplaced=unplaced, limit=limit
    )
    return {"ok": True, "units": [UnitOut.model_validate(u).model_dump(mode="json") for u in units]}


# 必须排在 /{unit_id} 之前
@router.get("/by-barcode")
async def by_barcode(
    barcode: Optional[str] = Query(None),
    actor: Actor = Depends(require_op("unit.read")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    unit, cell = await get_unit_by_barcode(session, actor=actor, barcode=barcode)
    return {
        "ok": True,
        "unit": UnitOut.model_validate(unit).model_dump(mode="json"),
        "cell": CellOut.model_validate(cell).model_dump(mode="json") if cell is not None else None,
    }


@router.get("/{unit_id}")
async def get_one(
    unit_id: int = Path(..., description="包裹 ID"),
    actor: Actor = Depends(require_op("unit.read")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    unit, cell = await get_unit(session, actor=actor, unit_id=unit_id)
    return {
        "ok": True,
        "unit": UnitOut.model_validate(unit).model_dump(mode="json"),
        "cell": CellOut.model_validate(cell).model_dump(mode="json") if cell is not None else None,
    }


@router.get("/{unit_id}/history")
async def history(
    unit_id: int = Path(..., description="包裹 ID"),
    actor: Actor = Depends(require_op("unit.read")),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    moves = await unit_history(session, actor=actor, unit_id=unit_id)
    return {
        "ok": True,
        "items": [UnitMoveOut.model_validate(m).model_dump(mode="json") for m in moves],
    }
