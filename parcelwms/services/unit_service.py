# parcelwms/services/unit_service.py
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.db.types import utcnow
from parcelwms.models.cell import Cell
from parcelwms.models.outbound import OutboundShipment, Transfer
from parcelwms.models.outbox_event import OutboxEvent
from parcelwms.models.picking_task import PickingTask, PickingTaskRollback, PickingTaskUnit
from parcelwms.models.unit import Unit
from parcelwms.models.unit_move import UnitMove
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import normalize_barcode
from parcelwms.services.errors import InvalidInput, NotFound
from parcelwms.services.outbox import publish
from parcelwms.services.postponed_auto_task import is_postponed
from parcelwms.services.unit_loaders import find_unit_by_barcode, load_unit

OPS_STATUSES = (
    "partner_accepted_return",
    "partner_rejected_return",
    "sent_to_sc",
    "delivered_to_rc",
    "client_accepted",
    "client_rejected",
    "sent_to_client",
    "delivered_to_pudo",
    "case_cancelled_cc",
    "postponed_1",
    "postponed_2",
    "warehouse_did_not_issue",
    "in_progress",
    "no_report",
)

OPS_STATUS_TOPIC = "unit.ops_status_changed"


async def create_unit(session: AsyncSession, *, actor: Actor, digits: Optional[str]) -> Unit:
    """一单一件一码：只接受纯数字条码，新建为未上架的 receiving。"""
    code = str(digits or "").strip()
    if not code or not code.isdigit():
        raise InvalidInput("Digits only", code="INVALID_BARCODE")

    unit = Unit(warehouse_id=actor.warehouse_id, barcode=code, status="receiving", cell_id=None, meta={})
    session.add(unit)
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="unit.create",
        entity_type="unit",
        entity_id=unit.id,
        summary=f"Unit {unit.barcode} created",
        actor=actor,
        meta={"barcode": unit.barcode, "status": unit.status},
    )
    return unit


async def get_unit(session: AsyncSession, *, actor: Actor, unit_id: int) -> Tuple[Unit, Optional[Cell]]:
    unit = await load_unit(session, unit_id, warehouse_id=actor.warehouse_id)
    cell = await session.get(Cell, unit.cell_id) if unit.cell_id is not None else None
    return unit, cell


async def get_unit_by_barcode(
    session: AsyncSession, *, actor: Actor, barcode: Optional[str]
) -> Tuple[Unit, Optional[Cell]]:
    code = normalize_barcode(barcode)
    if not code:
        raise InvalidInput("barcode is required")
    unit = await find_unit_by_barcode(session, actor.warehouse_id, code)
    if unit is None:
        raise NotFound(f"Unit {code} not found", code="UNIT_NOT_FOUND")
    cell = await session.get(Cell, unit.cell_id) if unit.cell_id is not None else None
    return unit, cell


async def list_units(
    session: AsyncSession,
    *,
    actor: Actor,
    status: Optional[str] = None,
    cell_id: Optional[int] = None,
    unplaced: bool = False,
    limit: int = 50,
) -> List[Unit]:
    """本仓包裹，最新的在前；status / cell_id / unplaced 任意组合过滤。"""
    stmt = select(Unit).where(Unit.warehouse_id == actor.warehouse_id)
    if status:
        stmt = stmt.where(Unit.status == status)
    if cell_id is not None:
        stmt = stmt.where(Unit.cell_id == int(cell_id))
    if unplaced:
        stmt = stmt.where(Unit.cell_id.is_(None))
    stmt = stmt.order_by(Unit.created_at.desc(), Unit.id.desc()).limit(int(limit))
    return list((await session.execute(stmt)).scalars())


async def unit_history(session: AsyncSession, *, actor: Actor, unit_id: int) -> List[UnitMove]:
    unit = await load_unit(session, unit_id, warehouse_id=actor.warehouse_id)
    stmt = (
        select(UnitMove)
        .where(UnitMove.unit_id == unit.id)
        .order_by(UnitMove.created_at.desc(), UnitMove.id.desc())
    )
    return list((await session.execute(stmt)).scalars())


async def update_ops_status(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_id: Optional[int],
    status: Optional[str],
    comment: Optional[str] = None,
) -> Tuple[Unit, Optional[OutboxEvent]]:
    """
    设置外部运营状态（meta.ops_status）。
    设为 postponed_* 时同事务写入 outbox 事件，延期自动建任务在提交后异步执行。
    """
    if not unit_id or not status:
        raise InvalidInput("unitId and status are required")
    if status not in OPS_STATUSES:
        raise InvalidInput(
            f"Invalid status: {status}",
            code="INVALID_OPS_STATUS",
            extra={"validStatuses": list(OPS_STATUSES)},
        )

    unit = await load_unit(session, unit_id, warehouse_id=actor.warehouse_id, for_update=True)
    old_status = unit.ops_status
    comment_text = (comment or "").strip() or None

    meta = dict(unit.meta or {})
    meta["ops_status"] = status
    meta["ops_status_comment"] = comment_text
    meta["ops_status_updated_by"] = actor.id
    meta["ops_status_updated_at"] = utcnow().isoformat()
    unit.meta = meta
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="ops.unit_status_update",
        entity_type="unit",
        entity_id=unit.id,
        summary=f"Unit {unit.barcode} ops status: {old_status or '-'} -> {status}",
        actor=actor,
        meta={"old_status": old_status, "new_status": status, "comment": comment_text},
    )

    event: Optional[OutboxEvent] = None
    if is_postponed(status):
        event = await publish(
            session,
            OPS_STATUS_TOPIC,
            {"unit_id": unit.id, "ops_status": status, "actor_id": actor.id, "actor_name": actor.full_name},
        )
    return unit, event


async def purge_unit(session: AsyncSession, *, actor: Actor, barcode: Optional[str]) -> str:
    """
    管理员物理删除包裹（唯一的物理删除入口）。

    先删关联行（任务关联 / 回滚记录 / 移位 / 出库 / 调拨），
    再清空老任务上的 unit_id，最后删 units 本身。审计事件保留。
    """
    code = normalize_barcode(barcode)
    if not code:
        raise InvalidInput("barcode is required")
    unit = await find_unit_by_barcode(session, actor.warehouse_id, code)
    if unit is None:
        raise NotFound(f"Unit {code} not found", code="UNIT_NOT_FOUND")
    unit_id = unit.id

    for model in (PickingTaskUnit, PickingTaskRollback, UnitMove, OutboundShipment, Transfer):
        await session.execute(
            delete(model).where(model.unit_id == unit_id).execution_options(synchronize_session=False)
        )
    await session.execute(
        update(PickingTask)
        .where(PickingTask.unit_id == unit_id)
        .values(unit_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.delete(unit)
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="unit.delete",
        entity_type="unit",
        entity_id=unit_id,
        summary=f"Unit {code} deleted",
        actor=actor,
        meta={"barcode": code, "source": "admin.panel"},
    )
    return code
