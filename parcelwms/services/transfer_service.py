# parcelwms/services/transfer_service.py
"""
跨仓调拨接收（hub 模式）。

包裹在途时仍归属发出仓，接收时整行改归属，因此不走 place_unit 的同仓校验，
但同样遵守接收仓的盘点锁，落库走 write_move（带归属改写）。
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.db.types import utcnow
from parcelwms.models.outbound import Transfer
from parcelwms.models.unit import Unit
from parcelwms.services.actor import Actor
from parcelwms.services.audit_writer import AuditEventWriter
from parcelwms.services.cell_type_policy import normalize_cell_code, status_for_cell_type
from parcelwms.services.errors import InvalidInput, NotFound
from parcelwms.services.inventory_service import ensure_not_locked
from parcelwms.services.unit_loaders import find_cell_by_code
from parcelwms.services.unit_placement import write_move

HUB_RECEIVE_CELL_TYPES = ("bin", "rejected")


async def list_incoming(session: AsyncSession, *, warehouse_id: int) -> List[Tuple[Transfer, Unit]]:
    stmt = (
        select(Transfer, Unit)
        .join(Unit, Unit.id == Transfer.unit_id)
        .where(Transfer.to_warehouse_id == warehouse_id, Transfer.status == "in_transit")
        .order_by(Transfer.created_at.desc(), Transfer.id.desc())
    )
    return [(t, u) for t, u in (await session.execute(stmt)).all()]


async def receive_transfer(
    session: AsyncSession,
    *,
    actor: Actor,
    unit_id: Optional[int],
    cell_code: Optional[str],
) -> Transfer:
    code = normalize_cell_code(cell_code)
    if not unit_id or not code:
        raise InvalidInput("unitId and cellCode are required")
    wh_id = actor.warehouse_id

    stmt = (
        select(Transfer)
        .where(
            Transfer.unit_id == int(unit_id),
            Transfer.to_warehouse_id == wh_id,
            Transfer.status == "in_transit",
        )
        .with_for_update()
    )
    transfer = (await session.execute(stmt)).scalars().first()
    if transfer is None:
        raise NotFound("Transfer not found or already received", code="TRANSFER_NOT_FOUND")

    cell = await find_cell_by_code(session, wh_id, code)
    if cell is None:
        raise NotFound("Target cell not found", code="CELL_NOT_FOUND")
    if not cell.is_active:
        raise InvalidInput("Target cell is inactive", code="CELL_INACTIVE")
    if cell.cell_type not in HUB_RECEIVE_CELL_TYPES:
        raise InvalidInput("Hub receiving allowed only to BIN or REJECTED cells", code="INVALID_TARGET_CELL")

    await ensure_not_locked(session, wh_id)

    unit = (
        await session.execute(select(Unit).where(Unit.id == transfer.unit_id).with_for_update())
    ).scalars().first()
    if unit is None:
        raise NotFound("Unit not found", code="UNIT_NOT_FOUND")

    seen_cell_id = unit.cell_id
    new_status = status_for_cell_type(cell.cell_type)

    await write_move(
        session,
        unit=unit,
        seen_cell_id=seen_cell_id,
        to_cell_id=cell.id,
        new_status=new_status,
        actor=actor,
        warehouse_id=wh_id,
        source="transfer.receive",
        note=f"transfer {transfer.id}",
        reassign_warehouse=True,
    )
    transfer.status = "received"
    transfer.received_at = utcnow()
    await session.flush()

    await AuditEventWriter.write(
        session,
        action="transfer.received",
        entity_type="unit",
        entity_id=unit.id,
        summary=f"Unit {unit.barcode} received from warehouse {transfer.from_warehouse_id} into {cell.code}",
        actor=actor,
        warehouse_id=wh_id,
        meta={
            "transfer_id": transfer.id,
            "from_warehouse_id": transfer.from_warehouse_id,
            "cell_code": cell.code,
            "status": new_status,
        },
    )
    return transfer
