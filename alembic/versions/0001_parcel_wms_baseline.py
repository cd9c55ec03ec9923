"""parcel wms baseline: warehouses / cells / units / picking tasks / outbound / inventory / audit / outbox

Revision ID: 0001_parcel_wms_baseline
Revises:
Create Date: 2026-10-19 10:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_parcel_wms_baseline"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
_TS = sa.DateTime(timezone=True)


def _pk() -> sa.Column:
    return sa.Column("id", _ID, primary_key=True, autoincrement=True)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, _TS, nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "warehouses",
        _pk(),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("inventory_active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("inventory_session_id", _ID, nullable=True),
        _created_at(),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("warehouse_id", _ID, sa.ForeignKey("warehouses.id"), nullable=True),
        sa.Column("role", sa.String(32), nullable=True),
        sa.Column("full_name", sa.String(128), nullable=True),
        _created_at(),
    )

    op.create_table(
        "warehouse_cells",
        _pk(),
        sa.Column("warehouse_id", _ID, sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("cell_type", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("x", sa.Integer, nullable=False, server_default=sa.text("100")),
        sa.Column("y", sa.Integer, nullable=False, server_default=sa.text("100")),
        sa.Column("w", sa.Integer, nullable=False, server_default=sa.text("80")),
        sa.Column("h", sa.Integer, nullable=False, server_default=sa.text("60")),
        sa.Column("meta", _JSON, nullable=True),
        _created_at(),
        sa.UniqueConstraint("warehouse_id", "code", name="uq_warehouse_cells_wh_code"),
    )
    op.create_index("ix_warehouse_cells_wh_type", "warehouse_cells", ["warehouse_id", "cell_type"])

    op.create_table(
        "units",
        _pk(),
        sa.Column("warehouse_id", _ID, sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("cell_id", _ID, sa.ForeignKey("warehouse_cells.id"), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'receiving'")),
        sa.Column("meta", _JSON, nullable=True),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_units_wh_barcode", "units", ["warehouse_id", "barcode"])
    op.create_index("ix_units_cell", "units", ["cell_id"])

    op.create_table(
        "unit_moves",
        _pk(),
        sa.Column("warehouse_id", _ID, nullable=False),
        sa.Column("unit_id", _ID, sa.ForeignKey("units.id"), nullable=False),
        sa.Column("from_cell_id", _ID, nullable=True),
        sa.Column("to_cell_id", _ID, nullable=True),
        sa.Column("to_status", sa.String(32), nullable=True),
        sa.Column("moved_by", sa.String(64), nullable=True),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("note", sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index("ix_unit_moves_unit_created", "unit_moves", ["unit_id", "created_at"])

    op.create_table(
        "picking_tasks",
        _pk(),
        sa.Column("warehouse_id", _ID, sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'open'")),
        sa.Column("target_picking_cell_id", _ID, sa.ForeignKey("warehouse_cells.id"), nullable=True),
        sa.Column("scenario", sa.Text, nullable=True),
        sa.Column("unit_id", _ID, nullable=True),
        sa.Column("from_cell_id", _ID, nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("created_by_name", sa.String(128), nullable=True),
        sa.Column("picked_by", sa.String(64), nullable=True),
        sa.Column("picked_at", _TS, nullable=True),
        sa.Column("completed_by", sa.String(64), nullable=True),
        sa.Column("completed_at", _TS, nullable=True),
        sa.Column("canceled_by", sa.String(64), nullable=True),
        sa.Column("canceled_at", _TS, nullable=True),
        _created_at(),
    )
    op.create_index("ix_picking_tasks_wh_status", "picking_tasks", ["warehouse_id", "status"])
    op.create_index("ix_picking_tasks_created", "picking_tasks", ["created_at"])

    op.create_table(
        "picking_task_units",
        _pk(),
        sa.Column(
            "picking_task_id", _ID, sa.ForeignKey("picking_tasks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("unit_id", _ID, sa.ForeignKey("units.id"), nullable=False),
        sa.Column("from_cell_id", _ID, nullable=True),
        _created_at(),
        sa.UniqueConstraint("picking_task_id", "unit_id", name="uq_picking_task_units_task_unit"),
    )
    op.create_index("ix_picking_task_units_unit", "picking_task_units", ["unit_id"])

    op.create_table(
        "picking_task_rollbacks",
        _pk(),
        sa.Column(
            "picking_task_id", _ID, sa.ForeignKey("picking_tasks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("unit_id", _ID, nullable=False),
        sa.Column("from_cell_id", _ID, nullable=True),
        sa.Column("to_cell_id", _ID, nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("error", sa.Text, nullable=True),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index(
        "ix_picking_task_rollbacks_task", "picking_task_rollbacks", ["picking_task_id", "status"]
    )

    op.create_table(
        "outbound_shipments",
        _pk(),
        sa.Column("warehouse_id", _ID, sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("unit_id", _ID, sa.ForeignKey("units.id"), nullable=False),
        sa.Column("courier_name", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'out'")),
        sa.Column("out_by", sa.String(64), nullable=True),
        _created_at("out_at"),
        sa.Column("returned_by", sa.String(64), nullable=True),
        sa.Column("returned_at", _TS, nullable=True),
        sa.Column("return_reason", sa.Text, nullable=True),
        sa.Column("meta", _JSON, nullable=True),
    )
    op.create_index(
        "ix_outbound_shipments_wh_status", "outbound_shipments", ["warehouse_id", "status"]
    )

    op.create_table(
        "transfers",
        _pk(),
        sa.Column("unit_id", _ID, sa.ForeignKey("units.id"), nullable=False),
        sa.Column("from_warehouse_id", _ID, nullable=False),
        sa.Column("to_warehouse_id", _ID, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'in_transit'")),
        sa.Column("meta", _JSON, nullable=True),
        _created_at(),
        sa.Column("received_at", _TS, nullable=True),
    )
    op.create_index("ix_transfers_to_status", "transfers", ["to_warehouse_id", "status"])

    op.create_table(
        "inventory_sessions",
        _pk(),
        sa.Column("warehouse_id", _ID, sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("started_by", sa.String(64), nullable=True),
        _created_at("started_at"),
        sa.Column("closed_by", sa.String(64), nullable=True),
        sa.Column("closed_at", _TS, nullable=True),
    )

    op.create_table(
        "inventory_cell_counts",
        _pk(),
        sa.Column("session_id", _ID, sa.ForeignKey("inventory_sessions.id"), nullable=False),
        sa.Column("cell_id", _ID, sa.ForeignKey("warehouse_cells.id"), nullable=False),
        sa.Column("scanned_by", sa.String(64), nullable=True),
        _created_at("scanned_at"),
        sa.Column("unit_barcodes", _JSON, nullable=False),
        sa.Column("expected_count", sa.Integer, nullable=False),
        sa.Column("scanned_count", sa.Integer, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'scanned'")),
        sa.UniqueConstraint("session_id", "cell_id", name="uq_inventory_cell_counts_session_cell"),
    )

    op.create_table(
        "audit_events",
        _pk(),
        sa.Column("warehouse_id", _ID, nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("actor_role", sa.String(32), nullable=True),
        sa.Column("actor_name", sa.String(128), nullable=True),
        sa.Column("meta", _JSON, nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_events_wh_created", "audit_events", ["warehouse_id", "created_at"])
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    op.create_table(
        "outbox_events",
        _pk(),
        sa.Column("topic", sa.String(64), nullable=False),
        sa.Column("payload", _JSON, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("result", _JSON, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        _created_at(),
        sa.Column("processed_at", _TS, nullable=True),
    )
    op.create_index("ix_outbox_events_status_id", "outbox_events", ["status", "id"])


def downgrade() -> None:
    for ix, table in (
        ("ix_outbox_events_status_id", "outbox_events"),
        ("ix_audit_events_entity", "audit_events"),
        ("ix_audit_events_wh_created", "audit_events"),
        ("ix_transfers_to_status", "transfers"),
        ("ix_outbound_shipments_wh_status", "outbound_shipments"),
        ("ix_picking_task_rollbacks_task", "picking_task_rollbacks"),
        ("ix_picking_task_units_unit", "picking_task_units"),
        ("ix_picking_tasks_created", "picking_tasks"),
        ("ix_picking_tasks_wh_status", "picking_tasks"),
        ("ix_unit_moves_unit_created", "unit_moves"),
        ("ix_units_cell", "units"),
        ("ix_units_wh_barcode", "units"),
        ("ix_warehouse_cells_wh_type", "warehouse_cells"),
    ):
        op.drop_index(ix, table_name=table)

    for table in (
        "outbox_events",
        "audit_events",
        "inventory_cell_counts",
        "inventory_sessions",
        "transfers",
        "outbound_shipments",
        "picking_task_rollbacks",
        "picking_task_units",
        "picking_tasks",
        "unit_moves",
        "units",
        "warehouse_cells",
        "profiles",
        "warehouses",
    ):
        op.drop_table(table)
