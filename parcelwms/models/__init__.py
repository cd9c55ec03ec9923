# parcelwms/models/__init__.py
"""
统一导出 ORM 模型。
"""

from importlib import import_module


def _export(module_name: str, class_name: str) -> None:
    module = import_module(module_name)
    globals()[class_name] = getattr(module, class_name)


MODEL_SPECS = [
    # -------- 仓库 / 人员 --------
    ("parcelwms.models.warehouse", "Warehouse"),
    ("parcelwms.models.profile", "Profile"),
    # -------- 货位 / 包裹 --------
    ("parcelwms.models.cell", "Cell"),
    ("parcelwms.models.unit", "Unit"),
    ("parcelwms.models.unit_move", "UnitMove"),
    # -------- 拣货任务 --------
    ("parcelwms.models.picking_task", "PickingTask"),
    ("parcelwms.models.picking_task", "PickingTaskUnit"),
    ("parcelwms.models.picking_task", "PickingTaskRollback"),
    # -------- 出库 / 调拨 --------
    ("parcelwms.models.outbound", "OutboundShipment"),
    ("parcelwms.models.outbound", "Transfer"),
    # -------- 盘点 --------
    ("parcelwms.models.inventory", "InventorySession"),
    ("parcelwms.models.inventory", "InventoryCellCount"),
    # -------- 审计 / 事件 --------
    ("parcelwms.models.audit_event", "AuditEvent"),
    ("parcelwms.models.outbox_event", "OutboxEvent"),
]

for _mod, _cls in MODEL_SPECS:
    _export(_mod, _cls)

__all__ = [cls for _, cls in MODEL_SPECS]
