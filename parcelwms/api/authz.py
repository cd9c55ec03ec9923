# parcelwms/api/authz.py
"""
操作 → 角色 白名单（唯一一张表）。

路由只声明 operation，不再各自手写角色列表：
    actor: Actor = Depends(require_op("task.cancel"))
"""

from __future__ import annotations

from typing import Callable, Dict, FrozenSet, Optional

from fastapi import Depends, HTTPException, status

from parcelwms.api.deps import get_current_actor
from parcelwms.services.actor import Actor

ROLES: FrozenSet[str] = frozenset(
    {"admin", "head", "manager", "ops", "logistics", "worker", "hub_worker"}
)

# None = 任何已登录角色
_ANY: Optional[FrozenSet[str]] = None

_TSD = frozenset({"worker", "ops", "admin", "head", "manager"})

POLICY: Dict[str, Optional[FrozenSet[str]]] = {
    "unit.read": _ANY,
    "unit.move": _ANY,
    "unit.assign": _ANY,
    "unit.move_by_scan": _ANY,
    "unit.ops_status": frozenset({"ops", "logistics", "admin", "head"}),
    "unit.admin_move": frozenset({"admin"}),
    "unit.purge": frozenset({"admin"}),
    "unit.create": frozenset({"worker", "manager", "head", "admin"}),
    "receiving.scan": frozenset({"worker", "manager", "head", "admin"}),
    "task.list": _ANY,
    "task.create": frozenset({"admin", "head", "manager", "ops"}),
    "task.cancel": frozenset({"ops", "admin"}),
    "task.scenario": frozenset({"admin", "head", "manager", "ops", "logistics"}),
    "task.start": _TSD,
    "task.check_unit": _TSD,
    "task.scan_unit": _TSD,
    "task.complete_batch": _TSD,
    "tsd.task_list": _TSD,
    "task.close_stale": frozenset({"admin"}),
    "outbox.dispatch": frozenset({"admin"}),
    "cell.read": _ANY,
    "cell.create": frozenset({"admin", "head", "manager"}),
    "cell.delete": frozenset({"admin", "head"}),
    "cell.block": frozenset({"manager", "head", "admin"}),
    "cell.update": _ANY,
    "logistics.ship_out": frozenset({"logistics", "admin", "head"}),
    "logistics.return": frozenset({"logistics", "admin", "head"}),
    "logistics.list_out": frozenset({"logistics", "admin", "head", "manager", "ops", "hub_worker"}),
    "transfer.list": _ANY,
    "transfer.receive": _ANY,
    "inventory.status": _ANY,
    "inventory.scan": _ANY,
    "inventory.start": frozenset({"admin", "head", "manager"}),
    "inventory.stop": frozenset({"admin", "head", "manager"}),
    "audit.read": _ANY,
}


def is_allowed(operation: str, role: Optional[str]) -> bool:
    allowed = POLICY[operation]
    if allowed is None:
        return True
    return role in allowed


def require_op(operation: str) -> Callable[..., Actor]:
    """
    依赖工厂：
    - 未登录 → 401（get_current_actor）
    - 档案没有仓库 → 400 Warehouse not assigned
    - 角色不在白名单 → 403 ROLE_FORBIDDEN
    """
    if operation not in POLICY:
        raise KeyError(f"unknown operation: {operation}")

    async def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.warehouse_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error_code": "WAREHOUSE_NOT_ASSIGNED", "message": "Warehouse not assigned"},
            )
        if not is_allowed(operation, actor.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error_code": "ROLE_FORBIDDEN", "message": "Forbidden"},
            )
        return actor

    return _dep
