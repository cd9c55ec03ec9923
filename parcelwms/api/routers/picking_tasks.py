# parcelwms/api/routers/picking_tasks.py
from __future__ import annotations

from fastapi import APIRouter

from parcelwms.api.routers.picking_tasks_routes_cancel import register_cancel
from parcelwms.api.routers.picking_tasks_routes_get import register_get
from parcelwms.api.routers.picking_tasks_routes_ops import register_ops
from parcelwms.api.routers.picking_tasks_routes_tsd import register_tsd

# 拣货任务分三组路径：ops/picking-tasks（建单 / 改场景）、tsd/shipping-tasks（扫码枪）、
# picking-tasks（取消 / 详情），共用一个 router
router = APIRouter()

register_ops(router)
register_tsd(router)
register_cancel(router)
register_get(router)
