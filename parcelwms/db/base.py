# parcelwms/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("parcelwms.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False  # 防重复初始化

# 显式导入顺序：被引用的表在前
_MODEL_MODULES = (
    "parcelwms.models.warehouse",
    "parcelwms.models.profile",
    "parcelwms.models.cell",
    "parcelwms.models.unit",
    "parcelwms.models.unit_move",
    "parcelwms.models.picking_task",
    "parcelwms.models.outbound",
    "parcelwms.models.inventory",
    "parcelwms.models.audit_event",
    "parcelwms.models.outbox_event",
)


def init_models(*, force: bool = False) -> None:
    """
    集中导入模型 + 固化关系映射（alembic / create_all 之前调用）。
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    for mod in _MODEL_MODULES:
        importlib.import_module(mod)

    configure_mappers()
    _INITIALIZED = True
    log.debug("models initialized: %d modules", len(_MODEL_MODULES))
