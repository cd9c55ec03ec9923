# parcelwms/services/actor.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """当前操作人快照（来自 token + profiles）。"""

    id: str
    role: Optional[str] = None
    warehouse_id: Optional[int] = None
    full_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.id


# outbox / 定时清理等非人工入口使用的系统身份
SYSTEM_ACTOR = Actor(id="system", role="system", full_name="system")
