# parcelwms/services/cell_type_policy.py
"""
货位类型策略（唯一真相）：

- status_for_cell_type：包裹进入某类型货位后应得的状态
- SCAN_MOVES：扫码移位允许的 from_type → to_type
- 货位码 / 条码归一

任何移动包裹的入口都必须经过这里取状态，不要在各处自己推导。
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Optional

CELL_TYPES: FrozenSet[str] = frozenset(
    {
        "bin",
        "storage",
        "picking",
        "shipping",
        "receiving",
        "transfer",
        "surplus",
        "rejected",
        "ff",
    }
)

_STATUS_BY_CELL_TYPE: Dict[str, str] = {
    "bin": "bin",
    "storage": "stored",
    "shipping": "shipping",
    "picking": "picking",
    "rejected": "rejected",
}

# units/move 允许调用方显式指定的状态
MOVE_STATUSES: FrozenSet[str] = frozenset({"bin", "stored", "picking", "shipping", "out"})

# 扫码移位：from 类型 → 允许进入的 to 类型
SCAN_MOVES: Dict[str, FrozenSet[str]] = {
    "bin": frozenset({"storage", "shipping", "rejected", "ff"}),
    "storage": frozenset({"storage", "shipping", "picking", "rejected", "ff"}),
    "shipping": frozenset({"shipping", "storage", "picking", "rejected", "ff"}),
    "picking": frozenset({"picking"}),
    "rejected": frozenset({"rejected", "ff", "storage", "shipping"}),
    "ff": frozenset({"ff", "storage", "shipping"}),
}

# 可作为拣货来源的货位类型（创建任务 / 延期自动建任务）
PICKABLE_SOURCE_TYPES: FrozenSet[str] = frozenset({"storage", "shipping"})


def status_for_cell_type(cell_type: Optional[str]) -> Optional[str]:
    """无映射的类型（receiving / transfer / surplus / ff / 未知）返回 None，由调用方决定兜底。"""
    if not cell_type:
        return None
    return _STATUS_BY_CELL_TYPE.get(cell_type)


def scan_status_for_cell_type(cell_type: Optional[str]) -> Optional[str]:
    """扫码移位额外把 ff 映射为 ff。"""
    if cell_type == "ff":
        return "ff"
    return status_for_cell_type(cell_type)


def is_scan_move_allowed(from_type: Optional[str], to_type: Optional[str]) -> bool:
    if not from_type or not to_type:
        return False
    return to_type in SCAN_MOVES.get(from_type, frozenset())


def is_rejected_to_bin(from_type: Optional[str], to_type: Optional[str]) -> bool:
    """rejected 货位里的包裹不能直接回 bin，必须先过中间区。"""
    return from_type == "rejected" and to_type == "bin"


def normalize_cell_code(code: Optional[str]) -> str:
    normalized = str(code or "").strip().upper()
    if normalized.startswith("CELL:"):
        normalized = normalized[len("CELL:") :].strip()
    return normalized


_NON_DIGITS = re.compile(r"\D")


def normalize_barcode(barcode: Optional[str]) -> str:
    """只保留数字。"""
    return _NON_DIGITS.sub("", str(barcode or ""))
