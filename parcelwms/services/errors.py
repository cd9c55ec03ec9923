# parcelwms/services/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class WmsError(Exception):
    """
    业务异常基类：

    - code:    稳定错误码（客户端按 code 分支，不要再匹配 message 文本）
    - status:  对应 HTTP 状态码
    - extra:   额外返回字段（invalidUnits / reservedUnits 等）
    """

    code = "WMS_ERROR"
    status = 400

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        if code:
            self.code = code
        if status:
            self.status = status
        self.message = message
        self.extra: Dict[str, Any] = dict(extra or {})


class InvalidInput(WmsError):
    code = "INVALID_INPUT"
    status = 400


class InvalidState(WmsError):
    code = "INVALID_STATE"
    status = 400


class PolicyViolation(WmsError):
    code = "POLICY_VIOLATION"
    status = 400


class Forbidden(WmsError):
    code = "FORBIDDEN"
    status = 403


class NotFound(WmsError):
    code = "NOT_FOUND"
    status = 404


class Conflict(WmsError):
    code = "CONFLICT"
    status = 409


class InventoryLocked(WmsError):
    """全仓盘点进行中：所有移位暂停。message 固定带 INVENTORY_ACTIVE，老客户端靠它判断。"""

    code = "INVENTORY_ACTIVE"
    status = 423

    def __init__(self, message: str = "INVENTORY_ACTIVE: inventory is in progress, unit moves are blocked") -> None:
        super().__init__(message)
