# parcelwms/api/problem.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


def new_trace_id() -> str:
    return "t_" + uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Problem:
    """
    统一错误体：

    - ok / error：老客户端只认这两个字段，必须保留
    - error_code：稳定错误码
    - trace_id：对应服务端日志
    - extra：业务附加字段（invalidUnits / reservedUnits / pickedBy ...），平铺到顶层
    """

    error_code: str
    message: str
    http_status: int
    extra: Optional[Dict[str, Any]] = None
    details: Optional[List[Dict[str, Any]]] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ok": False,
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.trace_id:
            out["trace_id"] = self.trace_id
        if self.details:
            out["details"] = self.details
        if self.extra:
            for k, v in self.extra.items():
                out.setdefault(k, v)
        return out


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    extra: Optional[Dict[str, Any]] = None,
    details: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        error_code=str(error_code),
        message=str(message),
        http_status=int(status_code),
        extra=extra,
        details=list(details) if details else None,
        trace_id=trace_id or new_trace_id(),
    )
    return p.to_dict()
