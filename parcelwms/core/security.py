# parcelwms/core/security.py
"""
安全工具（统一入口）：

- 身份由外部身份服务签发，本服务只做 HS256 校验（PyJWT）
- 强制规则：
    * 非 dev 环境必须显式配置 JWT_SECRET
    * 任何环境禁止 alg=none，只接受配置的算法
- create_access_token 供本地联调 / 测试签发 token
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt  # PyJWT

from parcelwms.core.config import AppSettings, get_settings

_DEV_SECRETS = {
    "",
    "dev-temp-secret",
    "dev-secret-change-me",
}

_DEFAULT_EXPIRE_MINUTES = 60


def ensure_secret_configured(settings: Optional[AppSettings] = None) -> None:
    """启动时调用：非 dev 环境禁止使用默认 secret。"""
    s = settings or get_settings()
    if s.ENV != "dev" and s.ENV != "test" and s.JWT_SECRET in _DEV_SECRETS:
        raise RuntimeError(
            "SECURITY ERROR: JWT_SECRET is not properly configured "
            f"(ENV={s.ENV!r}). Set a strong JWT_SECRET and restart."
        )


def create_access_token(
    data: Dict[str, Any],
    expires_minutes: Optional[int] = None,
) -> str:
    s = get_settings()
    payload = dict(data)
    payload["exp"] = int(time.time()) + 60 * (expires_minutes or _DEFAULT_EXPIRE_MINUTES)
    return jwt.encode(payload, s.JWT_SECRET, algorithm=s.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """校验失败 / 过期 / 算法不符一律返回 None，由调用方决定 401。"""
    s = get_settings()
    try:
        out = jwt.decode(token, s.JWT_SECRET, algorithms=[s.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    return out if isinstance(out, dict) else None
