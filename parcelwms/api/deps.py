# parcelwms/api/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.core.security import decode_access_token
from parcelwms.db.session import get_session, get_session_factory
from parcelwms.models.profile import Profile
from parcelwms.services.actor import Actor

__all__ = ["get_session", "get_session_factory", "get_current_actor", "oauth2_scheme"]

# 登录由外部身份服务完成，这里只读 Authorization: Bearer <token>
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


async def get_current_actor(
    token: Optional[str] = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
) -> Actor:
    """
    当前操作人：

    - 没带 token / token 无效或过期 → 401
    - token 有效但 profiles 里没有该用户 → 403
    """
    token = (token or "").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = decode_access_token(token)
    sub = (claims or {}).get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    profile = await session.get(Profile, str(sub))
    if profile is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Profile not found")

    return Actor(
        id=profile.id,
        role=profile.role,
        warehouse_id=profile.warehouse_id,
        full_name=profile.full_name,
    )
