# parcelwms/api/outbox_hook.py
from __future__ import annotations

from typing import Optional, Sequence

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcelwms.services.outbox import dispatch_in_background


def schedule_outbox(
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker[AsyncSession],
    ids: Optional[Sequence[int]] = None,
) -> None:
    """
    主事务 commit 之后调用：把 outbox 派发挂到响应之后执行。
    ids=None 表示处理全部 pending；空列表表示本次没有事件。
    """
    if ids is not None and not ids:
        return
    background_tasks.add_task(dispatch_in_background, session_factory, list(ids) if ids else None)
