# parcelwms/core/scheduler.py
from __future__ import annotations

import dataclasses
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcelwms.core.config import AppSettings
from parcelwms.models.warehouse import Warehouse
from parcelwms.services.actor import SYSTEM_ACTOR
from parcelwms.services.outbox import OutboxDispatcher
from parcelwms.services.picking_task_edit import close_stale_tasks

logger = logging.getLogger("parcelwms.tasks")

_scheduler: AsyncIOScheduler | None = None


async def drain_outbox(session_factory: async_sessionmaker[AsyncSession]) -> None:
    # 请求后台派发失败/进程重启遗留的 pending 事件由这里兜底
    stats = await OutboxDispatcher(session_factory).dispatch_pending()
    if stats["processed"]:
        logger.info("[outbox] periodic drain: %s", stats)


async def sweep_stale_tasks(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """逐仓关闭超期的 in_progress 任务，返回关闭总数。"""
    async with session_factory() as session:
        warehouse_ids = list((await session.execute(select(Warehouse.id).order_by(Warehouse.id))).scalars())

    closed = 0
    for wh_id in warehouse_ids:
        actor = dataclasses.replace(SYSTEM_ACTOR, warehouse_id=wh_id)
        async with session_factory() as session:
            try:
                result = await close_stale_tasks(session, actor=actor)
                await session.commit()
            except Exception:
                await session.rollback()
                logger.exception("[stale-sweep] warehouse %s failed", wh_id)
                continue
        closed += int(result["closed"])
    if closed:
        logger.info("[stale-sweep] closed %d stale picking tasks", closed)
    return closed


def init_scheduler(settings: AppSettings, session_factory: async_sessionmaker[AsyncSession]) -> None:
    global _scheduler
    if not settings.ENABLE_SCHEDULER or _scheduler is not None:
        return
    _scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)
    _scheduler.add_job(
        drain_outbox,
        "interval",
        seconds=settings.OUTBOX_DRAIN_SECONDS,
        args=[session_factory],
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        sweep_stale_tasks,
        "cron",
        hour=settings.STALE_SWEEP_HOUR,
        minute=0,
        args=[session_factory],
        max_instances=1,
    )
    _scheduler.start()
    logger.info("scheduler started (tz=%s)", settings.SCHEDULER_TIMEZONE)


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
