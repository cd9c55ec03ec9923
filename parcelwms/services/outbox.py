# parcelwms/services/outbox.py
"""
事务性 outbox：

- publish(session, topic, payload)：与业务写入同事务落库，不做任何派发
- OutboxDispatcher：主事务提交后消费 pending 事件，每个事件独立事务；
  处理结果写回事件行（done / failed），失败只记日志，不回传给触发它的请求
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcelwms.db.types import utcnow
from parcelwms.models.outbox_event import OutboxEvent
from parcelwms.obs.metrics import outbox_events_total

logger = logging.getLogger("parcelwms.outbox")

Handler = Callable[[AsyncSession, Dict[str, Any]], Awaitable[Dict[str, Any]]]

_HANDLERS: Dict[str, Handler] = {}


def register_handler(topic: str) -> Callable[[Handler], Handler]:
    def _wrap(fn: Handler) -> Handler:
        _HANDLERS[topic] = fn
        return fn

    return _wrap


def registered_topics() -> List[str]:
    _load_handlers()
    return sorted(_HANDLERS)


def _load_handlers() -> None:
    # 处理器模块通过 register_handler 自注册
    from parcelwms.services import postponed_auto_task  # noqa: F401


async def publish(session: AsyncSession, topic: str, payload: Dict[str, Any]) -> OutboxEvent:
    ev = OutboxEvent(topic=topic, payload=dict(payload), status="pending", attempts=0)
    session.add(ev)
    await session.flush()
    return ev


class OutboxDispatcher:
    """
    用法：
        await OutboxDispatcher(session_factory).dispatch_pending()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._factory = session_factory

    async def dispatch_pending(
        self, *, ids: Optional[Sequence[int]] = None, limit: int = 100
    ) -> Dict[str, int]:
        _load_handlers()
        async with self._factory() as session:
            stmt = select(OutboxEvent.id).where(OutboxEvent.status == "pending")
            if ids:
                stmt = stmt.where(OutboxEvent.id.in_(list(ids)))
            stmt = stmt.order_by(OutboxEvent.id).limit(limit)
            pending = list((await session.execute(stmt)).scalars())

        stats = {"processed": 0, "done": 0, "failed": 0}
        for event_id in pending:
            status = await self._dispatch_one(event_id)
            if status is None:
                continue
            stats["processed"] += 1
            stats[status] += 1
        return stats

    async def _dispatch_one(self, event_id: int) -> Optional[str]:
        async with self._factory() as session:
            ev = (
                await session.execute(
                    select(OutboxEvent).where(OutboxEvent.id == event_id).with_for_update()
                )
            ).scalars().first()
            if ev is None or ev.status != "pending":
                # 已被别的派发器处理
                return None

            topic = ev.topic
            payload = dict(ev.payload or {})
            handler = _HANDLERS.get(topic)

            error: Optional[str] = None
            result: Optional[Dict[str, Any]] = None
            if handler is None:
                error = f"no handler for topic {topic}"
            else:
                try:
                    result = await handler(session, payload)
                    await session.flush()
                except Exception as e:
                    logger.exception("[outbox] handler failed: id=%s topic=%s", event_id, topic)
                    error = f"{type(e).__name__}: {e}"

            if error is not None:
                await session.rollback()
                ev = await session.get(OutboxEvent, event_id)
                if ev is None:
                    return None
                ev.status = "failed"
                ev.last_error = error
            else:
                ev.status = "done"
                ev.result = result

            ev.attempts = (ev.attempts or 0) + 1
            ev.processed_at = utcnow()
            await session.commit()
            outbox_events_total.labels(topic, ev.status).inc()

            logger.info("[outbox] id=%s topic=%s status=%s result=%s", event_id, topic, ev.status, result)
            return ev.status


async def dispatch_in_background(
    session_factory: async_sessionmaker[AsyncSession], ids: Optional[Sequence[int]] = None
) -> None:
    """BackgroundTasks 入口：吞掉所有异常，只记日志。ids 为空时处理全部 pending。"""
    try:
        await OutboxDispatcher(session_factory).dispatch_pending(ids=ids)
    except Exception:
        logger.exception("[outbox] background dispatch failed: ids=%s", list(ids or ()))
