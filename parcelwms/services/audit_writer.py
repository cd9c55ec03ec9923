# parcelwms/services/audit_writer.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from parcelwms.models.audit_event import AuditEvent
from parcelwms.services.actor import Actor

logger = logging.getLogger("parcelwms.audit")


class AuditEventWriter:
    """
    统一审计写入器：

    - 唯一职责：往 audit_events 表写一行。
    - 写在 SAVEPOINT 里：审计失败只回滚自己，不影响主事务，也不向上抛。
    - 不负责 commit，跟随调用方事务一起提交。
    """

    @staticmethod
    async def write(
        session: AsyncSession,
        *,
        action: str,
        entity_type: str,
        entity_id: Any = None,
        summary: Optional[str] = None,
        actor: Optional[Actor] = None,
        warehouse_id: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = dict(meta or {})
        wh = warehouse_id if warehouse_id is not None else (actor.warehouse_id if actor else None)

        try:
            async with session.begin_nested():
                session.add(
                    AuditEvent(
                        warehouse_id=wh,
                        action=action,
                        entity_type=entity_type,
                        entity_id=None if entity_id is None else str(entity_id),
                        summary=summary,
                        actor_id=actor.id if actor else None,
                        actor_role=actor.role if actor else None,
                        actor_name=actor.full_name if actor else None,
                        meta=payload,
                    )
                )
        except Exception as e:
            # 不让审计写入影响主流程，统一打 DEBUG + INFO 兜底
            logger.debug("audit_events insert failed: %s", e)
            logger.info(
                "[audit-fallback] %s | %s:%s | %s",
                action,
                entity_type,
                entity_id,
                json.dumps(payload, ensure_ascii=False, default=str),
            )
