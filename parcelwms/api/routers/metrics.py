# parcelwms/api/routers/metrics.py
from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus 抓取入口（不鉴权，由网关限制来源）。"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
