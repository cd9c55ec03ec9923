# parcelwms/obs/metrics.py
# Prometheus 指标：HTTP 请求 + 移位 / 拣货 / outbox 业务计数
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

http_requests_total = Counter("http_requests_total", "HTTP requests", ["method", "path", "code"])
http_request_duration = Histogram(
    "http_request_duration_seconds", "HTTP request duration seconds", ["method", "path"]
)

# 每写一行 unit_moves +1（source = move / assign / picking.scan / picking.cancel ...）
unit_moves_total = Counter("parcelwms_unit_moves_total", "Unit placements written", ["source"])
# CAS 丢失竞争（并发移位）
unit_move_conflicts_total = Counter(
    "parcelwms_unit_move_conflicts_total", "Unit placements lost to a concurrent move"
)
# 取消任务时单个包裹回滚失败
task_rollback_failures_total = Counter(
    "parcelwms_task_rollback_failures_total", "Per-unit rollback failures while canceling picking tasks"
)
outbox_events_total = Counter(
    "parcelwms_outbox_events_total", "Outbox events dispatched", ["topic", "status"]
)
postponed_auto_tasks_total = Counter(
    "parcelwms_postponed_auto_tasks_total", "Postponed auto-task attempts", ["result"]
)


def _route_path(request) -> str:
    # 用路由模板做 label，避免 /units/123 这类路径把基数撑爆
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        path = _route_path(request)
        http_requests_total.labels(request.method, path, str(response.status_code)).inc()
        http_request_duration.labels(request.method, path).observe(elapsed)
        return response
