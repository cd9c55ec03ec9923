# parcelwms/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parcelwms import __version__
from parcelwms.api.errors import install_error_handlers
from parcelwms.core.config import get_settings
from parcelwms.core.logging import setup_logging
from parcelwms.core.scheduler import init_scheduler, shutdown_scheduler
from parcelwms.core.security import ensure_secret_configured
from parcelwms.db.base import init_models
from parcelwms.db.session import close_engines, get_session_factory
from parcelwms.obs.metrics import PrometheusMiddleware

settings = get_settings()
setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
logger = logging.getLogger("parcelwms")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    ensure_secret_configured(settings)
    init_models()
    init_scheduler(settings, get_session_factory())
    logger.info("parcelwms %s started (ENV=%s)", __version__, settings.ENV)
    yield
    shutdown_scheduler()
    await close_engines()


app = FastAPI(
    title="Parcel WMS",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(PrometheusMiddleware)

install_error_handlers(app)

# ===========================
#          路由
# ===========================
from parcelwms.api.routers.admin import router as admin_router  # noqa: E402
from parcelwms.api.routers.audit import router as audit_router  # noqa: E402
from parcelwms.api.routers.cells import router as cells_router  # noqa: E402
from parcelwms.api.routers.inventory import router as inventory_router  # noqa: E402
from parcelwms.api.routers.logistics import router as logistics_router  # noqa: E402
from parcelwms.api.routers.metrics import router as metrics_router  # noqa: E402
from parcelwms.api.routers.picking_tasks import router as picking_tasks_router  # noqa: E402
from parcelwms.api.routers.receiving import router as receiving_router  # noqa: E402
from parcelwms.api.routers.transfers import router as transfers_router  # noqa: E402
from parcelwms.api.routers.units import router as units_router  # noqa: E402

# 包裹 / 移位
app.include_router(units_router)
app.include_router(receiving_router)

# 拣货任务（ops / tsd / picking-tasks）
app.include_router(picking_tasks_router)

# 出库 / 调拨
app.include_router(logistics_router)
app.include_router(transfers_router)

# 货位 / 盘点 / 审计
app.include_router(cells_router)
app.include_router(inventory_router)
app.include_router(audit_router)

# 管理员工具
app.include_router(admin_router)

# Prometheus
app.include_router(metrics_router)


@app.get("/ping")
async def ping():
    return {"pong": True}
