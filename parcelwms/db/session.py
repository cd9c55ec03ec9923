# parcelwms/db/session.py
# 统一的异步会话工厂 + FastAPI 依赖（get_session / get_session_factory）
from __future__ import annotations

import re
from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from parcelwms.core.config import get_settings


# ---- DSN 归一：PG 统一到 psycopg3，sqlite 统一到 aiosqlite ----
def normalize_async_dsn(url: str) -> str:
    url = (url or "").strip()
    # 有些环境会把值写成 '"postgresql+psycopg://.../wms"'，这里统一剥掉两侧引号
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    if not url:
        raise ValueError("DATABASE_URL is empty")
    # sqlite:/// → sqlite+aiosqlite:///
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    # postgres/postgresql(+*) → postgresql+psycopg
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    # pysqlite / aiosqlite 默认的事务处理会吞掉 SAVEPOINT（审计写入依赖它），
    # 改为由 SQLAlchemy 显式发 BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(url: str, *, echo: bool = False, **kwargs) -> AsyncEngine:
    dsn = normalize_async_dsn(url)
    if dsn.startswith("postgresql"):
        kwargs.setdefault("pool_pre_ping", True)
    engine = create_async_engine(dsn, echo=echo, future=True, **kwargs)
    if dsn.startswith("sqlite"):
        _enable_sqlite_savepoints(engine)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


_settings = get_settings()

async_engine: AsyncEngine = make_engine(_settings.DATABASE_URL, echo=_settings.SQL_ECHO)
AsyncSessionLocal: async_sessionmaker[AsyncSession] = make_session_factory(async_engine)


# ---- FastAPI 依赖 ----
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """后台任务（outbox 派发）需要自己开 session，不复用请求内的 session。"""
    return AsyncSessionLocal


# ---- 关闭引擎（测试/生命周期） ----
async def close_engines() -> None:
    await async_engine.dispose()
