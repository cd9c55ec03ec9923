# tests/conftest.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import AsyncGenerator, Callable, Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# ============================================================
# ★ 在 import parcelwms 之前固定测试配置（get_settings 有缓存）
# ============================================================
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret-for-parcelwms"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-parcelwms.db")

from parcelwms.core.security import create_access_token  # noqa: E402
from parcelwms.db.base import Base, init_models  # noqa: E402
from parcelwms.db.session import get_session, get_session_factory, make_engine, make_session_factory  # noqa: E402
from parcelwms.main import app  # noqa: E402
from parcelwms.services.actor import Actor  # noqa: E402

from tests.factories import make_cell, make_profile, make_warehouse  # noqa: E402

ROLES = ("admin", "head", "manager", "ops", "logistics", "worker", "hub_worker")

CELLS = (
    ("BIN-01", "bin"),
    ("A-01", "storage"),
    ("A-02", "storage"),
    ("S-01", "shipping"),
    ("P-01", "picking"),
    ("P-02", "picking"),
    ("R-01", "rejected"),
    ("RCV-01", "receiving"),
)


# =========================================
# 每用例独立 sqlite 文件库
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    init_models()
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'parcelwms.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(async_engine)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


# =========================================
# 最小基线：两个仓库 + 每个角色一个账号 + 一组货位
# =========================================
@dataclass
class World:
    wh_id: int
    other_wh_id: int
    cells: Dict[str, int] = field(default_factory=dict)

    def actor(self, role: str) -> Actor:
        return Actor(id=f"user-{role}", role=role, warehouse_id=self.wh_id, full_name=f"{role} user")

    def cell(self, code: str) -> int:
        return self.cells[code]


@pytest_asyncio.fixture(scope="function")
async def world(session_factory) -> World:
    async with session_factory() as s:
        wh = await make_warehouse(s, "WH-1")
        other = await make_warehouse(s, "HUB-2")
        for role in ROLES:
            await make_profile(s, id=f"user-{role}", role=role, warehouse_id=wh.id, full_name=f"{role} user")
        await make_profile(s, id="user-nowh", role="worker", warehouse_id=None)
        await make_profile(s, id="user-hub", role="hub_worker", warehouse_id=other.id)

        w = World(wh_id=wh.id, other_wh_id=other.id)
        for code, cell_type in CELLS:
            c = await make_cell(s, warehouse_id=wh.id, code=code, cell_type=cell_type)
            w.cells[code] = c.id
        hub_bin = await make_cell(s, warehouse_id=other.id, code="HUB-BIN", cell_type="bin")
        w.cells["HUB-BIN"] = hub_bin.id
        await s.commit()
    return w


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def auth() -> Callable[[str], Dict[str, str]]:
    """auth("ops") → 对应角色账号的 Authorization 头。"""

    def _headers(role_or_user: str) -> Dict[str, str]:
        sub = role_or_user if role_or_user.startswith("user-") else f"user-{role_or_user}"
        return {"Authorization": f"Bearer {create_access_token({'sub': sub})}"}

    return _headers
