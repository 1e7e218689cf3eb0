"""apps/gateway 测试配置 -- FastAPI app + httpx AsyncClient fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sendra.core.models import Project
from sendra.core.services import ActionsService
from sendra.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def test_app(tmp_path: Path):
    """创建测试用 FastAPI app，手动初始化 app.state（绕过 lifespan）"""
    os.environ["SENDRA_DB_PATH"] = str(tmp_path / "sqlite" / "test.db")

    from sendra.gateway.main import create_app

    app = create_app()

    store_group = await create_store_group(os.environ["SENDRA_DB_PATH"])
    app.state.store_group = store_group
    app.state.actions_service = ActionsService(store_group)

    yield app

    await store_group.conn.close()
    os.environ.pop("SENDRA_DB_PATH", None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def store_group(test_app) -> StoreGroup:
    return test_app.state.store_group


@pytest_asyncio.fixture
async def project(store_group: StoreGroup) -> Project:
    return await store_group.projects().create({"name": "网关测试项目"})
