"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from sendra.core.config import StoreConfig
from sendra.core.models import Project
from sendra.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "core_test.db"


@pytest_asyncio.fixture
async def store_group(core_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """核心层 StoreGroup（小分页，便于覆盖翻页路径）"""
    group = await create_store_group(
        str(core_db_path),
        config=StoreConfig(list_page_size=5, batch_retry_backoff_ms=0),
    )
    yield group
    await group.conn.close()


@pytest_asyncio.fixture
async def project(store_group: StoreGroup) -> Project:
    """一个空项目"""
    return await store_group.projects().create({"name": "测试项目", "url": "https://example.com"})
