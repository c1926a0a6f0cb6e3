"""gateway 测试配置 -- FastAPI app + httpx AsyncClient"""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from ferry.core.retention import RetentionManager
from ferry.core.sync import SyncService
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def test_app(store_group, clock):
    """创建测试用 FastAPI app，手动初始化 lifespan 状态"""
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"
    os.environ.pop("FERRY_FRONTEND_DIR", None)

    from ferry.gateway.main import create_app

    app = create_app()

    # 手动初始化（ASGITransport 不触发 lifespan）
    app.state.store_group = store_group
    app.state.sync_service = SyncService(store_group.message_log)
    app.state.retention_manager = RetentionManager(store_group, clock=clock)
    app.state.retention_task = None

    yield app

    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
