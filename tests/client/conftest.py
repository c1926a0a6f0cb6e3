"""client 测试配置 -- 通过 ASGITransport 连接进程内 Gateway"""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from ferry.client import FerryApi
from ferry.core.retention import RetentionManager
from ferry.core.sync import SyncService
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def gateway_app(store_group, clock):
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from ferry.gateway.main import create_app

    app = create_app()
    app.state.store_group = store_group
    app.state.sync_service = SyncService(store_group.message_log)
    app.state.retention_manager = RetentionManager(store_group, clock=clock)
    app.state.retention_task = None

    yield app

    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def api(gateway_app) -> AsyncGenerator[FerryApi, None]:
    async with AsyncClient(
        transport=ASGITransport(app=gateway_app),
        base_url="http://test",
    ) as http:
        yield FerryApi(http, device="test-device")
