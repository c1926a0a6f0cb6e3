"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from ferry.core.retention import RetentionManager
from ferry.core.sync import SyncService
from httpx import ASGITransport, AsyncClient

_ENV_KEYS = [
    "FERRY_DATA_DIR",
    "FERRY_MESSAGES_PATH",
    "FERRY_RETENTION_PATH",
    "FERRY_BLOBS_DIR",
    "FERRY_RETENTION_ENABLED",
    "FERRY_FRONTEND_DIR",
    "LOGFIRE_SEND_TO_LOGFIRE",
]


@pytest_asyncio.fixture
async def ferry_env(tmp_path: Path) -> AsyncGenerator[Path, None]:
    """通过环境变量把数据目录指向临时目录"""
    saved = {key: os.environ.pop(key, None) for key in _ENV_KEYS}
    data_dir = tmp_path / "ferry-data"
    os.environ["FERRY_DATA_DIR"] = str(data_dir)
    os.environ["FERRY_RETENTION_ENABLED"] = "false"
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    yield data_dir

    for key, value in saved.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest_asyncio.fixture
async def integration_app(store_group, clock):
    """使用可控时钟的 app（手动初始化 lifespan 状态）"""
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
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
