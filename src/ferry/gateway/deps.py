"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与服务实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
注入前刷新读取快照：命令行清理等外部进程可能修改了同一数据目录。
"""

from fastapi import Request
from ferry.core.retention import RetentionManager
from ferry.core.store import StoreGroup
from ferry.core.sync import SyncService


async def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    store_group = request.app.state.store_group
    await store_group.refresh()
    return store_group


async def get_sync_service(request: Request) -> SyncService:
    """从 app.state 获取 SyncService 实例"""
    await request.app.state.store_group.refresh()
    return request.app.state.sync_service


async def get_retention_manager(request: Request) -> RetentionManager:
    """从 app.state 获取 RetentionManager 实例"""
    await request.app.state.store_group.refresh()
    return request.app.state.retention_manager
