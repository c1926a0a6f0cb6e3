"""FastAPI 应用主文件

app 创建 + lifespan 管理：Store 加载与对账 + 同步服务 + 后台保留清理任务 + 路由注册。
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from ferry.core.config import (
    SHUTDOWN_TIMEOUT_S,
    SWEEP_INTERVAL_S,
    get_blobs_dir,
    get_cors_origins,
    get_frontend_dir,
    get_messages_path,
    get_retention_path,
    retention_enabled,
)
from ferry.core.retention import RetentionManager
from ferry.core.store import create_store_group
from ferry.core.sync import SyncService

from .errors import register_exception_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.upload_limit_mw import UploadLimitMiddleware
from .routes import files, health, messages, recycle_bin, upload

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时加载 Store 并启动保留清理任务，关闭时停止任务"""
    store_group = await create_store_group(
        get_messages_path(),
        get_retention_path(),
        get_blobs_dir(),
    )
    app.state.store_group = store_group
    app.state.sync_service = SyncService(store_group.message_log)
    app.state.retention_manager = RetentionManager(store_group)
    app.state.retention_task = None

    stop_event = asyncio.Event()
    if retention_enabled():
        app.state.retention_task = asyncio.create_task(
            app.state.retention_manager.run_periodic(SWEEP_INTERVAL_S, stop_event)
        )
    log.info(
        "gateway_started",
        message_count=len(store_group.message_log),
        retention_enabled=app.state.retention_task is not None,
    )

    yield

    # 关闭：通知后台任务退出，进行中的清理超过 SHUTDOWN_TIMEOUT_S 则取消
    stop_event.set()
    task = app.state.retention_task
    if task is not None:
        try:
            await asyncio.wait_for(task, timeout=SHUTDOWN_TIMEOUT_S)
        except TimeoutError:
            log.warning("retention_task_cancelled", timeout_s=SHUTDOWN_TIMEOUT_S)
    log.info("gateway_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Ferry Gateway",
        version="0.1.0",
        description="跨设备消息与文件中转 API",
        lifespan=lifespan,
    )

    # 注册中间件（后注册的在外层）：CORS -> Logging -> 上传大小预检
    app.add_middleware(UploadLimitMiddleware)
    app.add_middleware(LoggingMiddleware)
    cors_origins = get_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID"],
        )

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    register_exception_handlers(app)

    # 注册路由
    app.include_router(messages.router, tags=["messages"])
    app.include_router(upload.router, tags=["upload"])
    app.include_router(files.router, tags=["files"])
    app.include_router(recycle_bin.router, tags=["recycle-bin"])
    app.include_router(health.router, tags=["health"])

    # 挂载前端静态文件，在所有 API 路由之后挂载，确保 API 优先匹配
    frontend_dir = get_frontend_dir()
    if frontend_dir is not None and frontend_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(frontend_dir), html=True), name="frontend")

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
