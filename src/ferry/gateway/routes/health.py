"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready:  Readiness 检查，包含消息日志目录、blob 目录可写性、磁盘空间、后台清理任务。
"""

import os
import shutil
from pathlib import Path

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

router = APIRouter()


def _check_writable_dir(path: Path) -> str:
    if not path.is_dir():
        return "error: directory does not exist"
    if not os.access(path, os.W_OK):
        return "error: directory is not writable"
    return "ok"


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. message_log: 消息日志所在目录可写
    2. blobs_dir: blob 目录可写
    3. disk_space_mb: 磁盘剩余空间
    4. retention_task: 后台清理任务状态（不影响就绪结果）
    """
    checks: dict[str, object] = {}
    all_ok = True

    store_group = getattr(request.app.state, "store_group", None)
    if store_group is None:
        checks["message_log"] = "error: store not initialized"
        checks["blobs_dir"] = "error: store not initialized"
        all_ok = False
        data_path = Path(".")
    else:
        checks["message_log"] = _check_writable_dir(store_group.message_log.path.parent)
        checks["blobs_dir"] = _check_writable_dir(store_group.blob_store.blobs_dir)
        all_ok = all_ok and checks["message_log"] == "ok" and checks["blobs_dir"] == "ok"
        data_path = store_group.message_log.path.parent

    try:
        disk_space_mb = shutil.disk_usage(data_path).free // (1024 * 1024)
        checks["disk_space_mb"] = disk_space_mb
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    task = getattr(request.app.state, "retention_task", None)
    if task is None:
        checks["retention_task"] = "disabled"
    elif task.done():
        checks["retention_task"] = "stopped"
    else:
        checks["retention_task"] = "running"

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )
