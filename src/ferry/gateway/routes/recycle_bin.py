"""回收站路由

GET  /api/recycle-bin:                        回收站条目 {message, binnedAt, purgeAt}
POST /api/recycle-bin/{message_id}/restore:   恢复到活跃日志，不在回收站返回 404
"""

from fastapi import APIRouter, Depends
from ferry.core.retention import RetentionManager

from ..deps import get_retention_manager

router = APIRouter()


@router.get("/api/recycle-bin")
async def list_recycle_bin(manager: RetentionManager = Depends(get_retention_manager)):
    return {
        "entries": [record.to_bin_entry(manager.policy) for record in manager.recycle_bin()]
    }


@router.post("/api/recycle-bin/{message_id}/restore")
async def restore_message(
    message_id: str,
    manager: RetentionManager = Depends(get_retention_manager),
):
    """恢复消息：按原 timestamp 插回日志，活跃窗口从恢复时间重新计算"""
    message = await manager.restore(message_id)
    return message.to_wire()
