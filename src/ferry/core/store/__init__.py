"""Ferry Core Store -- JSONL 日志 + 文件系统 blob 持久化实现

提供工厂函数创建共享写锁的 Store 实例组。
"""

import asyncio
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import structlog

from ..config import BLOB_IO_TIMEOUT_S
from .blob_store import FileBlobStore
from .message_log import JsonlMessageLog, utc_now
from .retention_store import JsonlRetentionStore
from .transaction import (
    append_file_message,
    move_to_recycle_bin,
    purge_records,
    restore_record,
)

log = structlog.get_logger()


class StoreGroup:
    """Store 实例组 -- 共享同一个写锁

    消息日志与保留记录的所有写入都经过 write_lock 串行化，
    保留管理与普通写入方遵守同一串行化约束。
    """

    def __init__(
        self,
        messages_path: Path,
        retention_path: Path,
        blobs_dir: Path,
        clock: Callable[[], datetime] = utc_now,
        blob_io_timeout_s: float = BLOB_IO_TIMEOUT_S,
    ) -> None:
        self.write_lock = asyncio.Lock()
        self.clock = clock
        self.message_log = JsonlMessageLog(messages_path, self.write_lock, clock=clock)
        self.retention_store = JsonlRetentionStore(retention_path, self.write_lock)
        self.blob_store = FileBlobStore(blobs_dir, io_timeout_s=blob_io_timeout_s)

    def find_blob_owner(self, blob_id: str):
        """查找引用指定 blob 的消息（活跃日志优先，其次回收站）"""
        owner = self.message_log.find_by_blob(blob_id)
        if owner is None:
            owner = self.retention_store.find_by_blob(blob_id)
        return owner

    def find_by_idempotency_key(self, key: str):
        """查找携带幂等键的消息（活跃日志优先，其次回收站）"""
        existing = self.message_log.find_by_idempotency_key(key)
        if existing is None:
            existing = self.retention_store.find_by_idempotency_key(key)
        return existing

    async def refresh(self) -> bool:
        """其他进程修改了磁盘文件时重新加载读取快照

        命令行清理与运行中的网关共享数据目录；读取前调用，
        避免继续展示已清除的消息或解析到已删除的 blob。

        Returns:
            是否有任一存储被重新加载
        """
        changed = await self.message_log.refresh()
        return await self.retention_store.refresh() or changed

    async def refresh_locked(self) -> bool:
        """同 refresh，调用方已持有 write_lock"""
        changed = await self.message_log.refresh_locked()
        return await self.retention_store.refresh_locked() or changed

    async def reconcile(self) -> int:
        """启动对账：同时出现在活跃日志和回收站中的消息以回收站为准

        Returns:
            从活跃日志中移除的消息数
        """
        async with self.write_lock:
            duplicated = self.retention_store.binned_ids() & {
                m.id for m in self.message_log.list_all()
            }
            if not duplicated:
                return 0
            removed = await self.message_log.remove_many(duplicated)
        await log.awarning("store_reconciled", removed=len(removed))
        return len(removed)


async def create_store_group(
    messages_path: str | Path,
    retention_path: str | Path,
    blobs_dir: str | Path,
    clock: Callable[[], datetime] = utc_now,
) -> StoreGroup:
    """创建 Store 实例组并从磁盘加载

    Args:
        messages_path: 消息日志 JSONL 路径
        retention_path: 保留记录 JSONL 路径
        blobs_dir: blob 存储目录
        clock: 时钟（测试可注入）

    Returns:
        StoreGroup 实例
    """
    blobs_path = Path(blobs_dir)
    blobs_path.mkdir(parents=True, exist_ok=True)

    # 确保日志目录存在
    messages_file = Path(messages_path)
    retention_file = Path(retention_path)
    messages_file.parent.mkdir(parents=True, exist_ok=True)
    retention_file.parent.mkdir(parents=True, exist_ok=True)

    group = StoreGroup(messages_file, retention_file, blobs_path, clock=clock)
    await group.message_log.load()
    await group.retention_store.load()
    await group.reconcile()
    return group


__all__ = [
    "StoreGroup",
    "create_store_group",
    "JsonlMessageLog",
    "JsonlRetentionStore",
    "FileBlobStore",
    "append_file_message",
    "move_to_recycle_bin",
    "purge_records",
    "restore_record",
]
