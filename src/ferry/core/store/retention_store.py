"""RetentionStore JSONL 实现

保存每条消息的保留记录：回收站条目（含完整消息）与恢复保留。
记录量小，每次变更整体原子重写文件。写入方须持有 write_lock。
"""

import asyncio
from collections.abc import Iterable
from pathlib import Path

import structlog
from pydantic import ValidationError

from ..exceptions import StorageError
from ..models.enums import RetentionState
from ..models.message import StoredMessage
from ..models.retention import RetentionRecord
from .jsonl import Fingerprint, file_fingerprint, read_jsonl, write_jsonl_atomic

log = structlog.get_logger()


class JsonlRetentionStore:
    """RetentionStore 的 JSONL 文件实现"""

    def __init__(self, path: Path, write_lock: asyncio.Lock) -> None:
        self._path = path
        self._lock = write_lock
        self._records: dict[str, RetentionRecord] = {}
        self._by_blob: dict[str, RetentionRecord] = {}
        self._by_key: dict[str, StoredMessage] = {}
        self._fingerprint: Fingerprint = None

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> None:
        """从磁盘加载保留记录，同一 message_id 以最后一行为准"""
        rows, fingerprint = await asyncio.to_thread(read_jsonl, self._path)
        records: dict[str, RetentionRecord] = {}
        for row in rows:
            try:
                record = RetentionRecord.model_validate(row)
            except ValidationError as e:
                await log.awarning(
                    "retention_record_skipped",
                    path=str(self._path),
                    error=str(e),
                )
                continue
            if record.state == RetentionState.RECYCLE_BIN and record.message is None:
                await log.awarning(
                    "retention_record_skipped",
                    path=str(self._path),
                    message_id=record.message_id,
                    error="recycle bin record without message",
                )
                continue
            records[record.message_id] = record
        self._fingerprint = fingerprint
        self._publish(records)

    # ------------------------------------------------------------------
    # 读取（无锁快照）
    # ------------------------------------------------------------------

    def get(self, message_id: str) -> RetentionRecord | None:
        return self._records.get(message_id)

    def bin_entries(self) -> list[RetentionRecord]:
        """回收站条目，按原消息时间正序"""
        entries = [r for r in self._records.values() if r.state == RetentionState.RECYCLE_BIN]
        entries.sort(key=lambda r: r.message.timestamp if r.message else r.since)
        return entries

    def hold_for(self, message_id: str) -> RetentionRecord | None:
        """活跃消息的恢复保留记录"""
        record = self._records.get(message_id)
        if record is not None and record.state == RetentionState.ACTIVE:
            return record
        return None

    def find_by_blob(self, blob_id: str) -> StoredMessage | None:
        """查找引用指定 blob 的回收站消息"""
        record = self._by_blob.get(blob_id)
        return record.message if record is not None else None

    def find_by_idempotency_key(self, key: str) -> StoredMessage | None:
        """查找携带指定幂等键的回收站消息"""
        return self._by_key.get(key)

    def blob_ids(self) -> set[str]:
        return set(self._by_blob)

    def binned_ids(self) -> set[str]:
        return {
            message_id
            for message_id, record in self._records.items()
            if record.state == RetentionState.RECYCLE_BIN
        }

    # ------------------------------------------------------------------
    # 写入（调用方持有 write_lock）
    # ------------------------------------------------------------------

    async def put_many(self, records: Iterable[RetentionRecord]) -> None:
        """写入或覆盖保留记录"""
        self._require_lock()
        await self._sync_with_disk()
        updated = dict(self._records)
        for record in records:
            updated[record.message_id] = record
        await self._rewrite(updated)

    async def remove_many(self, message_ids: Iterable[str]) -> list[RetentionRecord]:
        """删除保留记录，不存在的 id 忽略

        Returns:
            实际被删除的记录
        """
        self._require_lock()
        await self._sync_with_disk()
        ids = set(message_ids)
        removed = [r for mid, r in self._records.items() if mid in ids]
        if not removed:
            return []
        await self._rewrite({mid: r for mid, r in self._records.items() if mid not in ids})
        return removed

    async def prune_holds(self, active_ids: set[str]) -> int:
        """清理已不在活跃日志中的恢复保留记录"""
        self._require_lock()
        stale = [
            mid
            for mid, r in self._records.items()
            if r.state == RetentionState.ACTIVE and mid not in active_ids
        ]
        if stale:
            await self.remove_many(stale)
        return len(stale)

    async def refresh(self) -> bool:
        """磁盘文件被其他进程修改时重新加载读取快照（变化时在 write_lock 内加载）"""
        if not await self._is_stale():
            return False
        async with self._lock:
            return await self.refresh_locked()

    async def refresh_locked(self) -> bool:
        """同 refresh，调用方已持有 write_lock"""
        if not await self._is_stale():
            return False
        await log.awarning("retention_store_reloaded", path=str(self._path))
        try:
            await self.load()
        except OSError as e:
            raise StorageError(f"Failed to reload retention records: {e}") from e
        return True

    async def _is_stale(self) -> bool:
        current = await asyncio.to_thread(file_fingerprint, self._path)
        return current != self._fingerprint

    async def _sync_with_disk(self) -> None:
        """文件被其他写入方修改时先重新加载，避免覆盖对方的记录"""
        await self.refresh_locked()

    async def _rewrite(self, records: dict[str, RetentionRecord]) -> None:
        try:
            fingerprint = await asyncio.to_thread(
                write_jsonl_atomic,
                self._path,
                [r.to_line() for r in records.values()],
            )
        except OSError as e:
            raise StorageError(f"Failed to write retention records: {e}") from e
        self._fingerprint = fingerprint
        self._publish(records)

    def _publish(self, records: dict[str, RetentionRecord]) -> None:
        self._records = records
        self._by_blob = {r.blob_id: r for r in records.values() if r.blob_id}
        self._by_key = {
            r.message.idempotency_key: r.message
            for r in records.values()
            if r.message is not None and r.message.idempotency_key
        }

    def _require_lock(self) -> None:
        if not self._lock.locked():
            raise RuntimeError("write_lock must be held to modify retention records")

    def __len__(self) -> int:
        return len(self._records)
