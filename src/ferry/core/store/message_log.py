"""MessageLog JSONL 实现

消息日志 append-only：每条消息一行 JSON，最新的追加在文件末尾。
写入方通过 StoreGroup 共享的 write_lock 串行化；读取方使用不可变快照，无需加锁。
时间戳在追加顺序上严格递增，游标永远不会越过已分配但尚未可见的消息。
"""

import asyncio
from bisect import bisect_right
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import structlog
from pydantic import ValidationError
from ulid import ULID

from ..config import APPEND_MAX_RETRIES
from ..exceptions import ConcurrencyError, PayloadValidationError, StorageError
from ..models.message import MessageDraft, StoredMessage, ensure_utc
from .jsonl import Fingerprint, append_jsonl, file_fingerprint, read_jsonl, write_jsonl_atomic

log = structlog.get_logger()

# 时间戳最小步进（JSON 序列化精度为微秒）
_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


class JsonlMessageLog:
    """MessageLog 的 JSONL 文件实现"""

    def __init__(
        self,
        path: Path,
        write_lock: asyncio.Lock,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = APPEND_MAX_RETRIES,
    ) -> None:
        self._path = path
        self._lock = write_lock
        self._clock = clock
        self._max_retries = max(1, max_retries)

        # 读取快照（整体替换，不原地修改）
        self._messages: tuple[StoredMessage, ...] = ()
        self._by_id: dict[str, StoredMessage] = {}
        self._by_blob: dict[str, StoredMessage] = {}
        self._by_key: dict[str, StoredMessage] = {}

        # 已提交的最大时间戳 / 已发出的最大游标 / 正在写入的消息时间戳
        self._head: datetime | None = None
        self._floor: datetime | None = None
        self._inflight: datetime | None = None
        self._fingerprint: Fingerprint = None

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> None:
        """从磁盘加载日志（启动时调用）"""
        records, fingerprint = await asyncio.to_thread(read_jsonl, self._path)
        messages: list[StoredMessage] = []
        for record in records:
            try:
                messages.append(StoredMessage.model_validate(record))
            except ValidationError as e:
                await log.awarning(
                    "message_record_skipped",
                    path=str(self._path),
                    error=str(e),
                )

        ordered = all(
            a.timestamp <= b.timestamp for a, b in zip(messages, messages[1:], strict=False)
        )
        if not ordered:
            await log.awarning("message_log_out_of_order", path=str(self._path))
            messages.sort(key=lambda m: m.timestamp)

        self._fingerprint = fingerprint
        self._publish(tuple(self._dedup(messages)))
        await log.ainfo(
            "message_log_loaded",
            path=str(self._path),
            message_count=len(self._messages),
        )

    # ------------------------------------------------------------------
    # 读取（无锁快照）
    # ------------------------------------------------------------------

    def list_all(self) -> list[StoredMessage]:
        """全部活跃消息，按时间正序"""
        return list(self._messages)

    def list_since(self, since: datetime) -> tuple[list[StoredMessage], datetime]:
        """since 之后（严格大于）的消息 + 下一次使用的游标

        快照读取与游标分配之间没有 await，二者构成同一个一致性时间点。
        """
        snapshot = self._messages
        cursor = self._issue_cursor()
        start = bisect_right(snapshot, ensure_utc(since), key=lambda m: m.timestamp)
        return list(snapshot[start:]), cursor

    def get(self, message_id: str) -> StoredMessage | None:
        return self._by_id.get(message_id)

    def find_by_blob(self, blob_id: str) -> StoredMessage | None:
        """查找引用指定 blob 的消息"""
        return self._by_blob.get(blob_id)

    def find_by_idempotency_key(self, key: str) -> StoredMessage | None:
        return self._by_key.get(key)

    def blob_ids(self) -> set[str]:
        return set(self._by_blob)

    def __len__(self) -> int:
        return len(self._messages)

    async def refresh(self) -> bool:
        """磁盘文件被其他进程修改（如命令行清理）时重新加载读取快照

        文件未变化时不加锁；变化时在 write_lock 内重新加载。

        Returns:
            是否重新加载
        """
        if not await self._is_stale():
            return False
        async with self._lock:
            return await self.refresh_locked()

    async def refresh_locked(self) -> bool:
        """同 refresh，调用方已持有 write_lock"""
        if not await self._is_stale():
            return False
        await log.ainfo("message_log_reloaded", path=str(self._path))
        await self._reload_locked()
        return True

    # ------------------------------------------------------------------
    # 写入（持有 write_lock）
    # ------------------------------------------------------------------

    async def append(self, draft: MessageDraft) -> StoredMessage:
        """追加消息，分配 id 和 timestamp，返回规范存储形式"""
        message, _ = await self.append_with_status(draft)
        return message

    async def append_with_status(self, draft: MessageDraft) -> tuple[StoredMessage, bool]:
        """追加消息

        Returns:
            (message, created) -- created=False 表示幂等键命中，返回已有消息

        Raises:
            PayloadValidationError: 显式 timestamp 不晚于日志头部
            StorageError: 无法持久化写入（整条追加失败）
        """
        async with self._lock:
            return await self._with_retries(self._append_locked, draft)

    async def remove_many(self, message_ids: Iterable[str]) -> list[StoredMessage]:
        """从活跃日志中移除消息（原子重写整个文件）

        仅供保留管理使用，调用方须持有 write_lock。

        Returns:
            实际被移除的消息
        """
        self._require_lock()
        ids = set(message_ids)
        return await self._with_retries(self._remove_locked, ids)

    async def restore_many(self, messages: Iterable[StoredMessage]) -> list[StoredMessage]:
        """将消息按 timestamp 插回活跃日志（原子重写整个文件）

        仅供保留管理使用，调用方须持有 write_lock。

        Returns:
            实际被插回的消息（已存在的 id 会被忽略）
        """
        self._require_lock()
        return await self._with_retries(self._restore_locked, list(messages))

    # ------------------------------------------------------------------
    # 内部实现
    # ------------------------------------------------------------------

    async def _with_retries(self, op, *args):
        """乐观并发：文件被其他写入方修改时重新加载后重试"""
        for attempt in range(1, self._max_retries + 1):
            try:
                return await op(*args)
            except ConcurrencyError as e:
                await log.awarning(
                    "message_log_conflict",
                    attempt=attempt,
                    max_retries=self._max_retries,
                    error=str(e),
                )
                await self._reload_locked()
        raise StorageError(
            f"Message log write failed after {self._max_retries} conflicting attempts"
        )

    async def _is_stale(self) -> bool:
        current = await asyncio.to_thread(file_fingerprint, self._path)
        return current != self._fingerprint

    async def _check_fingerprint(self) -> None:
        if await self._is_stale():
            raise ConcurrencyError(f"{self._path} was modified by another writer")

    async def _reload_locked(self) -> None:
        try:
            await self.load()
        except OSError as e:
            raise StorageError(f"Failed to reload message log: {e}") from e

    async def _append_locked(self, draft: MessageDraft) -> tuple[StoredMessage, bool]:
        if draft.idempotency_key:
            existing = self._by_key.get(draft.idempotency_key)
            if existing is not None:
                return existing, False

        await self._check_fingerprint()

        ts = self._assign_timestamp(draft.timestamp)
        message = StoredMessage(
            id=self._new_id(ts),
            content=draft.content,
            sender=draft.sender,
            timestamp=ts,
            type=draft.type,
            filename=draft.filename,
            file_size=draft.file_size,
            mime_type=draft.mime_type,
            idempotency_key=draft.idempotency_key,
        )

        self._inflight = ts
        try:
            fingerprint = await asyncio.to_thread(
                append_jsonl, self._path, [message.to_line()]
            )
        except OSError as e:
            raise StorageError(f"Failed to append message: {e}") from e
        finally:
            self._inflight = None

        # 持久化成功后才对读取方可见
        self._fingerprint = fingerprint
        self._publish(self._messages + (message,))
        await log.ainfo(
            "message_appended",
            message_id=message.id,
            type=message.type.value,
            sender=message.sender,
        )
        return message, True

    async def _remove_locked(self, ids: set[str]) -> list[StoredMessage]:
        await self._check_fingerprint()
        removed = [m for m in self._messages if m.id in ids]
        if not removed:
            return []
        kept = tuple(m for m in self._messages if m.id not in ids)
        await self._rewrite(kept)
        return removed

    async def _restore_locked(self, messages: list[StoredMessage]) -> list[StoredMessage]:
        await self._check_fingerprint()
        restored = [m for m in messages if m.id not in self._by_id]
        if not restored:
            return []
        merged = sorted(self._messages + tuple(restored), key=lambda m: m.timestamp)
        await self._rewrite(tuple(merged))
        return restored

    async def _rewrite(self, messages: tuple[StoredMessage, ...]) -> None:
        try:
            fingerprint = await asyncio.to_thread(
                write_jsonl_atomic,
                self._path,
                [m.to_line() for m in messages],
            )
        except OSError as e:
            raise StorageError(f"Failed to rewrite message log: {e}") from e
        self._fingerprint = fingerprint
        self._publish(messages)

    def _assign_timestamp(self, requested: datetime | None) -> datetime:
        """分配时间戳：严格晚于已提交消息和已发出的游标"""
        high_water = self._high_water()
        if requested is not None:
            requested = ensure_utc(requested)
            if high_water is not None and requested <= high_water:
                raise PayloadValidationError(
                    "Explicit timestamp must be later than the head of the message log"
                )
            return requested

        now = self._clock()
        if high_water is not None and now <= high_water:
            now = high_water + _TICK
        return now

    def _issue_cursor(self) -> datetime:
        """分配游标并记录为下限，之后分配的时间戳都严格大于它"""
        if self._inflight is not None:
            cursor = self._inflight - _TICK
        else:
            cursor = self._clock()
            high_water = self._high_water()
            if high_water is not None and cursor < high_water:
                cursor = high_water
        if self._floor is None or cursor > self._floor:
            self._floor = cursor
        return cursor

    def _high_water(self) -> datetime | None:
        candidates = [t for t in (self._head, self._floor) if t is not None]
        return max(candidates) if candidates else None

    def _new_id(self, ts: datetime) -> str:
        while True:
            message_id = str(ULID.from_datetime(ts))
            if message_id not in self._by_id:
                return message_id

    def _publish(self, messages: tuple[StoredMessage, ...]) -> None:
        """整体替换读取快照与索引"""
        self._messages = messages
        self._by_id = {m.id: m for m in messages}
        self._by_blob = {m.blob_id: m for m in messages if m.blob_id}
        self._by_key = {m.idempotency_key: m for m in messages if m.idempotency_key}
        if messages:
            last = messages[-1].timestamp
            if self._head is None or last > self._head:
                self._head = last

    def _require_lock(self) -> None:
        if not self._lock.locked():
            raise RuntimeError("write_lock must be held for retention rewrites")

    @staticmethod
    def _dedup(messages: list[StoredMessage]) -> list[StoredMessage]:
        seen: set[str] = set()
        unique = []
        for m in messages:
            if m.id in seen:
                continue
            seen.add(m.id)
            unique.append(m)
        return unique
