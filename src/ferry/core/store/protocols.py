"""Store Protocol 接口定义

定义 MessageLog、RetentionStore、BlobStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from ..models.message import MessageDraft, StoredMessage
from ..models.retention import RetentionRecord


class MessageLog(Protocol):
    """消息日志接口

    append-only：普通写入方只能追加，remove_many / restore_many 仅供保留管理使用。
    """

    async def append(self, draft: MessageDraft) -> StoredMessage:
        """追加消息，分配 id 和 timestamp"""
        ...

    async def append_with_status(self, draft: MessageDraft) -> tuple[StoredMessage, bool]:
        """追加消息，返回 (message, created)"""
        ...

    def list_all(self) -> list[StoredMessage]:
        """全部活跃消息，按时间正序"""
        ...

    def list_since(self, since: datetime) -> tuple[list[StoredMessage], datetime]:
        """since 之后的消息 + 下一次游标"""
        ...

    def get(self, message_id: str) -> StoredMessage | None:
        """根据 id 查询活跃消息"""
        ...

    def find_by_blob(self, blob_id: str) -> StoredMessage | None:
        """查找引用指定 blob 的活跃消息"""
        ...

    def find_by_idempotency_key(self, key: str) -> StoredMessage | None:
        """查找携带幂等键的活跃消息"""
        ...

    async def refresh(self) -> bool:
        """磁盘文件变化时重新加载读取快照"""
        ...

    async def remove_many(self, message_ids: Iterable[str]) -> list[StoredMessage]:
        """移除消息（保留管理专用）"""
        ...

    async def restore_many(self, messages: Iterable[StoredMessage]) -> list[StoredMessage]:
        """插回消息（保留管理专用）"""
        ...


class RetentionStore(Protocol):
    """保留记录存储接口"""

    def get(self, message_id: str) -> RetentionRecord | None:
        """查询保留记录"""
        ...

    def bin_entries(self) -> list[RetentionRecord]:
        """回收站条目"""
        ...

    def find_by_blob(self, blob_id: str) -> StoredMessage | None:
        """查找引用指定 blob 的回收站消息"""
        ...

    def find_by_idempotency_key(self, key: str) -> StoredMessage | None:
        """查找携带幂等键的回收站消息"""
        ...

    async def refresh(self) -> bool:
        """磁盘文件变化时重新加载读取快照"""
        ...

    async def put_many(self, records: Iterable[RetentionRecord]) -> None:
        """写入或覆盖保留记录"""
        ...

    async def remove_many(self, message_ids: Iterable[str]) -> list[RetentionRecord]:
        """删除保留记录"""
        ...


class BlobStore(Protocol):
    """Blob 存储接口"""

    async def put(self, content: bytes, original_filename: str = "") -> str:
        """存储内容，返回服务端生成的 blob id"""
        ...

    async def get(self, blob_id: str) -> bytes:
        """读取内容，不存在时抛出 NotFoundError"""
        ...

    async def delete(self, blob_id: str) -> bool:
        """删除内容，幂等"""
        ...

    async def list_ids(self) -> list[str]:
        """列出所有 blob id"""
        ...
