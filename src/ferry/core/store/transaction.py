"""跨存储的原子操作封装

- 文件消息：blob 与消息条目对调用方原子可见（失败时回收已写入的 blob）
- 保留流转：回收站记录与活跃日志的移动，先写目标再删源，崩溃后由启动对账修复

保留流转函数要求调用方已持有 StoreGroup.write_lock。
"""

from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from ..exceptions import FerryError, NotFoundError
from ..models.enums import RetentionState
from ..models.message import MessageDraft, StoredMessage
from ..models.retention import RetentionRecord

if TYPE_CHECKING:
    from . import StoreGroup

log = structlog.get_logger()


async def append_file_message(
    stores: "StoreGroup",
    content: bytes,
    draft: MessageDraft,
) -> tuple[StoredMessage, bool]:
    """写入 blob 并追加引用它的消息

    Args:
        stores: Store 实例组
        content: 文件内容
        draft: 消息草稿（content 字段会被替换为 blob id）

    Returns:
        (message, created) -- 幂等键命中时返回已有消息且不保留新 blob
    """
    if draft.idempotency_key:
        existing = stores.find_by_idempotency_key(draft.idempotency_key)
        if existing is not None:
            return existing, False

    blob_id = await stores.blob_store.put(content, draft.filename or "")
    draft = draft.model_copy(update={"content": blob_id, "file_size": len(content)})

    try:
        message, created = await stores.message_log.append_with_status(draft)
    except Exception:
        # 消息未落盘：blob 不可被任何消息引用，立即回收
        await _discard_blob(stores, blob_id)
        raise

    if not created:
        await _discard_blob(stores, blob_id)
    return message, created


async def move_to_recycle_bin(
    stores: "StoreGroup",
    entries: list[tuple[StoredMessage, datetime]],
) -> int:
    """Active -> RecycleBin：先写回收站记录，再从活跃日志移除

    Args:
        stores: Store 实例组
        entries: (消息, 进入回收站时间) 列表；已在回收站中的消息保留原进入时间

    Returns:
        移出活跃日志的消息数
    """
    if not entries:
        return 0
    records = []
    for message, binned_at in entries:
        previous = stores.retention_store.get(message.id)
        since = binned_at
        if previous is not None and previous.state == RetentionState.RECYCLE_BIN:
            since = previous.since
        records.append(
            RetentionRecord(
                message_id=message.id,
                state=RetentionState.RECYCLE_BIN,
                since=since,
                message=message,
            )
        )
    await stores.retention_store.put_many(records)
    removed = await stores.message_log.remove_many(m.id for m, _ in entries)
    return len(removed)


async def purge_records(stores: "StoreGroup", message_ids: list[str]) -> list[str]:
    """RecycleBin -> Purged：删除回收站记录

    不在回收站中的 id 忽略（重复清除为 no-op）。blob 由调用方在记录删除后清理。

    Returns:
        被清除记录所引用的 blob id 列表
    """
    binned = stores.retention_store.binned_ids()
    targets = [mid for mid in message_ids if mid in binned]
    if not targets:
        return []
    removed = await stores.retention_store.remove_many(targets)
    return [r.blob_id for r in removed if r.blob_id]


async def restore_record(
    stores: "StoreGroup",
    message_id: str,
    restored_at: datetime,
) -> StoredMessage:
    """RecycleBin -> Active：插回活跃日志，并以恢复时间开始新的活跃窗口

    Raises:
        NotFoundError: 消息不在回收站中
    """
    record = stores.retention_store.get(message_id)
    if record is None or record.state != RetentionState.RECYCLE_BIN or record.message is None:
        raise NotFoundError("Recycle bin entry", message_id)

    await stores.message_log.restore_many([record.message])
    await stores.retention_store.put_many(
        [
            RetentionRecord(
                message_id=message_id,
                state=RetentionState.ACTIVE,
                since=restored_at,
            )
        ]
    )
    return record.message


async def _discard_blob(stores: "StoreGroup", blob_id: str) -> None:
    try:
        await stores.blob_store.delete(blob_id)
    except FerryError as e:
        # 留给保留清理的孤儿回收处理
        await log.awarning("blob_discard_failed", blob_id=blob_id, error=str(e))
