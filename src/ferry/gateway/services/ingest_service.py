"""IngestService -- 文本消息与文件上传的校验和写入

1. 校验 sender / content / 大小上限
2. 文本消息直接追加到日志
3. 上传文件先写 blob，再追加引用它的 image/file 消息
"""

import mimetypes
from pathlib import PureWindowsPath

import structlog
from fastapi import UploadFile
from ferry.core.config import (
    DEFAULT_UPLOAD_FILENAME,
    MAX_SENDER_LENGTH,
    MAX_TEXT_BYTES,
    MAX_UPLOAD_BYTES,
)
from ferry.core.exceptions import PayloadTooLargeError, PayloadValidationError
from ferry.core.models import MessageDraft, MessageType, StoredMessage
from ferry.core.store import StoreGroup
from ferry.core.store.transaction import append_file_message

log = structlog.get_logger()

# 分块读取上传内容，超过上限立即中止
_READ_CHUNK_BYTES = 1024 * 1024

# 文件名最大长度（多数文件系统的单个路径分量上限）
_MAX_FILENAME_LENGTH = 255

_FALLBACK_MIME = "application/octet-stream"


def clean_sender(sender: str | None) -> str:
    """去除首尾空白并校验 sender

    Raises:
        PayloadValidationError: 缺失、为空或超长
    """
    value = (sender or "").strip()
    if not value:
        raise PayloadValidationError("Field 'sender' is required")
    if len(value) > MAX_SENDER_LENGTH:
        raise PayloadValidationError(
            f"Field 'sender' must be at most {MAX_SENDER_LENGTH} characters"
        )
    return value


def sanitize_filename(filename: str | None) -> str:
    """只保留文件名的最后一个路径分量（同时处理 / 与 \\ 分隔符）"""
    if not filename:
        return DEFAULT_UPLOAD_FILENAME
    name = PureWindowsPath(filename).name.strip().replace("\x00", "")
    if name in ("", ".", ".."):
        return DEFAULT_UPLOAD_FILENAME
    if len(name) > _MAX_FILENAME_LENGTH:
        stem, dot, suffix = name.rpartition(".")
        if dot and 0 < len(suffix) < 16:
            name = stem[: _MAX_FILENAME_LENGTH - len(suffix) - 1] + "." + suffix
        else:
            name = name[:_MAX_FILENAME_LENGTH]
    return name


def resolve_mime_type(content_type: str | None, filename: str) -> str:
    """优先使用客户端声明的 Content-Type，缺失或为通用二进制类型时按扩展名推断"""
    declared = (content_type or "").split(";", 1)[0].strip().lower()
    if declared and declared != _FALLBACK_MIME:
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or declared or _FALLBACK_MIME


def classify_upload(mime_type: str) -> MessageType:
    return MessageType.IMAGE if mime_type.startswith("image/") else MessageType.FILE


class IngestService:
    """消息写入业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        max_text_bytes: int | None = None,
        max_upload_bytes: int | None = None,
    ) -> None:
        self._stores = store_group
        self._max_text_bytes = max_text_bytes or MAX_TEXT_BYTES
        self._max_upload_bytes = max_upload_bytes or MAX_UPLOAD_BYTES

    async def post_text(
        self,
        content: str,
        sender: str,
        message_type: str = MessageType.TEXT.value,
        idempotency_key: str | None = None,
    ) -> tuple[StoredMessage, bool]:
        """追加文本消息

        Returns:
            (message, created) -- created=False 表示幂等键命中

        Raises:
            PayloadValidationError: 字段缺失/非法，或 type 不是 text
            PayloadTooLargeError: 文本超过大小上限
        """
        sender = clean_sender(sender)
        if message_type != MessageType.TEXT.value:
            raise PayloadValidationError(
                "Only 'text' messages can be posted as JSON; use /api/upload for files"
            )
        if not content or not content.strip():
            raise PayloadValidationError("Field 'content' must not be empty")
        size = len(content.encode("utf-8"))
        if size > self._max_text_bytes:
            raise PayloadTooLargeError(size, self._max_text_bytes)

        draft = MessageDraft(
            content=content,
            sender=sender,
            type=MessageType.TEXT,
            idempotency_key=_clean_key(idempotency_key),
        )
        if draft.idempotency_key:
            existing = self._stores.find_by_idempotency_key(draft.idempotency_key)
            if existing is not None:
                return existing, False
        return await self._stores.message_log.append_with_status(draft)

    async def upload(
        self,
        upload: UploadFile,
        sender: str,
        idempotency_key: str | None = None,
    ) -> tuple[StoredMessage, bool]:
        """存储上传文件并追加 image/file 消息

        Raises:
            PayloadValidationError: sender 非法
            PayloadTooLargeError: 文件超过大小上限
            StorageError: blob 或日志写入失败（此时不会留下可见的半成品）
        """
        sender = clean_sender(sender)
        filename = sanitize_filename(upload.filename)
        mime_type = resolve_mime_type(upload.content_type, filename)
        content = await self._read_bounded(upload)

        draft = MessageDraft(
            content="",
            sender=sender,
            type=classify_upload(mime_type),
            filename=filename,
            file_size=len(content),
            mime_type=mime_type,
            idempotency_key=_clean_key(idempotency_key),
        )
        message, created = await append_file_message(self._stores, content, draft)
        if created:
            await log.ainfo(
                "upload_stored",
                message_id=message.id,
                type=message.type.value,
                file_size=message.file_size,
                mime_type=message.mime_type,
            )
        return message, created

    async def _read_bounded(self, upload: UploadFile) -> bytes:
        limit = self._max_upload_bytes
        if upload.size is not None and upload.size > limit:
            raise PayloadTooLargeError(upload.size, limit)

        chunks: list[bytes] = []
        total = 0
        while chunk := await upload.read(_READ_CHUNK_BYTES):
            total += len(chunk)
            if total > limit:
                raise PayloadTooLargeError(total, limit)
            chunks.append(chunk)
        return b"".join(chunks)


def _clean_key(key: str | None) -> str | None:
    if key is None:
        return None
    key = key.strip()
    return key or None
