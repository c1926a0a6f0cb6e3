"""Message Domain Model

消息日志 append-only，消息创建后不可变。
id 使用 ULID 格式，timestamp 由服务端分配，是权威排序键。
线上 JSON 字段名沿用客户端约定（fileSize / mimeType）。
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import FILE_BACKED_TYPES, MessageType


def ensure_utc(value: datetime) -> datetime:
    """naive 时间视为 UTC，带时区的统一转换为 UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC 字符串，后缀为 Z（与 JSON 序列化一致）"""
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


class MessageDraft(BaseModel):
    """待追加的消息（id 未分配，timestamp 可选）"""

    content: str = Field(description="文本内容，或 image/file 消息的 blob id")
    sender: str = Field(description="设备标签，由客户端提供")
    type: MessageType = Field(default=MessageType.TEXT, description="消息类型")
    filename: str | None = Field(default=None, description="原始文件名")
    file_size: int | None = Field(default=None, ge=0, description="文件大小（字节）")
    mime_type: str | None = Field(default=None, description="MIME 类型")
    timestamp: datetime | None = Field(
        default=None,
        description="显式时间戳（仅导入场景使用，必须晚于日志头部）",
    )
    idempotency_key: str | None = Field(default=None, description="幂等键，可选")


class StoredMessage(BaseModel):
    """已持久化的消息 -- 日志中的规范形式"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(description="唯一标识，ULID 格式，时间有序")
    content: str = Field(description="文本内容，或 image/file 消息的 blob id")
    sender: str = Field(description="设备标签")
    timestamp: datetime = Field(description="服务端分配的创建时间")
    type: MessageType = Field(description="消息类型")
    filename: str | None = Field(default=None)
    file_size: int | None = Field(default=None, alias="fileSize")
    mime_type: str | None = Field(default=None, alias="mimeType")
    idempotency_key: str | None = Field(default=None, alias="idempotencyKey")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def is_file_backed(self) -> bool:
        return self.type in FILE_BACKED_TYPES

    @property
    def blob_id(self) -> str | None:
        """image/file 消息引用的 blob id，文本消息返回 None"""
        return self.content if self.is_file_backed else None

    def to_wire(self) -> dict[str, Any]:
        """转换为 API 响应 JSON（不暴露幂等键）"""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"idempotency_key"},
        )

    def to_line(self) -> str:
        """序列化为 JSONL 中的一行（不含换行符）"""
        return self.model_dump_json(by_alias=True, exclude_none=True)
