"""保留记录 Domain Model

保留状态不是 Message 上的可变字段，而是由 timestamp 加上保留记录
（进入回收站时间 / 恢复时间）推导出来的派生状态。
"""

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import RetentionState
from .message import StoredMessage, ensure_utc, format_timestamp


class RetentionPolicy(BaseModel):
    """保留策略：活跃窗口 + 回收站窗口"""

    active_days: int = Field(default=30, ge=1, description="活跃窗口（天）")
    recycle_bin_days: int = Field(default=30, ge=1, description="回收站窗口（天）")

    @property
    def active_window(self) -> timedelta:
        return timedelta(days=self.active_days)

    @property
    def recycle_bin_window(self) -> timedelta:
        return timedelta(days=self.recycle_bin_days)


class RetentionRecord(BaseModel):
    """单条消息的保留记录

    - state=recycle_bin: since 为进入回收站时间，message 保存完整消息
    - state=active: 恢复保留，since 为恢复时间，消息本体仍在日志中
    """

    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(alias="messageId")
    state: RetentionState
    since: datetime
    message: StoredMessage | None = None

    @field_validator("since")
    @classmethod
    def _normalize_since(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def blob_id(self) -> str | None:
        return self.message.blob_id if self.message is not None else None

    def to_line(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_bin_entry(self, policy: RetentionPolicy) -> dict[str, Any]:
        """回收站条目的 API 表示"""
        return {
            "message": self.message.to_wire() if self.message else None,
            "binnedAt": format_timestamp(self.since),
            "purgeAt": format_timestamp(self.since + policy.recycle_bin_window),
        }


def active_anchor(message: StoredMessage, hold: RetentionRecord | None) -> datetime:
    """活跃窗口起点：消息时间，恢复过的消息取恢复时间"""
    if hold is not None and hold.state == RetentionState.ACTIVE:
        return max(message.timestamp, hold.since)
    return message.timestamp


def scheduled_bin_entry(
    message: StoredMessage,
    hold: RetentionRecord | None,
    now: datetime,
    policy: RetentionPolicy,
) -> datetime:
    """应进入回收站的时间点

    取活跃窗口结束时刻（不晚于 now），与清理运行的时间点无关。
    """
    return min(now, active_anchor(message, hold) + policy.active_window)


def derive_state(
    message: StoredMessage,
    record: RetentionRecord | None,
    now: datetime,
    policy: RetentionPolicy,
) -> RetentionState:
    """根据时间推导消息当前应处的保留状态

    Args:
        message: 消息
        record: 该消息的保留记录（可为 None）
        now: 当前时间
        policy: 保留策略

    Returns:
        推导出的目标状态
    """
    if record is not None and record.state == RetentionState.RECYCLE_BIN:
        if now - record.since >= policy.recycle_bin_window:
            return RetentionState.PURGED
        return RetentionState.RECYCLE_BIN

    if now - active_anchor(message, record) >= policy.active_window:
        return RetentionState.RECYCLE_BIN
    return RetentionState.ACTIVE


class SweepReport(BaseModel):
    """一次保留清理的结果统计"""

    binned: int = 0
    purged: int = 0
    orphans_reclaimed: int = 0
    record_errors: int = 0
    blob_errors: int = 0
    duration_ms: int = 0
