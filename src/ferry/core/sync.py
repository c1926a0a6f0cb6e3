"""增量同步服务 -- "给我 T 之后的所有消息"

服务端对每个请求无状态，不维护订阅。
游标是在读取日志快照之后取得的时间点：用返回的游标再次轮询，
既不会重复返回已见过的消息，也不会漏掉响应构建前已提交的消息。
"""

from datetime import datetime

import structlog

from .exceptions import PayloadValidationError
from .models.message import StoredMessage, ensure_utc
from .models.sync import PollResult
from .store.protocols import MessageLog

log = structlog.get_logger()


def parse_cursor(value: str | None) -> datetime:
    """解析客户端游标（ISO-8601，支持 Z 后缀；无时区视为 UTC）

    Raises:
        PayloadValidationError: 缺失或格式非法
    """
    if value is None or not value.strip():
        raise PayloadValidationError("Query parameter 'since' is required")
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise PayloadValidationError(
            f"Invalid 'since' cursor {value!r}: expected an ISO-8601 timestamp"
        ) from e
    return ensure_utc(parsed)


class SyncService:
    """增量同步服务"""

    def __init__(self, message_log: MessageLog) -> None:
        self._log = message_log

    def history(self) -> list[StoredMessage]:
        """全量历史（客户端首次加载）"""
        return self._log.list_all()

    def poll(self, since: datetime) -> PollResult:
        """since 之后的新消息 + 下一次使用的游标"""
        messages, cursor = self._log.list_since(since)
        if messages:
            log.debug(
                "poll_served",
                since=since.isoformat(),
                count=len(messages),
                cursor=cursor.isoformat(),
            )
        return PollResult(messages=messages, timestamp=cursor)
