"""增量同步响应模型"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .message import StoredMessage, format_timestamp


class PollResult(BaseModel):
    """轮询结果：since 之后的新消息 + 下一次使用的游标"""

    messages: list[StoredMessage] = Field(default_factory=list)
    timestamp: datetime = Field(description="下一次轮询使用的游标")

    def to_wire(self) -> dict[str, Any]:
        return {
            "messages": [m.to_wire() for m in self.messages],
            "timestamp": format_timestamp(self.timestamp),
        }
