"""Ferry Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    FILE_BACKED_TYPES,
    VALID_TRANSITIONS,
    MessageType,
    RetentionState,
    validate_transition,
)
from .message import MessageDraft, StoredMessage, ensure_utc, format_timestamp
from .retention import (
    RetentionPolicy,
    RetentionRecord,
    SweepReport,
    active_anchor,
    derive_state,
    scheduled_bin_entry,
)
from .sync import PollResult

__all__ = [
    # 枚举
    "MessageType",
    "RetentionState",
    "FILE_BACKED_TYPES",
    # 状态机
    "VALID_TRANSITIONS",
    "validate_transition",
    # Message
    "MessageDraft",
    "StoredMessage",
    "ensure_utc",
    "format_timestamp",
    # Retention
    "RetentionPolicy",
    "RetentionRecord",
    "SweepReport",
    "derive_state",
    "active_anchor",
    "scheduled_bin_entry",
    # Sync
    "PollResult",
]
