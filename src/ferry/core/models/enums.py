"""枚举定义

包含 MessageType、RetentionState 枚举，
以及保留状态机的 VALID_TRANSITIONS 合法流转映射。
"""

from enum import StrEnum


class MessageType(StrEnum):
    """消息类型"""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


# 由 blob 承载内容的消息类型
FILE_BACKED_TYPES: set[MessageType] = {MessageType.IMAGE, MessageType.FILE}


class RetentionState(StrEnum):
    """保留状态机：Active -> RecycleBin -> Purged"""

    ACTIVE = "active"
    RECYCLE_BIN = "recycle_bin"
    PURGED = "purged"


# 合法状态流转（RECYCLE_BIN -> ACTIVE 为显式恢复操作）
VALID_TRANSITIONS: dict[RetentionState, set[RetentionState]] = {
    RetentionState.ACTIVE: {RetentionState.RECYCLE_BIN},
    RetentionState.RECYCLE_BIN: {RetentionState.PURGED, RetentionState.ACTIVE},
    # 终态不可再流转
    RetentionState.PURGED: set(),
}


def validate_transition(from_state: RetentionState, to_state: RetentionState) -> bool:
    """验证保留状态流转是否合法

    Args:
        from_state: 当前状态
        to_state: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    return to_state in VALID_TRANSITIONS.get(from_state, set())
