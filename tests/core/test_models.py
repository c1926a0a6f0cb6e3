"""Domain Model 单元测试

测试内容：
1. 枚举值与保留状态机流转
2. StoredMessage 线上表示（fileSize / mimeType 别名、UTC 时间戳）
3. 保留状态推导（活跃窗口、回收站窗口、恢复保留）
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from ferry.core.models import (
    FILE_BACKED_TYPES,
    MessageType,
    RetentionPolicy,
    RetentionRecord,
    RetentionState,
    StoredMessage,
    derive_state,
    format_timestamp,
    scheduled_bin_entry,
    validate_transition,
)
from pydantic import ValidationError

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _message(ts: datetime = T0, **overrides) -> StoredMessage:
    fields = {
        "id": "01JFERRY0000000000000000AA",
        "content": "hello",
        "sender": "laptop",
        "timestamp": ts,
        "type": MessageType.TEXT,
    }
    fields.update(overrides)
    return StoredMessage(**fields)


class TestEnums:
    def test_message_type_values(self):
        assert MessageType.TEXT == "text"
        assert MessageType.IMAGE == "image"
        assert MessageType.FILE == "file"

    def test_file_backed_types(self):
        assert FILE_BACKED_TYPES == {MessageType.IMAGE, MessageType.FILE}


class TestStateMachine:
    """保留状态机流转"""

    @pytest.mark.parametrize(
        ("from_state", "to_state"),
        [
            (RetentionState.ACTIVE, RetentionState.RECYCLE_BIN),
            (RetentionState.RECYCLE_BIN, RetentionState.PURGED),
            (RetentionState.RECYCLE_BIN, RetentionState.ACTIVE),
        ],
    )
    def test_valid_transitions(self, from_state, to_state):
        assert validate_transition(from_state, to_state) is True

    def test_active_cannot_skip_recycle_bin(self):
        assert validate_transition(RetentionState.ACTIVE, RetentionState.PURGED) is False

    def test_purged_is_terminal(self):
        for target in RetentionState:
            assert validate_transition(RetentionState.PURGED, target) is False


class TestStoredMessage:
    def test_wire_format_uses_client_field_names(self):
        msg = _message(
            type=MessageType.FILE,
            content="01JBLOB00000000000000000AA",
            filename="a.txt",
            file_size=10,
            mime_type="text/plain",
            idempotency_key="k1",
        )
        wire = msg.to_wire()
        assert wire["fileSize"] == 10
        assert wire["mimeType"] == "text/plain"
        assert wire["type"] == "file"
        assert "idempotencyKey" not in wire
        assert "idempotency_key" not in wire
        assert wire["timestamp"].endswith("Z")

    def test_naive_timestamp_treated_as_utc(self):
        msg = _message(ts=datetime(2026, 1, 1, 12, 0))
        assert msg.timestamp == T0

    def test_offset_timestamp_normalized_to_utc(self):
        shifted = datetime(2026, 1, 1, 20, 0, tzinfo=timezone(timedelta(hours=8)))
        assert _message(ts=shifted).timestamp == T0

    def test_line_omits_absent_fields(self):
        line = _message().to_line()
        assert "fileSize" not in line
        restored = StoredMessage.model_validate_json(line)
        assert restored == _message()

    def test_blob_id_only_for_file_backed(self):
        assert _message().blob_id is None
        image = _message(type=MessageType.IMAGE, content="01JBLOB00000000000000000AA")
        assert image.blob_id == "01JBLOB00000000000000000AA"

    def test_message_is_immutable(self):
        msg = _message()
        with pytest.raises(ValidationError):
            msg.content = "changed"

    def test_format_timestamp(self):
        assert format_timestamp(T0) == "2026-01-01T12:00:00Z"


class TestRetentionDerivation:
    """由时间与保留记录推导状态"""

    policy = RetentionPolicy()

    def test_recent_message_is_active(self):
        now = T0 + timedelta(days=29)
        assert derive_state(_message(), None, now, self.policy) == RetentionState.ACTIVE

    def test_active_window_boundary_is_inclusive(self):
        now = T0 + timedelta(days=30)
        assert derive_state(_message(), None, now, self.policy) == RetentionState.RECYCLE_BIN

    def test_binned_record_purged_after_window(self):
        record = RetentionRecord(
            message_id="01JFERRY0000000000000000AA",
            state=RetentionState.RECYCLE_BIN,
            since=T0 + timedelta(days=30),
            message=_message(),
        )
        assert (
            derive_state(_message(), record, T0 + timedelta(days=59), self.policy)
            == RetentionState.RECYCLE_BIN
        )
        assert (
            derive_state(_message(), record, T0 + timedelta(days=60), self.policy)
            == RetentionState.PURGED
        )

    def test_restore_hold_restarts_active_window(self):
        hold = RetentionRecord(
            message_id="01JFERRY0000000000000000AA",
            state=RetentionState.ACTIVE,
            since=T0 + timedelta(days=40),
        )
        now = T0 + timedelta(days=45)
        assert derive_state(_message(), hold, now, self.policy) == RetentionState.ACTIVE

    def test_scheduled_bin_entry_is_end_of_active_window(self):
        now = T0 + timedelta(days=61)
        assert scheduled_bin_entry(_message(), None, now, self.policy) == T0 + timedelta(days=30)

    def test_scheduled_bin_entry_never_in_future(self):
        now = T0 + timedelta(days=10)
        assert scheduled_bin_entry(_message(), None, now, self.policy) == now

    def test_bin_entry_exposes_purge_time(self):
        record = RetentionRecord(
            message_id="01JFERRY0000000000000000AA",
            state=RetentionState.RECYCLE_BIN,
            since=T0,
            message=_message(),
        )
        entry = record.to_bin_entry(self.policy)
        assert entry["binnedAt"] == "2026-01-01T12:00:00Z"
        assert entry["purgeAt"] == "2026-01-31T12:00:00Z"
        assert entry["message"]["id"] == "01JFERRY0000000000000000AA"

    def test_policy_rejects_zero_days(self):
        with pytest.raises(ValidationError):
            RetentionPolicy(active_days=0)
