"""PollBackoff -- 自适应轮询间隔的显式状态

- 收到新数据：间隔重置为初始值
- 空闲（无新数据）：间隔 x1.5
- 出错：间隔 x2
- 间隔上限 30s；suspend() 暂停，resume() 重置间隔并立即轮询
"""

INITIAL_INTERVAL_S = 3.0
MAX_INTERVAL_S = 30.0
IDLE_MULTIPLIER = 1.5
ERROR_MULTIPLIER = 2.0


class PollBackoff:
    """轮询间隔状态机"""

    def __init__(
        self,
        initial_s: float = INITIAL_INTERVAL_S,
        max_s: float = MAX_INTERVAL_S,
        idle_multiplier: float = IDLE_MULTIPLIER,
        error_multiplier: float = ERROR_MULTIPLIER,
        last_timestamp: str | None = None,
    ) -> None:
        if initial_s <= 0 or max_s < initial_s:
            raise ValueError("require 0 < initial_s <= max_s")
        self.initial_s = initial_s
        self.max_s = max_s
        self.idle_multiplier = idle_multiplier
        self.error_multiplier = error_multiplier

        self.interval = initial_s
        self.last_timestamp = last_timestamp
        self.active = True

    def on_data(self, timestamp: str) -> float:
        """本次轮询返回了消息"""
        self.last_timestamp = timestamp
        self.interval = self.initial_s
        return self.interval

    def on_idle(self, timestamp: str) -> float:
        """本次轮询没有消息，游标仍然前移"""
        self.last_timestamp = timestamp
        return self._grow(self.idle_multiplier)

    def on_error(self) -> float:
        """本次轮询失败，游标不变"""
        return self._grow(self.error_multiplier)

    def suspend(self) -> None:
        self.active = False

    def resume(self) -> None:
        self.active = True
        self.interval = self.initial_s

    def _grow(self, multiplier: float) -> float:
        self.interval = min(self.interval * multiplier, self.max_s)
        return self.interval

    def __repr__(self) -> str:
        return (
            f"PollBackoff(interval={self.interval}, active={self.active}, "
            f"last_timestamp={self.last_timestamp!r})"
        )
