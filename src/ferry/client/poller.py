"""SyncPoller -- 基于游标的增量同步循环

首次加载全量历史，之后按 PollBackoff 的间隔调用 /api/messages/poll，
按 id 去重后把新消息交给回调。服务端不保存订阅状态，游标只保存在客户端。
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from .api import FerryApi
from .backoff import PollBackoff

log = structlog.get_logger()

# 空历史时的起始游标
EPOCH_CURSOR = "1970-01-01T00:00:00Z"

MessageCallback = Callable[[list[dict[str, Any]]], Awaitable[None] | None]


class SyncPoller:
    """增量同步客户端"""

    def __init__(
        self,
        api: FerryApi,
        on_messages: MessageCallback,
        backoff: PollBackoff | None = None,
    ) -> None:
        self._api = api
        self._on_messages = on_messages
        self._backoff = backoff or PollBackoff()
        self._seen_ids: set[str] = set()
        self._history_loaded = False
        self._stopped = False
        self._wake = asyncio.Event()

    @property
    def backoff(self) -> PollBackoff:
        return self._backoff

    @property
    def seen_count(self) -> int:
        return len(self._seen_ids)

    async def load_history(self) -> list[dict[str, Any]]:
        """加载全量历史，游标设为最后一条消息的时间"""
        messages = await self._api.list_messages()
        new = self._accept(messages)
        if messages:
            self._backoff.last_timestamp = messages[-1]["timestamp"]
        elif self._backoff.last_timestamp is None:
            self._backoff.last_timestamp = EPOCH_CURSOR
        self._history_loaded = True
        if new:
            await self._deliver(new)
        return new

    async def poll_once(self) -> list[dict[str, Any]]:
        """执行一次轮询，返回本次新增（去重后）的消息

        网络或 HTTP 错误不会上抛，只增大轮询间隔。
        """
        since = self._backoff.last_timestamp or EPOCH_CURSOR
        try:
            result = await self._api.poll(since)
            messages = result["messages"]
            cursor = result["timestamp"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            interval = self._backoff.on_error()
            await log.awarning(
                "poll_failed",
                error_type=type(e).__name__,
                error=str(e),
                next_interval_s=interval,
            )
            return []

        if messages:
            self._backoff.on_data(cursor)
        else:
            self._backoff.on_idle(cursor)

        new = self._accept(messages)
        if new:
            await self._deliver(new)
        return new

    async def run(self) -> None:
        """轮询循环，直到 stop() 被调用"""
        self._stopped = False
        if not self._history_loaded:
            try:
                await self.load_history()
            except (httpx.HTTPError, KeyError, ValueError) as e:
                self._backoff.on_error()
                await log.awarning("history_load_failed", error=str(e))

        while not self._stopped:
            # 先清除唤醒标记：轮询期间的 resume()/stop() 不会丢失
            self._wake.clear()
            if self._backoff.active:
                await self.poll_once()
            if self._stopped:
                break
            timeout = self._backoff.interval if self._backoff.active else None
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=timeout)
            except TimeoutError:
                pass

    def suspend(self) -> None:
        """暂停轮询（例如页面不可见）"""
        self._backoff.suspend()

    def resume(self) -> None:
        """恢复轮询：重置间隔并立即执行一次"""
        self._backoff.resume()
        self._wake.set()

    def stop(self) -> None:
        self._stopped = True
        self._wake.set()

    def _accept(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        new = []
        for message in messages:
            message_id = message.get("id")
            if message_id is None or message_id in self._seen_ids:
                continue
            self._seen_ids.add(message_id)
            new.append(message)
        return new

    async def _deliver(self, messages: list[dict[str, Any]]) -> None:
        result = self._on_messages(messages)
        if inspect.isawaitable(result):
            await result
