"""重启持久化集成测试 -- 经由真实 lifespan 启停

测试内容：
1. 重启后消息列表一致，文件仍可下载
2. 启用保留清理时后台任务随 lifespan 启停
3. 重启后新消息时间戳晚于已有消息
4. 关闭时卡住的清理在超时后被取消，不阻塞退出
"""

import asyncio
import os
from datetime import datetime

from fastapi import FastAPI
from ferry.core.retention import RetentionManager
from httpx import ASGITransport, AsyncClient


def _new_app() -> FastAPI:
    from ferry.gateway.main import create_app

    return create_app()


async def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestRestartDurability:
    async def test_messages_and_files_survive_restart(self, ferry_env):
        app = _new_app()
        async with app.router.lifespan_context(app):
            async with await _client(app) as client:
                text = (
                    await client.post("/api/messages", json={"content": "durable", "sender": "pc"})
                ).json()
                upload = (
                    await client.post(
                        "/api/upload",
                        files={"file": ("a.txt", b"0123456789", "text/plain")},
                        data={"sender": "pc"},
                    )
                ).json()
                before = (await client.get("/api/messages")).json()

        assert (ferry_env / "messages.jsonl").is_file()

        restarted = _new_app()
        async with restarted.router.lifespan_context(restarted):
            async with await _client(restarted) as client:
                after = (await client.get("/api/messages")).json()
                assert after == before
                assert [m["id"] for m in after] == [text["id"], upload["id"]]

                resp = await client.get(f"/api/files/{upload['content']}")
                assert resp.content == b"0123456789"

                newer = (
                    await client.post("/api/messages", json={"content": "later", "sender": "pc"})
                ).json()
                assert datetime.fromisoformat(newer["timestamp"]) > datetime.fromisoformat(
                    upload["timestamp"]
                )

    async def test_retention_task_follows_lifespan(self, ferry_env):
        os.environ["FERRY_RETENTION_ENABLED"] = "true"
        app = _new_app()
        async with app.router.lifespan_context(app):
            task = app.state.retention_task
            assert task is not None
            async with await _client(app) as client:
                ready = (await client.get("/ready")).json()
                assert ready["checks"]["retention_task"] == "running"
        assert task.done()

    async def test_retention_disabled_starts_no_task(self, ferry_env):
        app = _new_app()
        async with app.router.lifespan_context(app):
            assert app.state.retention_task is None

    async def test_shutdown_cancels_stuck_sweep(self, ferry_env, monkeypatch):
        from ferry.gateway import main

        started = asyncio.Event()

        async def stuck_sweep(self, now=None):
            started.set()
            await asyncio.sleep(3600)

        monkeypatch.setattr(RetentionManager, "sweep", stuck_sweep)
        monkeypatch.setattr(main, "SHUTDOWN_TIMEOUT_S", 0.05)
        os.environ["FERRY_RETENTION_ENABLED"] = "true"

        app = _new_app()
        async with asyncio.timeout(5):
            async with app.router.lifespan_context(app):
                task = app.state.retention_task
                await asyncio.wait_for(started.wait(), timeout=2)
        assert task.cancelled()
