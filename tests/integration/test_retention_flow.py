"""保留生命周期端到端测试

上传 -> 轮询可见 -> 31 天进入回收站（文件仍可读）-> 61 天清除（文件 404）
"""

from datetime import datetime

from httpx import AsyncClient


class TestRetentionFlow:
    async def test_full_lifecycle(self, client: AsyncClient, clock, integration_app):
        manager = integration_app.state.retention_manager
        cursor = "2000-01-01T00:00:00Z"

        upload = (
            await client.post(
                "/api/upload",
                files={"file": ("a.txt", b"0123456789", "text/plain")},
                data={"sender": "laptop"},
            )
        ).json()
        polled = (await client.get("/api/messages/poll", params={"since": cursor})).json()
        assert [m["id"] for m in polled["messages"]] == [upload["id"]]
        cursor = polled["timestamp"]

        # 31 天：离开默认视图，回收站可见，文件仍可读
        clock.advance(days=31)
        report = await manager.sweep()
        assert report.binned == 1
        assert (await client.get("/api/messages")).json() == []
        polled = (await client.get("/api/messages/poll", params={"since": cursor})).json()
        assert polled["messages"] == []
        entries = (await client.get("/api/recycle-bin")).json()["entries"]
        assert [e["message"]["id"] for e in entries] == [upload["id"]]
        assert (await client.get(f"/api/files/{upload['content']}")).status_code == 200

        # 再过 30 天：清除，文件不可读
        clock.advance(days=30)
        report = await manager.sweep()
        assert report.purged == 1
        assert (await client.get("/api/recycle-bin")).json()["entries"] == []
        assert (await client.get(f"/api/files/{upload['content']}")).status_code == 404

        # 清除后再次清除为 no-op
        assert await manager.purge([upload["id"]]) == 0

    async def test_text_and_file_interleaved_history(self, client: AsyncClient):
        await client.post("/api/messages", json={"content": "see attached", "sender": "pc"})
        await client.post(
            "/api/upload",
            files={"file": ("pic.png", b"\x89PNG", "image/png")},
            data={"sender": "pc"},
        )
        await client.post("/api/messages", json={"content": "done", "sender": "phone"})

        history = (await client.get("/api/messages")).json()
        assert [m["type"] for m in history] == ["text", "image", "text"]
        stamps = [datetime.fromisoformat(m["timestamp"]) for m in history]
        assert stamps == sorted(stamps)
