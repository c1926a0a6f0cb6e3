"""轮询 API 测试

测试内容：
1. since 之后的消息 + 游标
2. 在最新时间点轮询返回空列表，游标前移
3. 游标链式轮询不重复
4. since 缺失 / 非法返回 400
"""

from datetime import datetime

from httpx import AsyncClient

EARLY = "2000-01-01T00:00:00Z"


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


async def _send(client: AsyncClient, content: str) -> dict:
    resp = await client.post("/api/messages", json={"content": content, "sender": "phone"})
    assert resp.status_code == 201
    return resp.json()


class TestPoll:
    async def test_poll_returns_new_messages_and_cursor(self, client: AsyncClient):
        sent = await _send(client, "hello")
        resp = await client.get("/api/messages/poll", params={"since": EARLY})
        assert resp.status_code == 200
        data = resp.json()
        assert [m["id"] for m in data["messages"]] == [sent["id"]]
        assert _ts(data["timestamp"]) >= _ts(sent["timestamp"])

    async def test_poll_at_latest_returns_empty(self, client: AsyncClient, clock):
        sent = await _send(client, "latest")
        clock.advance(seconds=3)
        resp = await client.get("/api/messages/poll", params={"since": sent["timestamp"]})
        data = resp.json()
        assert data["messages"] == []
        assert _ts(data["timestamp"]) >= _ts(sent["timestamp"])

    async def test_cursor_chain_has_no_duplicates(self, client: AsyncClient):
        cursor = EARLY
        seen: list[str] = []
        for i in range(4):
            await _send(client, f"m{i}")
            data = (await client.get("/api/messages/poll", params={"since": cursor})).json()
            seen.extend(m["id"] for m in data["messages"])
            cursor = data["timestamp"]

        data = (await client.get("/api/messages/poll", params={"since": cursor})).json()
        assert data["messages"] == []
        all_ids = [m["id"] for m in (await client.get("/api/messages")).json()]
        assert seen == all_ids

    async def test_missing_since_rejected(self, client: AsyncClient):
        resp = await client.get("/api/messages/poll")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_invalid_since_rejected(self, client: AsyncClient):
        resp = await client.get("/api/messages/poll", params={"since": "yesterday"})
        assert resp.status_code == 400
