"""FerryApi -- Gateway HTTP API 的 httpx 异步封装

所有方法返回服务端的 JSON 表示（dict），HTTP 错误以 httpx.HTTPStatusError 上抛。
"""

from typing import Any

import httpx


class FerryApi:
    """Gateway API 客户端

    Args:
        client: httpx.AsyncClient（base_url 指向 Gateway）
        device: 设备名，作为 sender 默认值并通过 X-Device-Name 头上报
    """

    def __init__(self, client: httpx.AsyncClient, device: str = "python-client") -> None:
        self._client = client
        self._device = device

    @property
    def device(self) -> str:
        return self._device

    async def list_messages(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/api/messages")

    async def poll(self, since: str) -> dict[str, Any]:
        """返回 {"messages": [...], "timestamp": "<下一次游标>"}"""
        return await self._request("GET", "/api/messages/poll", params={"since": since})

    async def send_text(
        self,
        content: str,
        sender: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "content": content,
            "sender": sender or self._device,
            "type": "text",
        }
        if idempotency_key:
            body["idempotency_key"] = idempotency_key
        return await self._request("POST", "/api/messages", json=body)

    async def upload(
        self,
        filename: str,
        content: bytes,
        mime_type: str | None = None,
        sender: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        file_part = (filename, content, mime_type) if mime_type else (filename, content)
        data = {"sender": sender or self._device}
        if idempotency_key:
            data["idempotency_key"] = idempotency_key
        return await self._request(
            "POST",
            "/api/upload",
            files={"file": file_part},
            data=data,
        )

    async def download(self, blob_id: str) -> bytes:
        response = await self._client.get(
            f"/api/files/{blob_id}",
            headers=self._headers(),
        )
        response.raise_for_status()
        return response.content

    async def recycle_bin(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/api/recycle-bin")
        return data["entries"]

    async def restore(self, message_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/api/recycle-bin/{message_id}/restore")

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response.json()

    def _headers(self) -> dict[str, str]:
        return {"X-Device-Name": self._device}
