"""跨域访问测试

测试内容：
1. 默认允许任意来源，错误响应同样带 CORS 头
2. 预检请求放行自定义头（X-Device-Name）
3. X-Request-ID 对浏览器脚本可见
4. FERRY_CORS_ORIGINS 限定来源；设为空字符串关闭 CORS
"""

from ferry.core.retention import RetentionManager
from ferry.core.sync import SyncService
from httpx import ASGITransport, AsyncClient

ORIGIN = "http://localhost:5173"


def _app_with_origins(monkeypatch, store_group, clock, origins: str):
    monkeypatch.setenv("FERRY_CORS_ORIGINS", origins)
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    from ferry.gateway.main import create_app

    app = create_app()
    app.state.store_group = store_group
    app.state.sync_service = SyncService(store_group.message_log)
    app.state.retention_manager = RetentionManager(store_group, clock=clock)
    app.state.retention_task = None
    return app


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestDefaultCors:
    async def test_api_allows_any_origin(self, client: AsyncClient):
        resp = await client.get("/api/messages", headers={"Origin": ORIGIN})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    async def test_error_response_allows_any_origin(self, client: AsyncClient):
        resp = await client.get("/api/messages/poll", headers={"Origin": ORIGIN})
        assert resp.status_code == 400
        assert resp.headers["access-control-allow-origin"] == "*"

    async def test_preflight_allows_device_header(self, client: AsyncClient):
        resp = await client.options(
            "/api/messages",
            headers={
                "Origin": ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type,x-device-name",
            },
        )
        assert resp.status_code == 200
        assert "POST" in resp.headers["access-control-allow-methods"]
        assert "x-device-name" in resp.headers["access-control-allow-headers"].lower()

    async def test_request_id_exposed(self, client: AsyncClient):
        resp = await client.get("/health", headers={"Origin": ORIGIN})
        assert "x-request-id" in resp.headers["access-control-expose-headers"].lower()


class TestConfiguredCors:
    async def test_only_listed_origins_allowed(self, monkeypatch, store_group, clock):
        app = _app_with_origins(
            monkeypatch, store_group, clock, "https://phone.example, https://pc.example"
        )
        async with _client(app) as client:
            allowed = await client.get("/api/messages", headers={"Origin": "https://pc.example"})
            other = await client.get("/api/messages", headers={"Origin": "https://evil.example"})
        assert allowed.headers["access-control-allow-origin"] == "https://pc.example"
        assert "access-control-allow-origin" not in other.headers

    async def test_empty_setting_disables_cors(self, monkeypatch, store_group, clock):
        app = _app_with_origins(monkeypatch, store_group, clock, "")
        async with _client(app) as client:
            resp = await client.get("/api/messages", headers={"Origin": ORIGIN})
        assert resp.status_code == 200
        assert "access-control-allow-origin" not in resp.headers
