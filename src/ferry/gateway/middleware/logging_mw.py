"""LoggingMiddleware

为每个 HTTP 请求生成 request_id，绑定到 structlog contextvars，并记录耗时。
调用方自报的设备名（X-Device-Name 头或 ?device= 参数）一并绑定；
设备名是请求级的不透明字符串，仅用于日志，不作为身份或授权依据。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

# 日志中保留的设备名最大长度
_MAX_DEVICE_LABEL = 64


def device_label(request: Request) -> str | None:
    """提取请求携带的设备名（截断，去除首尾空白）"""
    raw = request.headers.get("x-device-name") or request.query_params.get("device")
    if not raw:
        return None
    label = raw.strip()[:_MAX_DEVICE_LABEL]
    return label or None


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件 -- request_id + 设备名 + 耗时"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        start_time = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        label = device_label(request)
        if label:
            structlog.contextvars.bind_contextvars(device=label)

        log = structlog.get_logger()
        response = await call_next(request)

        await log.ainfo(
            "request_completed",
            status_code=response.status_code,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

        response.headers["X-Request-ID"] = request_id
        return response
