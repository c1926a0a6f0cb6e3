"""UploadLimitMiddleware

multipart 表单在进入路由前已被完整读取并暂存到临时文件。
声明的 Content-Length 明显超过上传上限时在读取请求体之前返回 413；
未声明长度（chunked）的请求仍由 IngestService 在读取时逐块限制。
"""

import structlog
from ferry.core import config
from ferry.core.exceptions import PayloadTooLargeError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..errors import error_response

# 受限的上传路径
UPLOAD_PATHS = frozenset({"/api/upload"})


def declared_length(request: Request) -> int | None:
    """请求头声明的请求体长度，缺失或非法时返回 None"""
    value = request.headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


class UploadLimitMiddleware(BaseHTTPMiddleware):
    """上传请求体大小预检中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "POST" and request.url.path in UPLOAD_PATHS:
            length = declared_length(request)
            limit = config.MAX_UPLOAD_BYTES + config.MULTIPART_OVERHEAD_BYTES
            if length is not None and length > limit:
                exc = PayloadTooLargeError(length, limit)
                await structlog.get_logger().ainfo(
                    "request_rejected",
                    error_code=exc.code,
                    error=exc.message,
                )
                return error_response(413, exc.code, exc.message)
        return await call_next(request)
