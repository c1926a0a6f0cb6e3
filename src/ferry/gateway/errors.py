"""错误响应映射 -- FerryError -> HTTP 状态码 + {"error": {code, message}}"""

import structlog
from fastapi import FastAPI, Request
from ferry.core.exceptions import (
    ConcurrencyError,
    FerryError,
    NotFoundError,
    PayloadTooLargeError,
    PayloadValidationError,
    StorageError,
)
from starlette.responses import JSONResponse

log = structlog.get_logger()

# 按子类优先排列：PayloadTooLargeError 是 PayloadValidationError 的子类
_STATUS_BY_ERROR: list[tuple[type[FerryError], int]] = [
    (PayloadTooLargeError, 413),
    (PayloadValidationError, 400),
    (NotFoundError, 404),
    (ConcurrencyError, 500),
    (StorageError, 500),
]


def status_for(exc: FerryError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def ferry_error_handler(request: Request, exc: FerryError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        await log.aerror(
            "request_failed",
            error_code=exc.code,
            error=exc.message,
            recoverable=exc.recoverable,
        )
    else:
        await log.ainfo("request_rejected", error_code=exc.code, error=exc.message)
    return error_response(status_code, exc.code, exc.message)


def register_exception_handlers(app: FastAPI) -> None:
    """注册领域异常处理器（子类按 MRO 匹配到 FerryError）"""
    app.add_exception_handler(FerryError, ferry_error_handler)
