"""structlog 配置

FERRY_LOG_FORMAT=dev（默认）输出彩色可读日志，json 输出单行 JSON。
FERRY_LOG_FILE 设置后额外写入文件（始终为 JSON，便于事后检索）。
uvicorn 自带的访问日志被压低到 WARNING：请求日志由 LoggingMiddleware 统一输出。
"""

import logging
import os

import structlog
from fastapi import FastAPI

# 与 LoggingMiddleware 重复的第三方访问日志
_QUIET_LOGGERS = ("uvicorn.access",)


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def _handler(handler: logging.Handler, log_format: str) -> logging.Handler:
    pre_chain = _shared_processors()
    if log_format == "json":
        pre_chain.append(structlog.processors.format_exc_info)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def setup_logging() -> None:
    """初始化 structlog 与标准库 logging（可重复调用）"""
    log_format = os.environ.get("FERRY_LOG_FORMAT", "dev").lower()
    log_level = os.environ.get("FERRY_LOG_LEVEL", "INFO").upper()
    log_file = os.environ.get("FERRY_LOG_FILE")

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = [_handler(logging.StreamHandler(), log_format)]
    if log_file:
        handlers.append(_handler(logging.FileHandler(log_file, encoding="utf-8"), "json"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logfire(app: FastAPI) -> None:
    """可选接入 Logfire APM

    仅当 LOGFIRE_SEND_TO_LOGFIRE=true 时启用（需要 LOGFIRE_TOKEN 与 logfire 可选依赖）。
    初始化失败时保留本地日志，服务照常启动。
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return
    try:
        import logfire

        logfire.configure(service_name="ferry-gateway")
        logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning("logfire_init_failed", error=str(e))
