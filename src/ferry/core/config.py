"""配置常量模块 -- 可通过环境变量覆盖

包含数据目录、消息日志路径、blob 目录、上传大小限制、保留策略等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取 data 基础目录"""
    return Path(os.environ.get("FERRY_DATA_DIR", "data"))


def get_messages_path() -> Path:
    """获取消息日志（JSONL）路径"""
    return Path(
        os.environ.get(
            "FERRY_MESSAGES_PATH",
            str(_get_base_dir() / "messages.jsonl"),
        )
    )


def get_retention_path() -> Path:
    """获取保留记录（回收站 + 恢复保留，JSONL）路径"""
    return Path(
        os.environ.get(
            "FERRY_RETENTION_PATH",
            str(_get_base_dir() / "retention.jsonl"),
        )
    )


def get_blobs_dir() -> Path:
    """获取 Blob 文件存储目录"""
    return Path(
        os.environ.get(
            "FERRY_BLOBS_DIR",
            str(_get_base_dir() / "blobs"),
        )
    )


def get_frontend_dir() -> Path | None:
    """获取前端静态文件目录（未设置时返回 None）"""
    value = os.environ.get("FERRY_FRONTEND_DIR")
    return Path(value) if value else None


def get_cors_origins() -> list[str]:
    """允许跨域访问的来源（逗号分隔，默认 *，空字符串关闭 CORS）"""
    value = os.environ.get("FERRY_CORS_ORIGINS", "*")
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def retention_enabled() -> bool:
    """是否在应用生命周期内启动后台保留清理任务"""
    return os.environ.get("FERRY_RETENTION_ENABLED", "true").lower() == "true"


# 上传文件最大字节数（超过则拒绝，避免耗尽存储）
MAX_UPLOAD_BYTES: int = int(
    os.environ.get("FERRY_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024))
)

# multipart 封装（边界、表单字段头、sender 等）允许的额外字节数，
# 请求体 Content-Length 超过 MAX_UPLOAD_BYTES + 此值时在解析前直接拒绝
MULTIPART_OVERHEAD_BYTES: int = 64 * 1024

# 文本消息最大字节数（UTF-8 编码后）
MAX_TEXT_BYTES: int = int(os.environ.get("FERRY_MAX_TEXT_BYTES", str(64 * 1024)))

# 发送者标签最大长度
MAX_SENDER_LENGTH: int = 100

# Blob I/O 超时（秒）
BLOB_IO_TIMEOUT_S: float = float(os.environ.get("FERRY_BLOB_IO_TIMEOUT_S", "30"))

# 乐观追加冲突的最大重试次数
APPEND_MAX_RETRIES: int = int(os.environ.get("FERRY_APPEND_MAX_RETRIES", "3"))

# 活跃窗口（天）：超过后进入回收站
ACTIVE_DAYS: int = int(os.environ.get("FERRY_ACTIVE_DAYS", "30"))

# 回收站窗口（天）：超过后永久清除
RECYCLE_BIN_DAYS: int = int(os.environ.get("FERRY_RECYCLE_BIN_DAYS", "30"))

# 后台保留清理间隔（秒）
SWEEP_INTERVAL_S: float = float(os.environ.get("FERRY_SWEEP_INTERVAL_S", "3600"))

# 关闭时等待进行中的清理结束的最长时间（秒），超时后取消
SHUTDOWN_TIMEOUT_S: float = float(os.environ.get("FERRY_SHUTDOWN_TIMEOUT_S", "10"))

# 未被引用的 blob 在回收前的最短存活时间（秒）
ORPHAN_GRACE_S: float = float(os.environ.get("FERRY_ORPHAN_GRACE_S", "3600"))

# 上传文件名缺失时的默认文件名
DEFAULT_UPLOAD_FILENAME: str = "upload"
