"""Ferry 异常体系

ValidationError -> 4xx，NotFound -> 404，StorageError -> 5xx。
ConcurrencyError 由写入方内部有限重试，耗尽后以 StorageError 上抛。
"""


class FerryError(Exception):
    """Ferry 基础异常"""

    code: str = "FERRY_ERROR"

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述（会返回给调用方）
            recoverable: 调用方重试是否可能成功
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class PayloadValidationError(FerryError):
    """请求字段缺失或非法"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class PayloadTooLargeError(PayloadValidationError):
    """上传内容超过大小上限"""

    code = "PAYLOAD_TOO_LARGE"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Payload of {size} bytes exceeds the limit of {limit} bytes")
        self.size = size
        self.limit = limit


class NotFoundError(FerryError):
    """引用的消息或 blob 不存在（已清除或从未存在）"""

    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} {identifier} does not exist", recoverable=False)
        self.kind = kind
        self.identifier = identifier


class StorageError(FerryError):
    """持久化读写失败，服务端不自动重试，由调用方重试"""

    code = "STORAGE_ERROR"


class ConcurrencyError(FerryError):
    """串行化冲突：日志文件在上次读取后被其他写入方修改"""

    code = "CONCURRENCY_CONFLICT"
