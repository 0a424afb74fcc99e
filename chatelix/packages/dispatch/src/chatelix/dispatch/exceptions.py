"""Dispatch 异常体系

StreamTransport 只抛出/上报这里定义的异常，FallbackOrchestrator 据此决定降级。
"""


class DispatchError(Exception):
    """Dispatch 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试或降级恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class StreamHTTPError(DispatchError):
    """后端 endpoint 返回非 2xx 响应

    消息中保留状态码、原因短语和响应体，供 ErrorClassifier 做关键字匹配。
    """

    def __init__(self, status_code: int, reason: str, body: str) -> None:
        super().__init__(
            f"Streaming failed: HTTP {status_code} {reason} - {body}",
            recoverable=True,
        )
        self.status_code = status_code
        self.reason = reason
        self.body = body


class StreamTransportError(DispatchError):
    """连接失败、超时或读取流时出错"""

    def __init__(self, message: str, original_error: Exception) -> None:
        super().__init__(message, recoverable=True)
        self.original_error = original_error


class StreamCancelledError(DispatchError):
    """调用方主动取消了流"""

    def __init__(self, model: str) -> None:
        super().__init__(f"Stream cancelled for model {model}", recoverable=False)
        self.model = model


class AllModelsFailedError(DispatchError):
    """降级链全部失败

    错误信息保留的是首次（primary）调用的失败原因，而非最后一次的。
    """

    def __init__(self, original_error: str, attempts: list[str]) -> None:
        super().__init__(
            f"Streaming failed for all models. Original error: {original_error}",
            recoverable=False,
        )
        self.original_error = original_error
        self.attempts = attempts
