"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在会话控制层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "CONVERSATION_NOT_FOUND"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 conversation_id、endpoint 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、读取中断等。"""


class ApiError(BusinessError):
    """Agent 服务返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """服务端限流错误。本客户端不做自动重试，由用户重新发送。"""


class ValidationError(BusinessError):
    """参数、配置或响应体校验失败。"""
