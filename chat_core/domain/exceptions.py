"""统一业务异常模型。

库内部所有失败都以 BusinessError 的子类抛出，并在公共操作的边界处
被捕获、转换成 ErrorKind 记录到会话上（见 domain.conversation）。
每个子类通过 kind 属性声明自己对应的 ErrorKind。
"""

from chat_core.domain.models import ErrorKind


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 相关的 HTTP 状态码，不适用时为 0。
        extra: 其他补充字段（例如 url、provider 等）。
    """

    kind: ErrorKind = ErrorKind.ILLEGAL_STATE

    def __init__(self, code: str, message: str, http_status: int = 0, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败。"""

    kind = ErrorKind.INVALID_ARGUMENT


class IllegalStateError(BusinessError):
    """操作依赖的前置条件不成立，例如历史中不存在指定角色的消息。"""

    kind = ErrorKind.ILLEGAL_STATE


class OutOfMemoryError(BusinessError):
    """JSON/字符串层分配失败。"""

    kind = ErrorKind.OUT_OF_MEMORY


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""

    kind = ErrorKind.TRANSPORT_ERROR


class StreamError(BusinessError):
    """流式响应开始之后传输中断，或消费方主动中止。"""

    kind = ErrorKind.STREAM_ERROR


class ParseError(BusinessError):
    """响应不是合法 JSON，或结构不符合预期。"""

    kind = ErrorKind.PARSE_ERROR


class ApiError(BusinessError):
    """响应是合法 JSON，但显式携带了 error 对象。"""

    kind = ErrorKind.API_ERROR


class RateLimitError(ApiError):
    """Provider 限流错误（HTTP 429），由上层负责重试/退避策略。"""
