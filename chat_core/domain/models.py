"""会话领域的基础数据模型。

本模块定义了会话、请求构造与响应解析之间共享的标准数据结构：

- Message: 一条对话消息（system/user/assistant）。
- UsageCounters: Provider 返回的 token 统计。
- ErrorKind / ErrorState: 每个会话上记录的“最近一次操作结果”。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, Mapping


# 消息角色类型（与 OpenAI chat/completions 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

VALID_ROLES = frozenset({"system", "user", "assistant"})

# 错误信息的最大字节数（UTF-8），超过部分截断
MAX_ERROR_MESSAGE_BYTES = 511


@dataclass(frozen=True)
class Message:
    """一条对话消息。

    Message 本身不可变；replace/append 类操作会在历史中换入新的 Message 实例。
    """

    role: Role
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class UsageCounters:
    """token 统计信息。"""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def update_from(self, usage_raw: Mapping[str, Any]) -> None:
        """按字段覆盖：响应中缺失或非数值的字段保持原值。"""

        for name in ("prompt_tokens", "completion_tokens", "total_tokens"):
            value = usage_raw.get(name)
            # bool 是 int 的子类，需要排除
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                setattr(self, name, int(value))

    def reset(self) -> None:
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0


class ErrorKind(str, Enum):
    """操作结果类型，OK 表示成功。"""

    OK = "ok"
    OUT_OF_MEMORY = "out_of_memory"
    INVALID_ARGUMENT = "invalid_argument"
    TRANSPORT_ERROR = "transport_error"
    PARSE_ERROR = "parse_error"
    API_ERROR = "api_error"
    STREAM_ERROR = "stream_error"
    ILLEGAL_STATE = "illegal_state"


def truncate_error_message(message: str) -> str:
    """把错误信息截断到 MAX_ERROR_MESSAGE_BYTES 字节以内，且不切断多字节字符。"""

    raw = message.encode("utf-8")
    if len(raw) <= MAX_ERROR_MESSAGE_BYTES:
        return message
    return raw[:MAX_ERROR_MESSAGE_BYTES].decode("utf-8", errors="ignore")


@dataclass
class ErrorState:
    """会话上的单个可变错误槽位。

    - kind: 错误类型，成功时为 ErrorKind.OK。
    - message: 人类可读的错误信息（已截断）。
    - http_status: 相关的 HTTP 状态码，不适用时为 0。
    """

    kind: ErrorKind = ErrorKind.OK
    message: str = ""
    http_status: int = 0

    def clear(self) -> None:
        self.kind = ErrorKind.OK
        self.message = ""
        self.http_status = 0

    def set(self, kind: ErrorKind, message: str, http_status: int = 0) -> None:
        self.kind = kind
        self.message = truncate_error_message(message or "")
        self.http_status = http_status

    @property
    def ok(self) -> bool:
        return self.kind is ErrorKind.OK
