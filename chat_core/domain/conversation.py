"""会话聚合根与消息历史。

- MessageHistory: 有序的消息容器，只暴露追加/删除/按下标访问，
  增长策略由 Python list 负责（追加均摊 O(1)）。
- ConversationConfig: 每个会话独立的配置（模型、采样参数、端点、重试等）。
- Conversation: 聚合根，持有凭证、配置、消息历史、最近一次回复、
  token 统计以及 ErrorState。

公共操作遵循统一约定：内部以 BusinessError 子类表达失败，在边界处
转换为 ErrorKind 返回，调用方通过返回值或 last_code()/last_error() 判断结果。
"""

import functools
import json
import sys
from dataclasses import dataclass, fields, replace
from typing import IO, Callable, Iterator, List, Optional, Tuple, TypeVar

import httpx

from chat_core.config.credentials import get_default_credential
from chat_core.config.settings import settings
from chat_core.domain.exceptions import (
    BusinessError,
    IllegalStateError,
    ValidationError,
)
from chat_core.domain.models import (
    VALID_ROLES,
    ErrorKind,
    ErrorState,
    Message,
    Role,
    UsageCounters,
)
from chat_core.infrastructure.logging.logger import logger

F = TypeVar("F", bound=Callable[..., None])


def returns_kind(func: F) -> Callable[..., ErrorKind]:
    """把“抛 BusinessError”风格的方法转换成“返回 ErrorKind”的公共操作。"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> ErrorKind:
        try:
            func(*args, **kwargs)
        except BusinessError as e:
            logger.debug(
                f"{func.__name__} failed: {e.message}",
                extra={"extra": {"code": e.code, "kind": e.kind.value}},
            )
            return e.kind
        except MemoryError:
            return ErrorKind.OUT_OF_MEMORY
        return ErrorKind.OK

    return wrapper


def _require_text(value: Optional[str], name: str) -> str:
    if value is None:
        raise ValidationError(code="MISSING_ARGUMENT", message=f"{name} is required")
    if not isinstance(value, str):
        raise ValidationError(code="INVALID_ARGUMENT", message=f"{name} must be a string")
    return value


def _require_range(value: float, name: str, low: float, high: float, low_inclusive: bool = True) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(code="INVALID_ARGUMENT", message=f"{name} must be a number")
    # 写成“在区间内”的形式，NaN 也会被拒绝
    above_low = low <= value if low_inclusive else low < value
    if not (above_low and value <= high):
        bracket = "[" if low_inclusive else "("
        raise ValidationError(
            code="OUT_OF_RANGE",
            message=f"{name} must be in {bracket}{low}, {high}], got {value}",
        )
    return float(value)


def _require_non_negative_int(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(code="OUT_OF_RANGE", message=f"{name} must be a non-negative integer, got {value!r}")
    return value


class MessageHistory:
    """有序消息容器，下标 0 为最早的一条。"""

    def __init__(self) -> None:
        self._items: List[Message] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._items))

    def __getitem__(self, index: int) -> Message:
        return self._items[index]

    def append(self, role: Optional[str], content: Optional[str]) -> None:
        role = _require_text(role, "role")
        content = _require_text(content, "content")
        if role not in VALID_ROLES:
            raise ValidationError(code="INVALID_ROLE", message=f"Unknown role: {role!r}")
        self._items.append(Message(role=role, content=content))

    def remove_last(self) -> None:
        if not self._items:
            raise ValidationError(code="EMPTY_HISTORY", message="No message to remove")
        self._items.pop()

    def remove_at(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or index < 0 or index >= len(self._items):
            raise ValidationError(
                code="INDEX_OUT_OF_RANGE",
                message=f"Index {index!r} out of range for {len(self._items)} messages",
            )
        del self._items[index]

    def _last_index_of(self, role: str) -> int:
        for i in range(len(self._items) - 1, -1, -1):
            if self._items[i].role == role:
                return i
        raise IllegalStateError(code="ROLE_NOT_FOUND", message=f"No {role} message in history")

    def replace_last_of_role(self, role: Optional[str], new_content: Optional[str]) -> None:
        role = _require_text(role, "role")
        new_content = _require_text(new_content, "new_content")
        i = self._last_index_of(role)
        self._items[i] = replace(self._items[i], content=new_content)

    def append_to_last_of_role(self, role: Optional[str], extra_text: Optional[str]) -> None:
        role = _require_text(role, "role")
        extra_text = _require_text(extra_text, "extra_text")
        i = self._last_index_of(role)
        old = self._items[i]
        self._items[i] = replace(old, content=old.content + extra_text)

    def replace_all(self, messages: List[Message]) -> None:
        self._items = list(messages)

    def clear(self) -> None:
        self._items.clear()

    def snapshot(self) -> Tuple[Message, ...]:
        return tuple(self._items)


@dataclass
class ConversationConfig:
    """单个会话的配置快照，数值字段在写入前已经校验过范围。"""

    model: str
    base_url: str
    temperature: float = 0.7
    top_p: float = 1.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    max_tokens: int = 0
    use_streaming: bool = True
    context_messages: int = 5
    max_retries: int = 3
    retry_delay_ms: int = 1000

    @classmethod
    def from_settings(cls, model: Optional[str] = None) -> "ConversationConfig":
        return cls(
            model=model or settings.default_model,
            base_url=settings.openai_base_url,
            temperature=settings.temperature,
            top_p=settings.top_p,
            presence_penalty=settings.presence_penalty,
            frequency_penalty=settings.frequency_penalty,
            max_tokens=settings.max_tokens,
            use_streaming=settings.use_streaming,
            context_messages=settings.context_messages,
            max_retries=settings.max_retries,
            retry_delay_ms=settings.retry_delay_ms,
        )


class Conversation:
    """会话聚合根。

    持有：
    - 凭证副本与 ConversationConfig；
    - 有序消息历史（仅本会话持有，不与其他会话共享）；
    - 最近一次回复文本与 token 统计；
    - ErrorState：最近一次网络操作的结果。

    不支持并发：同一个会话上同时修改历史或发起第二个请求的行为未定义，
    调用方需要自行串行化。
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        key = api_key or get_default_credential()
        if not key:
            raise ValidationError(code="MISSING_API_KEY", message="No API key given and no default credential set")
        self._api_key: str = key
        self._config = ConversationConfig.from_settings(model)
        self._history = MessageHistory()
        self.last_reply: Optional[str] = None
        self.usage = UsageCounters()
        self.error_state = ErrorState()

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def config(self) -> ConversationConfig:
        """返回配置副本，修改请使用 set_* 方法。"""

        return replace(self._config)

    @property
    def chat_completions_url(self) -> str:
        return f"{self._config.base_url}/v1/chat/completions"

    # ---- 错误模型 ----

    def clear_error(self) -> None:
        self.error_state.clear()

    def set_error(self, kind: ErrorKind, message: str, http_status: int = 0) -> None:
        self.error_state.set(kind, message, http_status)

    def record_error(self, exc: BusinessError) -> ErrorKind:
        """把异常记录到 ErrorState 并返回对应的 ErrorKind。"""

        self.set_error(exc.kind, exc.message, exc.http_status)
        return exc.kind

    def last_error(self) -> str:
        return self.error_state.message

    def last_code(self) -> ErrorKind:
        return self.error_state.kind

    def last_http_status(self) -> int:
        return self.error_state.http_status

    # ---- 配置 ----

    @returns_kind
    def set_model(self, model: Optional[str]) -> None:
        model = _require_text(model, "model")
        if not model:
            raise ValidationError(code="INVALID_ARGUMENT", message="model must not be empty")
        self._config.model = model

    @returns_kind
    def set_base_url(self, base_url: Optional[str]) -> None:
        base_url = _require_text(base_url, "base_url")
        if not base_url:
            raise ValidationError(code="INVALID_ARGUMENT", message="base_url must not be empty")
        try:
            httpx.URL(base_url)
        except httpx.InvalidURL as e:
            raise ValidationError(code="INVALID_ARGUMENT", message=f"base_url is not a valid URL: {e}")
        self._config.base_url = base_url.rstrip("/")

    @returns_kind
    def set_temperature(self, value: float) -> None:
        self._config.temperature = _require_range(value, "temperature", 0.0, 2.0)

    @returns_kind
    def set_top_p(self, value: float) -> None:
        self._config.top_p = _require_range(value, "top_p", 0.0, 1.0, low_inclusive=False)

    @returns_kind
    def set_presence_penalty(self, value: float) -> None:
        self._config.presence_penalty = _require_range(value, "presence_penalty", -2.0, 2.0)

    @returns_kind
    def set_frequency_penalty(self, value: float) -> None:
        self._config.frequency_penalty = _require_range(value, "frequency_penalty", -2.0, 2.0)

    @returns_kind
    def set_max_tokens(self, value: int) -> None:
        self._config.max_tokens = _require_non_negative_int(value, "max_tokens")

    @returns_kind
    def set_streaming(self, enabled: bool) -> None:
        self._config.use_streaming = bool(enabled)

    @returns_kind
    def set_context_messages(self, count: int) -> None:
        self._config.context_messages = _require_non_negative_int(count, "context_messages")

    @returns_kind
    def set_retry_config(self, max_retries: int, delay_ms: int) -> None:
        # 先全部校验再写入，避免只更新一半
        max_retries = _require_non_negative_int(max_retries, "max_retries")
        delay_ms = _require_non_negative_int(delay_ms, "delay_ms")
        self._config.max_retries = max_retries
        self._config.retry_delay_ms = delay_ms

    # ---- 消息管理 ----

    @returns_kind
    def append(self, role: Optional[Role], content: Optional[str]) -> None:
        self._history.append(role, content)

    def add_user(self, content: Optional[str]) -> ErrorKind:
        return self.append("user", content)

    def add_system(self, content: Optional[str]) -> ErrorKind:
        return self.append("system", content)

    def add_assistant(self, content: Optional[str]) -> ErrorKind:
        return self.append("assistant", content)

    def add_user_with_file(
        self,
        content: Optional[str],
        file_path: Optional[str],
        file_type: Optional[str],
    ) -> ErrorKind:
        """追加一条带附件说明的用户消息（只写入路径与类型，不上传文件内容）。"""

        if not file_path or not file_type:
            return ErrorKind.INVALID_ARGUMENT
        text = f"{content or 'File attachment'} [File attached: {file_path} ({file_type})]"
        return self.add_user(text)

    @returns_kind
    def remove_last(self) -> None:
        self._history.remove_last()

    @returns_kind
    def remove_at(self, index: int) -> None:
        self._history.remove_at(index)

    @returns_kind
    def replace_last_of_role(self, role: Optional[Role], new_content: Optional[str]) -> None:
        self._history.replace_last_of_role(role, new_content)

    @returns_kind
    def append_to_last_of_role(self, role: Optional[Role], extra_text: Optional[str]) -> None:
        self._history.append_to_last_of_role(role, extra_text)

    def replace_last_user(self, new_content: Optional[str]) -> ErrorKind:
        return self.replace_last_of_role("user", new_content)

    def append_to_last_assistant(self, extra_text: Optional[str]) -> ErrorKind:
        return self.append_to_last_of_role("assistant", extra_text)

    def replace_messages(self, messages: List[Message]) -> None:
        """整体替换消息历史（持久化加载使用）。"""

        self._history.replace_all(messages)

    def clear(self) -> ErrorKind:
        """清空消息，保留配置。"""

        self._history.clear()
        return ErrorKind.OK

    def reset(self) -> ErrorKind:
        """清空消息、token 统计、最近回复与错误状态，保留配置。"""

        self._history.clear()
        self.usage.reset()
        self.last_reply = None
        self.clear_error()
        return ErrorKind.OK

    def count(self) -> int:
        return len(self._history)

    def messages(self) -> Tuple[Message, ...]:
        return self._history.snapshot()

    def message_at(self, index: int) -> Optional[Message]:
        """返回下标 index 处的消息；越界（含负数）时返回 None。"""

        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self._history):
            return None
        return self._history[index]

    # ---- 工具方法 ----

    def dump_messages(self) -> str:
        """返回全部消息的紧凑 JSON 数组字符串。"""

        return json.dumps(
            [m.to_payload() for m in self._history],
            ensure_ascii=False,
            separators=(",", ":"),
        )

    def format_messages(self) -> str:
        return "".join(f"{i} {m.role}: {m.content}\n" for i, m in enumerate(self._history))

    def print_messages(self, out: Optional[IO[str]] = None) -> None:
        (out or sys.stdout).write(self.format_messages())


@returns_kind
def copy_settings(dest: Optional[Conversation], src: Optional[Conversation]) -> None:
    """把 src 的配置（含模型名与 base_url）复制到 dest，不复制消息与凭证。"""

    if dest is None or src is None:
        raise ValidationError(code="MISSING_ARGUMENT", message="Both conversations are required")
    for f in fields(ConversationConfig):
        setattr(dest._config, f.name, getattr(src._config, f.name))
