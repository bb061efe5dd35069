"""请求体构造。

把 Conversation 的消息历史与配置转换成 chat/completions 的 JSON 请求体：

- model / messages / temperature / top_p 总是携带；
- presence_penalty / frequency_penalty 只在非 0 时携带（服务端默认即为 0）；
- max_tokens 只在 > 0 时携带；
- stream 只在流式请求时携带。

上下文窗口在这里裁剪：context_messages = N > 0 时只发送最后 N 条，
N = 0 时只发送最后一条。构造过程只读，不修改会话。
"""

import json
from typing import Any, Dict, List, Sequence

from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import OutOfMemoryError
from chat_core.domain.models import Message


def select_context(messages: Sequence[Message], context_messages: int) -> List[Message]:
    """按上下文窗口大小取最近的若干条消息。"""

    window = context_messages if context_messages > 0 else 1
    if len(messages) <= window:
        return list(messages)
    return list(messages[-window:])


def build_request_body(conversation: Conversation, stream: bool) -> Dict[str, Any]:
    cfg = conversation.config
    msgs = select_context(conversation.messages(), cfg.context_messages)
    payload: Dict[str, Any] = {
        "model": cfg.model,
        "messages": [m.to_payload() for m in msgs],
        "temperature": cfg.temperature,
        "top_p": cfg.top_p,
    }
    if cfg.presence_penalty != 0.0:
        payload["presence_penalty"] = cfg.presence_penalty
    if cfg.frequency_penalty != 0.0:
        payload["frequency_penalty"] = cfg.frequency_penalty
    if cfg.max_tokens > 0:
        payload["max_tokens"] = cfg.max_tokens
    if stream:
        payload["stream"] = True
    return payload


def serialize_request_body(conversation: Conversation, stream: bool) -> str:
    """构造并序列化为紧凑 JSON 文本。"""

    try:
        payload = build_request_body(conversation, stream)
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except MemoryError:
        raise OutOfMemoryError(code="OOM", message="Failed to build request body")
