"""非流式 chat/completions 客户端。

流程：
1. 清空会话上的错误状态。
2. 构造非流式请求体并 POST 到 {base_url}/v1/chat/completions。
3. 把完整响应体解析为 JSON：
   - 传输失败 -> TRANSPORT_ERROR；
   - 不是合法 JSON 对象 -> PARSE_ERROR；
   - 携带 error 对象 -> API_ERROR（记录 HTTP 状态码，429 为限流）；
   - 没有 choices[0].message.content -> PARSE_ERROR。
4. 成功时更新 last_reply 与 token 统计并返回回复文本。

失败时返回 None，会话原有的 last_reply 保持不变。
"""

import json
from typing import Any, Dict, Optional

from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import ApiError, BusinessError, ParseError, RateLimitError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.request_builder import serialize_request_body
from chat_core.providers.transport import HttpTransport, TransportResponse


def parse_json_object(resp: TransportResponse) -> Dict[str, Any]:
    try:
        data = json.loads(resp.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ParseError(
            code="JSON_PARSE_ERROR",
            message="Failed to parse response JSON",
            http_status=resp.status_code,
        )
    if not isinstance(data, dict):
        raise ParseError(
            code="JSON_PARSE_ERROR",
            message="Response JSON is not an object",
            http_status=resp.status_code,
        )
    return data


def raise_for_api_error(data: Dict[str, Any], status_code: int) -> None:
    """响应中存在 error 字段时抛出 ApiError / RateLimitError。"""

    err = data.get("error")
    if err is None:
        return
    message = "API returned error"
    if isinstance(err, dict) and isinstance(err.get("message"), str):
        message = err["message"]
    elif isinstance(err, str) and err:
        message = err
    if status_code == 429:
        raise RateLimitError(code="RATE_LIMIT", message=message, http_status=status_code)
    raise ApiError(code="API_ERROR", message=message, http_status=status_code)


def extract_reply(data: Dict[str, Any], status_code: int) -> str:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ParseError(code="NO_CHOICES", message="No choices in response", http_status=status_code)
    first = choices[0] if isinstance(choices[0], dict) else {}
    msg = first.get("message")
    content = msg.get("content") if isinstance(msg, dict) else None
    if not isinstance(content, str):
        raise ParseError(
            code="NO_CONTENT",
            message="No content in response message",
            http_status=status_code,
        )
    return content


class CompletionClient:
    """缓冲模式客户端：一次请求、一次完整 JSON 响应。"""

    name = "openai"

    def __init__(self, transport: Optional[HttpTransport] = None):
        self._transport = transport or HttpTransport()

    def complete(self, conversation: Conversation) -> Optional[str]:
        conversation.clear_error()
        try:
            return self._complete(conversation)
        except BusinessError as e:
            conversation.record_error(e)
            logger.warning(
                f"chat.complete failed: {e.message}",
                extra={"extra": {"code": e.code, "kind": e.kind.value, "http_status": e.http_status}},
            )
            return None

    def _complete(self, conversation: Conversation) -> str:
        body = serialize_request_body(conversation, stream=False)
        url = conversation.chat_completions_url
        logger.info(
            "chat.request",
            extra={"extra": {"url": url, "model": conversation.config.model, "stream": False}},
        )
        resp = self._transport.post(url, conversation.api_key, body)
        data = parse_json_object(resp)
        raise_for_api_error(data, resp.status_code)
        reply = extract_reply(data, resp.status_code)

        conversation.last_reply = reply
        usage_raw = data.get("usage")
        if isinstance(usage_raw, dict):
            conversation.usage.update_from(usage_raw)
        logger.info(
            "chat.response",
            extra={"extra": {"http_status": resp.status_code, "total_tokens": conversation.usage.total_tokens}},
        )
        return reply
