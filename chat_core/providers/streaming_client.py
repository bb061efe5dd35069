"""流式 chat/completions 客户端与 SSE 解码器。

传输层按任意边界把响应体切成字节块，一个事件甚至一行都可能跨块，
因此 SseDecoder 在多次 feed() 之间保留未以换行结尾的残余数据：

1. 按换行切分完整行（行尾的 \\r 一并去掉）；
2. 只处理以 "data:" 开头（大小写敏感）的行，去掉前缀及其后的空格；
3. 载荷为 [DONE] 时结束，之后的行（同块或后续块）都不再处理；
4. 否则解析 JSON，取 choices[0].delta.content，字符串则按到达顺序
   同步回调 sink 并追加到累积文本；
5. 其他行、非法 JSON、没有 delta.content 的事件一律静默忽略。

残余缓冲以字节形式保存，多字节 UTF-8 字符跨块切分时也能正确还原。
"""

import json
from typing import Any, Callable, Dict, List, Optional

from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import BusinessError, StreamError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.completion_client import parse_json_object, raise_for_api_error
from chat_core.providers.request_builder import serialize_request_body
from chat_core.providers.transport import HttpTransport

DeltaSink = Callable[[str], None]

DATA_PREFIX = b"data:"
DONE_SENTINEL = "[DONE]"


def extract_delta(event: Any) -> Optional[str]:
    if not isinstance(event, dict):
        return None
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class SseDecoder:
    """增量 SSE 解码器，状态只属于一次进行中的请求。"""

    def __init__(self, on_delta: Optional[DeltaSink] = None):
        self._on_delta = on_delta
        self._residual = bytearray()
        self._parts: List[str] = []
        self.done = False
        self.usage: Optional[Dict[str, Any]] = None

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: bytes) -> bool:
        """喂入一个字节块；返回 False 表示已经见到 [DONE]。"""

        if self.done:
            return False
        self._residual.extend(chunk)
        start = 0
        while not self.done:
            end = self._residual.find(b"\n", start)
            if end < 0:
                break
            self._handle_line(bytes(self._residual[start:end]))
            start = end + 1
        if self.done:
            self._residual.clear()
        else:
            del self._residual[:start]
        return not self.done

    def finish(self) -> None:
        """流结束时处理最后一行没有换行结尾的数据。"""

        if self.done or not self._residual:
            return
        line = bytes(self._residual)
        self._residual.clear()
        self._handle_line(line)

    def _handle_line(self, line: bytes) -> None:
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line.startswith(DATA_PREFIX):
            return
        payload = line[len(DATA_PREFIX):].lstrip(b" ").decode("utf-8", errors="replace")
        if payload == DONE_SENTINEL:
            self.done = True
            return
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            return
        if isinstance(event, dict) and isinstance(event.get("usage"), dict):
            self.usage = event["usage"]
        delta = extract_delta(event)
        if delta is None:
            return
        if self._on_delta is not None:
            self._on_delta(delta)
        self._parts.append(delta)


class StreamingCompletionClient:
    """流式模式客户端。

    sink 在调用线程上同步执行，穿插在字节块到达之间；sink 抛出异常会中止
    传输，本次调用记为 STREAM_ERROR。已经交给 sink 的增量不会被撤回。
    """

    name = "openai"

    def __init__(self, transport: Optional[HttpTransport] = None):
        self._transport = transport or HttpTransport()

    def complete_streaming(
        self,
        conversation: Conversation,
        sink: Optional[DeltaSink] = None,
        capture: bool = True,
    ) -> Optional[str]:
        """发送流式请求。

        Args:
            conversation: 目标会话。
            sink: 每个增量的回调，可为 None。
            capture: 为 False 时累积文本在结束后丢弃，不更新 last_reply，返回 None。

        Returns:
            成功且 capture 为 True 时返回完整回复，否则返回 None。
        """

        conversation.clear_error()
        try:
            text = self._complete_streaming(conversation, sink)
        except BusinessError as e:
            conversation.record_error(e)
            logger.warning(
                f"chat.stream failed: {e.message}",
                extra={"extra": {"code": e.code, "kind": e.kind.value, "http_status": e.http_status}},
            )
            return None
        if not capture:
            return None
        conversation.last_reply = text
        return text

    def _complete_streaming(self, conversation: Conversation, sink: Optional[DeltaSink]) -> str:
        body = serialize_request_body(conversation, stream=True)
        url = conversation.chat_completions_url
        logger.info(
            "chat.request",
            extra={"extra": {"url": url, "model": conversation.config.model, "stream": True}},
        )

        def deliver(delta: str) -> None:
            if sink is None:
                return
            try:
                sink(delta)
            except Exception as e:
                raise StreamError(code="STREAM_ABORTED", message=f"Stream aborted by sink: {e}")

        decoder = SseDecoder(on_delta=deliver)
        resp = self._transport.stream(url, conversation.api_key, body, decoder.feed)
        if resp.status_code >= 400:
            data = parse_json_object(resp)
            raise_for_api_error(data, resp.status_code)
            raise StreamError(
                code="STREAM_ERROR",
                message=f"Unexpected HTTP status {resp.status_code}",
                http_status=resp.status_code,
            )
        decoder.finish()

        if decoder.usage is not None:
            conversation.usage.update_from(decoder.usage)
        logger.info(
            "chat.stream.done",
            extra={"extra": {"http_status": resp.status_code, "chars": len(decoder.text)}},
        )
        return decoder.text
