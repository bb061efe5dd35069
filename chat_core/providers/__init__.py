"""chat/completions 集成层。

该包下的模块负责：
- 传输层 (transport)：基于 httpx 的同步请求与流式读取。
- 请求体构造 (request_builder)。
- 缓冲模式与流式模式的客户端 (completion_client、streaming_client)。
- 与会话无关的辅助接口 (endpoints)。
"""

from typing import Optional

from chat_core.domain.conversation import Conversation
from chat_core.providers.completion_client import CompletionClient
from chat_core.providers.streaming_client import DeltaSink, StreamingCompletionClient
from chat_core.providers.transport import HttpTransport


def chat(
    conversation: Conversation,
    sink: Optional[DeltaSink] = None,
    transport: Optional[HttpTransport] = None,
) -> Optional[str]:
    """按会话的 use_streaming 配置选择流式或缓冲模式发送请求。"""

    if conversation.config.use_streaming:
        return StreamingCompletionClient(transport).complete_streaming(conversation, sink)
    return CompletionClient(transport).complete(conversation)
