"""Chat Core 顶层包。

面向会话的 chat/completions 客户端：维护有序消息历史，按配置构造请求体，
以缓冲或流式方式发送请求，并把结果（或带类型的错误）记录在会话上。
"""

from chat_core.config.credentials import get_default_credential, set_default_credential
from chat_core.domain.conversation import Conversation, copy_settings
from chat_core.domain.models import ErrorKind, Message, UsageCounters
from chat_core.infrastructure.logging.logger import set_log_file
from chat_core.infrastructure.storage.json_store import load_conversation, save_conversation
from chat_core.providers import chat
from chat_core.providers.completion_client import CompletionClient
from chat_core.providers.streaming_client import SseDecoder, StreamingCompletionClient

__all__ = [
    "Conversation",
    "CompletionClient",
    "ErrorKind",
    "Message",
    "SseDecoder",
    "StreamingCompletionClient",
    "UsageCounters",
    "chat",
    "copy_settings",
    "get_default_credential",
    "load_conversation",
    "save_conversation",
    "set_default_credential",
    "set_log_file",
]
