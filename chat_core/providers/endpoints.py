"""一次性调用的辅助接口：模型列表、图片生成、单轮问答。

这些接口与会话状态无关，失败时只记录日志并返回 None（或 -1），
不抛出异常。
"""

import json
from typing import Optional

from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import ErrorKind
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.completion_client import CompletionClient
from chat_core.providers.transport import HttpTransport


def list_models(api_key: Optional[str], transport: Optional[HttpTransport] = None) -> Optional[str]:
    """返回 GET /v1/models 的原始响应文本。"""

    if not api_key:
        return None
    transport = transport or HttpTransport()
    try:
        resp = transport.get(f"{settings.openai_base_url}/v1/models", api_key)
    except BusinessError as e:
        logger.warning(f"models.list failed: {e.message}", extra={"extra": {"code": e.code}})
        return None
    return resp.text


def is_model_available(
    api_key: Optional[str],
    model_name: Optional[str],
    transport: Optional[HttpTransport] = None,
) -> int:
    """1 表示可用，0 表示不可用，-1 表示参数错误或请求失败。"""

    if not api_key or not model_name:
        return -1
    body = list_models(api_key, transport)
    if body is None:
        return -1
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return -1
    entries = data.get("data") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return -1
    ids = {item.get("id") for item in entries if isinstance(item, dict)}
    return 1 if model_name in ids else 0


def generate_image(
    api_key: Optional[str],
    prompt: Optional[str],
    size: Optional[str],
    transport: Optional[HttpTransport] = None,
) -> Optional[str]:
    """调用图片生成接口，返回第一张图片的 URL。"""

    if not api_key or not prompt or not size:
        return None
    transport = transport or HttpTransport()
    body = json.dumps({"prompt": prompt, "n": 1, "size": size}, ensure_ascii=False)
    try:
        resp = transport.post(f"{settings.openai_base_url}/v1/images/generations", api_key, body)
        data = json.loads(resp.body)
    except BusinessError as e:
        logger.warning(f"images.generate failed: {e.message}", extra={"extra": {"code": e.code}})
        return None
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("images.generate failed: invalid JSON response")
        return None
    items = data.get("data") if isinstance(data, dict) else None
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        return None
    url = items[0].get("url")
    return url if isinstance(url, str) else None


def query(
    api_key: Optional[str],
    prompt: Optional[str],
    transport: Optional[HttpTransport] = None,
) -> Optional[str]:
    """用临时会话发送单条用户消息，返回缓冲模式的回复。"""

    try:
        conversation = Conversation(api_key=api_key)
    except BusinessError as e:
        logger.warning(f"query failed: {e.message}", extra={"extra": {"code": e.code}})
        return None
    if conversation.add_user(prompt) is not ErrorKind.OK:
        return None
    return CompletionClient(transport).complete(conversation)
