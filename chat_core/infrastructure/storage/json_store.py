"""消息历史的 JSON 文件持久化。

文件格式为 [{"role": ..., "content": ...}, ...]，只保存消息，不保存配置。
写入先落到同目录临时文件再 os.replace，避免写一半的文件覆盖旧数据。
加载时先完整解析，再整体替换内存中的历史；解析失败不会修改会话。
"""

import json
import os
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from chat_core.domain.conversation import Conversation, returns_kind
from chat_core.domain.exceptions import NetworkError, ParseError, ValidationError
from chat_core.domain.models import VALID_ROLES, Message
from chat_core.infrastructure.logging.logger import logger


@returns_kind
def save_conversation(conversation: Optional[Conversation], path: Optional[str | Path]) -> None:
    if conversation is None or path is None:
        raise ValidationError(code="MISSING_ARGUMENT", message="conversation and path are required")
    target = Path(path)
    tmp_path = target.with_name(f"{target.name}.{uuid4().hex}.tmp")
    try:
        tmp_path.write_text(conversation.dump_messages(), encoding="utf-8")
        os.replace(tmp_path, target)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        # 文件 I/O 错误沿用传输错误类别
        raise NetworkError(code="STORE_WRITE_ERROR", message=str(e), path=str(target))
    logger.info("store.save", extra={"extra": {"path": str(target), "messages": conversation.count()}})


def _parse_messages(text: str) -> List[Message]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(code="JSON_PARSE_ERROR", message=f"Invalid conversation file: {e}")
    if not isinstance(data, list):
        raise ParseError(code="JSON_PARSE_ERROR", message="Conversation file must contain a JSON array")
    items: List[Message] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        content = item.get("content")
        # 角色或内容不合法的条目直接跳过
        if isinstance(role, str) and isinstance(content, str) and role in VALID_ROLES:
            items.append(Message(role=role, content=content))
    return items


@returns_kind
def load_conversation(conversation: Optional[Conversation], path: Optional[str | Path]) -> None:
    if conversation is None or path is None:
        raise ValidationError(code="MISSING_ARGUMENT", message="conversation and path are required")
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise NetworkError(code="STORE_READ_ERROR", message=str(e), path=str(source))
    messages = _parse_messages(text)
    conversation.replace_messages(messages)
    logger.info("store.load", extra={"extra": {"path": str(source), "messages": len(messages)}})
