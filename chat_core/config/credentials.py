"""进程级默认凭证。

启动阶段通过 set_default_credential 设置一次，之后创建 Conversation 时
若未显式传入 api_key 就使用这里的值。未显式设置时回退到 settings 中的
openai_api_key（环境变量 OPENAI_API_KEY / .env / config.yaml）。

该单元格只做覆盖写，不做加锁；并发使用前应当已经设置完毕。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.domain.models import ErrorKind

_default_credential: Optional[str] = None


def set_default_credential(api_key: Optional[str]) -> ErrorKind:
    global _default_credential
    if not api_key:
        return ErrorKind.INVALID_ARGUMENT
    _default_credential = api_key
    return ErrorKind.OK


def get_default_credential() -> Optional[str]:
    return _default_credential or settings.openai_api_key
