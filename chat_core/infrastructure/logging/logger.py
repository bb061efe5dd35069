import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from chat_core.config.settings import settings


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if settings.log_redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        return json.dumps(payload, ensure_ascii=False)


_file_handler: Optional[logging.Handler] = None


def set_log_file(path: Optional[str | Path]) -> None:
    """设置（或在 path 为 None 时移除）进程级诊断日志文件。"""

    global _file_handler
    log = logging.getLogger("chat_core")
    if _file_handler is not None:
        log.removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None
    if path is None:
        return
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(target, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(JsonFormatter())
    log.addHandler(fh)
    _file_handler = fh


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("chat_core")
    logger.setLevel(logging.DEBUG)
    # 未配置日志文件时不向 stderr 输出
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    if settings.log_file:
        set_log_file(Path(settings.log_dir) / settings.log_file)
    return logger


logger = setup_logger()
