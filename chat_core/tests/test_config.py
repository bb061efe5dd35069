import logging

import pytest

from chat_core.config import credentials
from chat_core.config.credentials import get_default_credential, set_default_credential
from chat_core.config.settings import ChatSettings
from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import ErrorKind
from chat_core.infrastructure.logging.logger import set_log_file


@pytest.fixture
def no_default_credential(monkeypatch):
    monkeypatch.setattr(credentials, "_default_credential", None)
    monkeypatch.setattr(credentials.settings, "openai_api_key", None)


def test_default_credential_is_used(no_default_credential):
    assert set_default_credential("sk-global") is ErrorKind.OK
    assert get_default_credential() == "sk-global"
    conv = Conversation()
    assert conv.api_key == "sk-global"
    assert Conversation(api_key="sk-own").api_key == "sk-own"


def test_missing_credential(no_default_credential):
    assert set_default_credential(None) is ErrorKind.INVALID_ARGUMENT
    assert get_default_credential() is None
    with pytest.raises(ValidationError):
        Conversation()


def test_settings_fallback_credential(no_default_credential, monkeypatch):
    monkeypatch.setattr(credentials.settings, "openai_api_key", "sk-env")
    assert get_default_credential() == "sk-env"


def test_settings_validation(monkeypatch):
    monkeypatch.setenv("TEMPERATURE", "1.5")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://proxy.test/")
    cfg = ChatSettings()
    assert cfg.temperature == 1.5
    assert cfg.openai_base_url == "https://proxy.test"
    monkeypatch.setenv("TOP_P", "0")
    with pytest.raises(ValueError):
        ChatSettings()


def test_settings_from_yaml(tmp_path, monkeypatch):
    cfg_file = tmp_path / "chat.yaml"
    cfg_file.write_text("default_model: gpt-4o\ncontext_messages: 9\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_CONFIG_FILE", str(cfg_file))
    cfg = ChatSettings()
    assert cfg.default_model == "gpt-4o"
    assert cfg.context_messages == 9


def test_log_file_target(tmp_path):
    path = tmp_path / "logs" / "chat.log"
    set_log_file(path)
    try:
        logging.getLogger("chat_core").info("hello", extra={"extra": {"k": "v"}})
    finally:
        set_log_file(None)
    line = path.read_text(encoding="utf-8").strip()
    assert '"msg": "hello"' in line
    assert '"k": "v"' in line
