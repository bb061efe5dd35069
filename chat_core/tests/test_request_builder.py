import json

from chat_core.domain.conversation import Conversation
from chat_core.providers.request_builder import build_request_body, serialize_request_body


def make_conv():
    return Conversation(api_key="sk-test", model="gpt-4o-mini")


def test_system_and_user_in_order():
    conv = make_conv()
    conv.append("system", "You are terse.")
    conv.append("user", "2+2?")
    payload = build_request_body(conv, stream=False)
    assert payload["messages"] == [
        {"role": "system", "content": "You are terse."},
        {"role": "user", "content": "2+2?"},
    ]
    assert payload["model"] == "gpt-4o-mini"


def test_defaults_omit_optional_fields():
    conv = make_conv()
    conv.add_user("hi")
    payload = build_request_body(conv, stream=False)
    assert payload["temperature"] == 0.7
    assert payload["top_p"] == 1.0
    for key in ("presence_penalty", "frequency_penalty", "max_tokens", "stream"):
        assert key not in payload


def test_optional_fields_when_set():
    conv = make_conv()
    conv.add_user("hi")
    conv.set_presence_penalty(0.6)
    conv.set_frequency_penalty(-0.3)
    conv.set_max_tokens(150)
    payload = build_request_body(conv, stream=True)
    assert payload["presence_penalty"] == 0.6
    assert payload["frequency_penalty"] == -0.3
    assert payload["max_tokens"] == 150
    assert payload["stream"] is True


def test_context_window_trims_to_trailing_messages():
    conv = make_conv()
    for i in range(8):
        conv.add_user(f"m{i}")
    conv.set_context_messages(3)
    payload = build_request_body(conv, stream=False)
    assert [m["content"] for m in payload["messages"]] == ["m5", "m6", "m7"]
    assert conv.count() == 8


def test_context_window_zero_sends_only_last():
    conv = make_conv()
    conv.add_system("sys")
    conv.add_user("question")
    conv.set_context_messages(0)
    payload = build_request_body(conv, stream=False)
    assert payload["messages"] == [{"role": "user", "content": "question"}]


def test_serialize_is_compact_json():
    conv = make_conv()
    conv.add_user("你好")
    text = serialize_request_body(conv, stream=True)
    assert ", " not in text and ": " not in text
    assert "你好" in text
    assert json.loads(text)["stream"] is True
