import json
import logging

import httpx

from chat_core.domain.conversation import Conversation
from chat_core.domain.models import ErrorKind
from chat_core.providers import chat
from chat_core.providers.completion_client import CompletionClient


def make_conv():
    conv = Conversation(api_key="sk-test", model="gpt-4o-mini")
    conv.set_streaming(False)
    conv.add_user("hi")
    return conv


def patch_client(monkeypatch, status_code=200, body=b"", captured=None, error=None):
    class Resp:
        def __init__(self):
            self.status_code = status_code
            self.content = body

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, content=None, headers=None, **_):
            if error is not None:
                raise error
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json.loads(content)
                captured["headers"] = headers
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)


def ok_body(content="ok", usage=None):
    data = {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}
    if usage is not None:
        data["usage"] = usage
    return json.dumps(data).encode("utf-8")


def test_complete_success(monkeypatch):
    captured = {}
    patch_client(
        monkeypatch,
        body=ok_body("Hello!", {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}),
        captured=captured,
    )
    conv = make_conv()
    reply = CompletionClient().complete(conv)
    assert reply == "Hello!"
    assert conv.last_reply == "Hello!"
    assert conv.last_code() is ErrorKind.OK
    assert (conv.usage.prompt_tokens, conv.usage.completion_tokens, conv.usage.total_tokens) == (3, 2, 5)
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-test"
    assert captured["headers"]["Content-Type"] == "application/json"
    assert "stream" not in captured["payload"]
    assert captured["payload"]["messages"] == [{"role": "user", "content": "hi"}]


def test_usage_fields_update_independently(monkeypatch):
    conv = make_conv()
    conv.usage.update_from({"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30})
    patch_client(monkeypatch, body=ok_body("ok", {"completion_tokens": 7}))
    CompletionClient().complete(conv)
    assert (conv.usage.prompt_tokens, conv.usage.completion_tokens, conv.usage.total_tokens) == (10, 7, 30)


def test_transport_failure(monkeypatch):
    patch_client(monkeypatch, error=httpx.ConnectError("connection refused"))
    conv = make_conv()
    conv.last_reply = "previous"
    assert CompletionClient().complete(conv) is None
    assert conv.last_code() is ErrorKind.TRANSPORT_ERROR
    assert "connection refused" in conv.last_error()
    assert conv.last_reply == "previous"


def test_invalid_json(monkeypatch):
    patch_client(monkeypatch, body=b"<html>bad gateway</html>", status_code=502)
    conv = make_conv()
    assert CompletionClient().complete(conv) is None
    assert conv.last_code() is ErrorKind.PARSE_ERROR
    assert conv.last_http_status() == 502


def test_api_error_records_status(monkeypatch):
    body = json.dumps({"error": {"message": "Rate limit reached", "type": "requests"}}).encode()
    patch_client(monkeypatch, body=body, status_code=429)
    conv = make_conv()
    assert CompletionClient().complete(conv) is None
    assert conv.last_code() is ErrorKind.API_ERROR
    assert conv.last_error() == "Rate limit reached"
    assert conv.last_http_status() == 429


def test_api_error_without_message(monkeypatch):
    patch_client(monkeypatch, body=b'{"error": {}}', status_code=500)
    conv = make_conv()
    CompletionClient().complete(conv)
    assert conv.last_code() is ErrorKind.API_ERROR
    assert conv.last_error() == "API returned error"


def test_missing_choices_or_content(monkeypatch):
    patch_client(monkeypatch, body=b'{"choices": []}')
    conv = make_conv()
    assert CompletionClient().complete(conv) is None
    assert conv.last_code() is ErrorKind.PARSE_ERROR
    assert conv.last_error() == "No choices in response"

    patch_client(monkeypatch, body=b'{"choices": [{"message": {"content": null}}]}')
    assert CompletionClient().complete(conv) is None
    assert conv.last_error() == "No content in response message"


def test_error_cleared_on_next_success(monkeypatch):
    conv = make_conv()
    patch_client(monkeypatch, body=b"{}")
    CompletionClient().complete(conv)
    assert conv.last_code() is ErrorKind.PARSE_ERROR
    patch_client(monkeypatch, body=ok_body("fine"))
    assert CompletionClient().complete(conv) == "fine"
    assert conv.last_code() is ErrorKind.OK
    assert conv.last_error() == ""


def test_chat_dispatches_to_buffered_mode(monkeypatch):
    patch_client(monkeypatch, body=ok_body("buffered"))
    conv = make_conv()
    assert chat(conv) == "buffered"


def test_unsendable_url_is_transport_error(monkeypatch):
    patch_client(monkeypatch, error=httpx.InvalidURL("Invalid port: ':1'"))
    conv = make_conv()
    assert CompletionClient().complete(conv) is None
    assert conv.last_code() is ErrorKind.TRANSPORT_ERROR
    assert "Invalid port" in conv.last_error()


def test_non_ascii_credential_is_transport_error():
    # 请求头编码在连接前失败，不会访问网络
    conv = Conversation(api_key="sk-tést")
    conv.set_streaming(False)
    conv.set_base_url("http://127.0.0.1:9")
    conv.add_user("hi")
    assert CompletionClient().complete(conv) is None
    assert conv.last_code() is ErrorKind.TRANSPORT_ERROR


def test_failed_complete_writes_nothing_to_stderr(monkeypatch, capsys):
    assert any(isinstance(h, logging.NullHandler) for h in logging.getLogger("chat_core").handlers)
    patch_client(monkeypatch, error=httpx.ConnectError("Connection refused"))
    conv = make_conv()
    assert CompletionClient().complete(conv) is None
    assert conv.last_code() is ErrorKind.TRANSPORT_ERROR
    assert capsys.readouterr().err == ""
