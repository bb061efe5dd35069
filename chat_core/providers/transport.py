"""HTTP 传输层。

对上层只暴露三种能力：
- post: 发送一次请求，拿到完整响应体；
- get: 同上，用于无请求体的查询接口；
- stream: 发送一次请求，按到达顺序把原始字节块逐块交给回调。

连接、TLS、超时都交给 httpx 处理，这里只负责把 httpx 的异常
归一成 NetworkError（响应开始前）/ StreamError（响应开始后）。
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import NetworkError, StreamError

# URL 非法、凭据含非 ASCII 字符时请求根本发不出去，按传输失败处理
_SEND_ERRORS = (httpx.RequestError, httpx.InvalidURL, UnicodeEncodeError)

# 返回 False 表示不再需要后续数据
ChunkCallback = Callable[[bytes], bool]


@dataclass
class TransportResponse:
    status_code: int
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def auth_headers(api_key: str, json_body: bool = True) -> Dict[str, str]:
    headers = {"Authorization": f"Bearer {api_key}"}
    if json_body:
        headers["Content-Type"] = "application/json"
    return headers


class HttpTransport:
    """基于 httpx 的同步传输实现，每次调用独立创建连接。"""

    def __init__(self, timeout: Optional[float] = None):
        self._timeout = timeout if timeout is not None else settings.http_timeout

    def post(self, url: str, api_key: str, body: str) -> TransportResponse:
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(url, content=body.encode("utf-8"), headers=auth_headers(api_key))
        except _SEND_ERRORS as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, url=url)
        return TransportResponse(status_code=resp.status_code, body=resp.content)

    def get(self, url: str, api_key: str) -> TransportResponse:
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.get(url, headers=auth_headers(api_key, json_body=False))
        except _SEND_ERRORS as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, url=url)
        return TransportResponse(status_code=resp.status_code, body=resp.content)

    def stream(self, url: str, api_key: str, body: str, on_chunk: ChunkCallback) -> TransportResponse:
        """流式发送请求。

        状态码 < 400 时逐块回调 on_chunk，返回的 TransportResponse.body 为空；
        状态码 >= 400 时不回调，直接读完整个响应体返回，交给调用方解析错误。
        """

        started = False
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    url,
                    content=body.encode("utf-8"),
                    headers=auth_headers(api_key),
                ) as resp:
                    started = True
                    if resp.status_code >= 400:
                        return TransportResponse(status_code=resp.status_code, body=resp.read())
                    for chunk in resp.iter_bytes():
                        if not chunk:
                            continue
                        if on_chunk(chunk) is False:
                            break
                    return TransportResponse(status_code=resp.status_code)
        except _SEND_ERRORS as e:
            message = str(e) or type(e).__name__
            if started:
                raise StreamError(code="STREAM_ERROR", message=message, url=url)
            raise NetworkError(code="NETWORK_ERROR", message=message, url=url)
