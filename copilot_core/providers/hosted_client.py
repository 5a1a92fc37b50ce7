"""托管 LLM 服务适配器。

本模块负责：

1. 流式对话：把 http(s) 地址换成 ws(s)，连接 {endpoint}/botQueryStream，
   发送一帧 JSON 请求 {"bot_description", "messages"}，然后循环读取入站帧。
   每个非空文本帧作为一个片段转发（服务端一帧一个词，因此每帧后补一个空格片段），
   空帧或 close 帧结束流。
2. 图片：POST {endpoint}/generateImage，响应体就是图片二进制。
3. 短标签：POST {endpoint}/selectEmoji，响应 JSON 的 response 字段。
"""

import json
from contextlib import ExitStack
from typing import Any, Dict, Iterator

import httpx
from websockets.exceptions import ConnectionClosedOK, WebSocketException
from websockets.sync.client import connect

from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import DecodeError, NetworkError, StreamTruncated
from copilot_core.providers.base import (
    BaseProviderClient,
    conversation_to_payload,
    decode_image,
    normalize_label,
    raise_for_status,
)
from copilot_core.providers.stream import StreamResult

WORD_SEPARATOR = " "


class HostedServiceClient(BaseProviderClient):
    """托管服务客户端实现。"""

    name = "hosted"

    # ---- 流式 ----

    def stream_conversation_reply(self, system_prompt: str, conversation: Conversation) -> StreamResult:
        self._require_conversation(conversation)
        request_frame = json.dumps(
            {"bot_description": system_prompt, "messages": conversation_to_payload(conversation)},
            ensure_ascii=False,
        )
        stack = ExitStack()
        try:
            ws = stack.enter_context(
                connect(
                    self._ws_url("/botQueryStream"),
                    additional_headers=self._ws_headers(),
                    open_timeout=self._timeout,
                    close_timeout=10,
                )
            )
            ws.send(request_frame)
        except (WebSocketException, OSError) as e:
            stack.close()
            raise NetworkError(code="NETWORK_ERROR", message=str(e), backend=self.name) from e
        return StreamResult(self._iter_frames(ws, stack), on_close=stack.close, source=self.name)

    def _iter_frames(self, ws: Any, stack: ExitStack) -> Iterator[str]:
        with stack:
            while True:
                try:
                    message = ws.recv(timeout=self._timeout)
                except ConnectionClosedOK:
                    return
                except (WebSocketException, OSError) as exc:
                    raise StreamTruncated(str(exc)) from exc
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                if message == "":
                    return
                yield message
                yield WORD_SEPARATOR

    # ---- 非流式 ----

    def generate_image(self, prompt: str) -> bytes:
        resp = self._post("/generateImage", {"prompt": prompt})
        return decode_image(resp.content)

    def classify_short_label(self, text: str) -> str:
        resp = self._post("/selectEmoji", {"prompt": text})
        try:
            data = resp.json()
            return normalize_label(data["response"])
        except (ValueError, KeyError, TypeError) as exc:
            raise DecodeError(
                code="DECODE_ERROR",
                message="emoji response is not a {\"response\": ...} object",
                payload_size=len(resp.content or b""),
            ) from exc

    # ---- 辅助方法 ----

    def _ws_url(self, path: str) -> str:
        url = self._config.endpoint.replace("http://", "ws://", 1)
        url = url.replace("https://", "wss://", 1)
        return url + path

    def _ws_headers(self) -> Dict[str, str]:
        if not self._config.credential:
            return {}
        return {"Authorization": f"Bearer {self._config.credential}"}

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._config.endpoint}{path}",
                    json=payload,
                    headers=self._auth_headers(),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), backend=self.name) from e
        raise_for_status(resp, self.name)
        return resp
