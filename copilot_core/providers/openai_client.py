"""OpenAI 兼容后端适配器。

接口风格与 OpenAI 相同，均使用 chat/completions 端点：
- URL: {endpoint}/chat/completions，流式时 stream=true，响应为 SSE 增量 JSON。
- 图片: {endpoint}/images/generations，response_format=b64_json。
- 认证: Authorization: Bearer <api_key>（本地部署的兼容服务可以不配置）。

本实现只依赖公共字段：model/messages/max_tokens/stream 以及 choices[].delta.content。
"""

import base64
import binascii
import json
from contextlib import ExitStack
from typing import Any, Dict, Iterator, Optional

import httpx

from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import DecodeError, NetworkError, StreamTruncated
from copilot_core.domain.models import Message
from copilot_core.prompts import EMOJI_SELECTOR
from copilot_core.providers.base import (
    STREAM_TRANSPORT_ERRORS,
    BaseProviderClient,
    conversation_to_payload,
    decode_image,
    normalize_label,
    raise_for_status,
)
from copilot_core.providers.stream import StreamResult

DEFAULT_MODEL = "gpt-3.5-turbo"
IMAGE_SIZE = "256x256"
LABEL_MAX_TOKENS = 25


class OpenAICompatibleClient(BaseProviderClient):
    """OpenAI 兼容后端客户端实现。"""

    name = "openaicompatible"

    # ---- 流式 ----

    def stream_conversation_reply(self, system_prompt: str, conversation: Conversation) -> StreamResult:
        self._require_conversation(conversation)
        payload = self._build_payload(system_prompt, conversation, stream=True)
        stack = ExitStack()
        try:
            client = stack.enter_context(httpx.Client(timeout=self._timeout, trust_env=False))
            resp = stack.enter_context(
                client.stream(
                    "POST",
                    f"{self._config.endpoint}/chat/completions",
                    json=payload,
                    headers=self._auth_headers(),
                )
            )
            if resp.status_code >= 400:
                resp.read()
                raise_for_status(resp, self.name)
        except httpx.RequestError as e:
            stack.close()
            raise NetworkError(code="NETWORK_ERROR", message=str(e), backend=self.name) from e
        except Exception:
            stack.close()
            raise
        return StreamResult(self._iter_deltas(resp, stack), on_close=stack.close, source=self.name)

    def _iter_deltas(self, resp: Any, stack: ExitStack) -> Iterator[str]:
        with stack:
            try:
                for line in resp.iter_lines():
                    if not line:
                        continue
                    data_str = line
                    if data_str.startswith("data:"):
                        data_str = data_str[5:].strip()
                    else:
                        data_str = data_str.strip()
                    if not data_str:
                        continue
                    if data_str == "[DONE]":
                        return
                    try:
                        chunk = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
                    content = self._delta_content(chunk)
                    if content:
                        yield content
            except STREAM_TRANSPORT_ERRORS as exc:
                raise StreamTruncated(str(exc)) from exc

    # ---- 非流式 ----

    def generate_image(self, prompt: str) -> bytes:
        data = self._post_json(
            "/images/generations",
            {"prompt": prompt, "size": IMAGE_SIZE, "response_format": "b64_json", "n": 1},
        )
        try:
            encoded = data["data"][0]["b64_json"]
            raw = base64.b64decode(encoded, validate=True)
        except (KeyError, IndexError, TypeError) as exc:
            raise DecodeError(
                code="DECODE_ERROR",
                message="image response has no b64_json field",
                payload_size=len(json.dumps(data)),
                payload_type=type(data).__name__,
            ) from exc
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(
                code="DECODE_ERROR",
                message=f"image payload is not valid base64: {exc}",
                payload_size=len(encoded),
            ) from exc
        return decode_image(raw)

    def classify_short_label(self, text: str) -> str:
        conversation = Conversation.of(Message.user(text))
        payload = self._build_payload(EMOJI_SELECTOR, conversation, stream=False, max_tokens=LABEL_MAX_TOKENS)
        data = self._post_json("/chat/completions", payload)
        choices = (data.get("choices") or []) if isinstance(data, dict) else []
        if not choices:
            raise DecodeError(
                code="DECODE_ERROR",
                message="completion response has no choices",
                payload_size=len(json.dumps(data)),
            )
        message = choices[0].get("message") or {}
        return normalize_label(message.get("content") or "")

    # ---- 辅助方法 ----

    def _build_payload(
        self,
        system_prompt: str,
        conversation: Conversation,
        *,
        stream: bool,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(conversation_to_payload(conversation))
        payload: Dict[str, Any] = {
            "model": self._config.model_name or DEFAULT_MODEL,
            "messages": messages,
            "stream": stream,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        return payload

    @staticmethod
    def _delta_content(chunk: Dict[str, Any]) -> str:
        choices = chunk.get("choices") or []
        if not choices:
            return ""
        delta = choices[0].get("delta") or {}
        return delta.get("content") or ""

    def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
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
        try:
            return resp.json()
        except ValueError as exc:
            raise DecodeError(
                code="DECODE_ERROR",
                message="response is not valid JSON",
                payload_size=len(resp.content or b""),
            ) from exc
