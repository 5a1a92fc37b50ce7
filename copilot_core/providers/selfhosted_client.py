"""自部署流式推理服务适配器。

该后端没有结构化的多轮对话 schema，采用两阶段协议：

1. POST {endpoint}/chat?model=...&init_prompt=...  创建会话，响应体是 JSON 字符串形式的会话 ID。
2. GET  {endpoint}/chat/{id}/question?prompt=...   订阅该会话的 SSE 事件流；
   "message" 事件的 data 作为片段转发，"close" 事件结束流。

整段对话在第二阶段之前被拼成一个以换行分隔的 prompt 字符串。
流结束（或被放弃）时尽力调用 DELETE {endpoint}/chat/{id} 释放服务端会话，失败只记日志。
"""

import json
from contextlib import ExitStack
from typing import Any, Dict, Iterator

import httpx

from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import DecodeError, NetworkError, StreamTruncated, ValidationError
from copilot_core.domain.models import Message
from copilot_core.infrastructure.logging.logger import logger
from copilot_core.prompts import EMOJI_SELECTOR
from copilot_core.providers.base import (
    STREAM_TRANSPORT_ERRORS,
    BaseProviderClient,
    normalize_label,
    raise_for_status,
)
from copilot_core.providers.sse import iter_sse_events
from copilot_core.providers.stream import StreamResult


def conversation_to_prompt(conversation: Conversation) -> str:
    return "".join(m.content + "\n" for m in conversation.as_ordered_messages())


class SelfHostedStreamingClient(BaseProviderClient):
    """自部署流式服务客户端实现。"""

    name = "selfhosted"

    # ---- 流式 ----

    def stream_conversation_reply(self, system_prompt: str, conversation: Conversation) -> StreamResult:
        self._require_conversation(conversation)
        chat_id = self._create_session(system_prompt)
        prompt = conversation_to_prompt(conversation)
        stack = ExitStack()
        stack.callback(self._delete_session, chat_id)
        try:
            client = stack.enter_context(httpx.Client(timeout=self._timeout, trust_env=False))
            resp = stack.enter_context(
                client.stream(
                    "GET",
                    f"{self._config.endpoint}/chat/{chat_id}/question",
                    params={"prompt": prompt},
                    headers={"Accept": "text/event-stream"},
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
        return StreamResult(self._iter_events(resp, stack), on_close=stack.close, source=self.name)

    def _iter_events(self, resp: Any, stack: ExitStack) -> Iterator[str]:
        with stack:
            try:
                for event in iter_sse_events(resp.iter_lines()):
                    if event.event == "close":
                        return
                    if event.event == "message" and event.data:
                        yield event.data
            except STREAM_TRANSPORT_ERRORS as exc:
                raise StreamTruncated(str(exc)) from exc

    # ---- 非流式 ----

    def generate_image(self, prompt: str) -> bytes:
        raise ValidationError(
            code="UNSUPPORTED_CAPABILITY",
            message="self-hosted streaming backend cannot generate images",
            backend=self.name,
        )

    def classify_short_label(self, text: str) -> str:
        chat_id = self._create_session(EMOJI_SELECTOR)
        try:
            data = self._request_json(
                "POST",
                f"/chat/{chat_id}/question",
                params={"prompt": conversation_to_prompt(Conversation.of(Message.user(text)))},
            )
        finally:
            self._delete_session(chat_id)
        if not isinstance(data, str):
            raise DecodeError(
                code="DECODE_ERROR",
                message="question response is not a JSON string",
                payload_type=type(data).__name__,
                payload_size=len(json.dumps(data)),
            )
        return normalize_label(data)

    # ---- 会话管理 ----

    def _create_session(self, system_prompt: str) -> str:
        params = {"model": self._config.model_name, "init_prompt": system_prompt}
        chat_id = self._request_json("POST", "/chat", params=params)
        if not isinstance(chat_id, str) or not chat_id:
            raise DecodeError(
                code="DECODE_ERROR",
                message="session response is not a JSON string id",
                payload_type=type(chat_id).__name__,
            )
        return chat_id

    def _delete_session(self, chat_id: str) -> None:
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                client.delete(f"{self._config.endpoint}/chat/{chat_id}")
        except httpx.HTTPError as exc:
            logger.warning(
                "selfhosted.session_delete_failed",
                extra={"extra": {"chat_id": chat_id, "error": str(exc)}},
            )

    def _request_json(self, method: str, path: str, *, params: Dict[str, str]) -> Any:
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.request(
                    method,
                    f"{self._config.endpoint}{path}",
                    params=params,
                    headers={"Content-Type": "application/json"},
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
