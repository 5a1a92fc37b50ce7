"""LanguageModel 的横切包装器。

包装器本身也实现 LanguageModel 协议，可以任意叠加，调用方感知不到背后是哪种后端：

- TruncationWrapper: 对话历史超过字符预算时，从最早的消息开始丢弃，
  保留最近一条消息以及开头的 system 消息。
- TraceWrapper: 把每一对请求/响应镜像到日志，不改变行为（流式响应在流结束时记录）。
"""

import logging
from typing import Any, Dict, Iterator, List, Optional
from uuid import uuid4

from copilot_core.config.settings import settings
from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import StreamTruncated
from copilot_core.domain.models import Message, Role
from copilot_core.infrastructure.logging.logger import logger, redact
from copilot_core.providers.base import LanguageModel, conversation_to_payload, normalize_label
from copilot_core.providers.stream import StreamResult


def truncate_conversation(conversation: Conversation, max_chars: int) -> Conversation:
    """返回不超过 max_chars 的对话后缀（必要时保留开头的 system 消息）。

    最近的一条消息总会保留，即使它本身已经超过预算。
    """

    if conversation.char_size() <= max_chars:
        return conversation
    messages: List[Message] = list(conversation.as_ordered_messages())
    lead = messages[:1] if len(messages) > 1 and messages[0].role is Role.SYSTEM else []
    rest = messages[len(lead):]
    size = sum(len(m.content) for m in lead + rest)
    while len(rest) > 1 and size > max_chars:
        size -= len(rest.pop(0).content)
    return Conversation.from_messages(lead + rest)


def truncate_text(text: str, max_chars: int) -> str:
    """按整行从开头丢弃，保留最新的内容；只剩一行仍超出时保留它的末尾。"""

    if len(text) <= max_chars:
        return text
    lines = text.split("\n")
    size = len(text)
    while len(lines) > 1 and size > max_chars:
        size -= len(lines.pop(0)) + 1
    kept = "\n".join(lines)
    return kept if len(kept) <= max_chars else kept[-max_chars:]


class TruncationWrapper:
    def __init__(self, llm: LanguageModel, max_chars: int):
        self._llm = llm
        self._max_chars = max_chars

    @property
    def name(self) -> str:
        return self._llm.name

    def stream_conversation_reply(self, system_prompt: str, conversation: Conversation) -> StreamResult:
        return self._llm.stream_conversation_reply(system_prompt, self._truncate(conversation))

    def summarize_text(self, text: str) -> StreamResult:
        return self._llm.summarize_text(truncate_text(text, self._max_chars))

    def generate_image(self, prompt: str) -> bytes:
        return self._llm.generate_image(prompt)

    def classify_short_label(self, text: str) -> str:
        return normalize_label(self._llm.classify_short_label(text[: self._max_chars]))

    def complete(self, system_prompt: str, conversation: Conversation) -> str:
        return self._llm.complete(system_prompt, self._truncate(conversation))

    def _truncate(self, conversation: Conversation) -> Conversation:
        truncated = truncate_conversation(conversation, self._max_chars)
        if len(truncated) != len(conversation):
            logger.info(
                "llm.history_truncated",
                extra={"extra": {
                    "backend": self.name,
                    "max_chars": self._max_chars,
                    "dropped": len(conversation) - len(truncated),
                }},
            )
        return truncated


TRACE_CONTENT_FIELDS = ("system_prompt", "text", "prompt", "response")


class TraceWrapper:
    def __init__(self, llm: LanguageModel, log: logging.Logger = logger, *, redact_content: Optional[bool] = None):
        self._llm = llm
        self._log = log
        self._redact = settings.log_redact_content if redact_content is None else redact_content

    @property
    def name(self) -> str:
        return self._llm.name

    def stream_conversation_reply(self, system_prompt: str, conversation: Conversation) -> StreamResult:
        request_id = self._request("stream_conversation_reply", system_prompt=system_prompt,
                                   messages=conversation_to_payload(conversation))
        return self._mirror(self._llm.stream_conversation_reply(system_prompt, conversation), request_id)

    def summarize_text(self, text: str) -> StreamResult:
        request_id = self._request("summarize_text", text=text)
        return self._mirror(self._llm.summarize_text(text), request_id)

    def generate_image(self, prompt: str) -> bytes:
        request_id = self._request("generate_image", prompt=prompt)
        image = self._llm.generate_image(prompt)
        self._response(request_id, image_bytes=len(image))
        return image

    def classify_short_label(self, text: str) -> str:
        request_id = self._request("classify_short_label", text=text)
        label = self._llm.classify_short_label(text)
        self._response(request_id, label=label)
        return label

    def complete(self, system_prompt: str, conversation: Conversation) -> str:
        request_id = self._request("complete", system_prompt=system_prompt,
                                   messages=conversation_to_payload(conversation))
        result = self._llm.complete(system_prompt, conversation)
        self._response(request_id, response=result)
        return result

    # ---- 辅助方法 ----

    def _mirror(self, inner: StreamResult, request_id: str) -> StreamResult:
        return StreamResult(self._tee(inner, request_id), on_close=inner.close, source=self.name)

    def _tee(self, inner: StreamResult, request_id: str) -> Iterator[str]:
        parts: List[str] = []
        try:
            for fragment in inner.drain():
                parts.append(fragment)
                yield fragment
            if inner.truncated:
                raise StreamTruncated("upstream stream ended early")
        finally:
            self._response(request_id, response="".join(parts), fragments=len(parts), truncated=inner.truncated)

    def _request(self, operation: str, **fields) -> str:
        request_id = f"llm-{uuid4().hex[:12]}"
        self._log.info(
            "llm.trace.request",
            extra={"extra": {"request_id": request_id, "backend": self.name, "operation": operation, **self._scrub(fields)}},
        )
        return request_id

    def _response(self, request_id: str, **fields) -> None:
        self._log.info(
            "llm.trace.response",
            extra={"extra": {"request_id": request_id, "backend": self.name, **self._scrub(fields)}},
        )

    def _scrub(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not self._redact:
            return fields
        scrubbed = dict(fields)
        for key in TRACE_CONTENT_FIELDS:
            if isinstance(scrubbed.get(key), str):
                scrubbed[key] = redact(scrubbed[key])
        if "messages" in scrubbed:
            scrubbed["messages"] = [{**m, "content": redact(m["content"])} for m in scrubbed["messages"]]
        return scrubbed
