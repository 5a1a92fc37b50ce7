"""后端适配器抽象接口。

上层（路由器、后台任务）不直接依赖具体后端的线协议，而是依赖 LanguageModel 协议：

- 每种后端实现一个 Client（HostedServiceClient / OpenAICompatibleClient /
  SelfHostedStreamingClient），全部实现四项能力。
- 负责：将 Conversation 转成具体的请求格式，并把响应解析为文本片段流、图片字节或短标签。

这样可以在不改路由代码的前提下接入更多后端，也可以叠加截断、追踪等包装器。
"""

from io import BytesIO
from typing import Any, Dict, List, Protocol

import httpx
from PIL import Image

from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import ApiError, DecodeError, RateLimitError, ValidationError
from copilot_core.domain.models import BackendConfig, Message
from copilot_core.prompts import SUMMARIZE_THREAD
from copilot_core.providers.stream import StreamResult

LABEL_PUNCTUATION = ":"

# 流式读取过程中视为“传输中断”的异常
STREAM_TRANSPORT_ERRORS = (httpx.HTTPError, httpx.StreamError, OSError)


class LanguageModel(Protocol):
    """统一能力集协议。

    - stream_conversation_reply: 流式对话回复，连接失败立即抛出。
    - summarize_text: 固定系统提示词 + 单条 user 消息的流式回复。
    - generate_image: 同步生成图片，返回校验过的图片字节。
    - classify_short_label: 同步短输出分类（如 emoji 名），已去除空白与冒号。
    - complete: 非流式对话，返回完整文本。
    """

    name: str

    def stream_conversation_reply(self, system_prompt: str, conversation: Conversation) -> StreamResult:
        ...

    def summarize_text(self, text: str) -> StreamResult:
        ...

    def generate_image(self, prompt: str) -> bytes:
        ...

    def classify_short_label(self, text: str) -> str:
        ...

    def complete(self, system_prompt: str, conversation: Conversation) -> str:
        ...


class BaseProviderClient:
    """具体适配器的公共部分：配置持有、请求前校验以及由流式能力派生的便捷方法。"""

    name = "base"

    def __init__(self, config: BackendConfig, *, timeout: float = 600.0):
        self._config = config
        self._timeout = timeout

    @property
    def config(self) -> BackendConfig:
        return self._config

    def stream_conversation_reply(self, system_prompt: str, conversation: Conversation) -> StreamResult:
        raise NotImplementedError

    def summarize_text(self, text: str) -> StreamResult:
        return self.stream_conversation_reply(SUMMARIZE_THREAD, Conversation.of(Message.user(text)))

    def complete(self, system_prompt: str, conversation: Conversation) -> str:
        return self.stream_conversation_reply(system_prompt, conversation).collect_all()

    # ---- 辅助方法 ----

    def _require_conversation(self, conversation: Conversation) -> None:
        if conversation.is_empty():
            raise ValidationError(code="INVALID_CONVERSATION", message="conversation must not be empty")

    def _auth_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.credential:
            headers["Authorization"] = f"Bearer {self._config.credential}"
        return headers


def conversation_to_payload(conversation: Conversation) -> List[Dict[str, str]]:
    """role→role、content→content 的一对一映射，不合并不重排。"""

    return [{"role": m.role.value, "content": m.content} for m in conversation.as_ordered_messages()]


def normalize_label(raw: str) -> str:
    """去掉首尾空白和固定标点（如 " :tada: " -> "tada"）。"""

    return (raw or "").strip().strip(LABEL_PUNCTUATION)


def raise_for_status(resp: Any, backend: str) -> None:
    """把 HTTP 错误状态映射为业务异常（调用前需保证 resp.text 可读）。"""

    if resp.status_code == 429:
        raise RateLimitError(code="RATE_LIMIT", message=f"{backend} rate limit", http_status=429)
    if resp.status_code >= 400:
        raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code, backend=backend)


def decode_image(data: bytes) -> bytes:
    """校验图片字节是否为合法图片，合法则原样返回。"""

    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(
            code="DECODE_ERROR",
            message=f"malformed image payload: {exc}",
            payload_size=len(data),
            payload_preview=data[:16].hex(),
        ) from exc
    return data

