"""频道推荐：调用一次 Facade，把返回的 JSON 数组解析成 ChannelSuggestion 列表。"""

from __future__ import annotations

import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import DecodeError
from copilot_core.domain.models import Message
from copilot_core.infrastructure.logging.logger import logger
from copilot_core.prompts import CHANNEL_SUGGESTIONS
from copilot_core.providers.base import LanguageModel

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ChannelSuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    purpose: str = ""
    header: str = ""
    private: bool = False
    display_name: str = Field(default="", alias="displayName")

    @property
    def effective_display_name(self) -> str:
        return self.display_name or self.name


_SUGGESTIONS_ADAPTER = TypeAdapter(List[ChannelSuggestion])


def parse_channel_suggestions(raw: str) -> List[ChannelSuggestion]:
    """解析 LLM 返回的频道推荐，允许外面包一层 ```json 代码块。"""

    text = (raw or "").strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)
    try:
        return _SUGGESTIONS_ADAPTER.validate_json(text)
    except PydanticValidationError as exc:
        raise DecodeError(
            code="INVALID_SUGGESTIONS",
            message=f"failed to parse channel suggestions: {exc.errors()[0].get('msg', 'invalid payload')}",
            payload_size=len(text),
            payload_preview=text[:120],
        ) from exc


def suggest_channels(llm: LanguageModel, description: str) -> List[ChannelSuggestion]:
    conversation = Conversation.of(Message.user(CHANNEL_SUGGESTIONS.format(description=description)))
    raw = llm.complete("", conversation)
    suggestions = parse_channel_suggestions(raw)
    logger.info("team.suggestions", extra={"extra": {"count": len(suggestions)}})
    return suggestions
