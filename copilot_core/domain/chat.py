"""宿主聊天平台的数据结构（只读视图）。

这些结构由外部协作方提供，本项目只消费，不负责持久化。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

# Post.props 中影响准入判断的字段
ACTIVATE_AI_PROP = "activate_ai"
FROM_WEBHOOK_PROP = "from_webhook"
FROM_BOT_PROP = "from_bot"
FROM_PLUGIN_PROP = "from_plugin"
WRANGLER_PROP = "wrangler"

CHANNEL_OPEN = "O"
CHANNEL_PRIVATE = "P"
CHANNEL_DIRECT = "D"
CHANNEL_GROUP = "G"


@dataclass(frozen=True)
class ChatPost:
    """一条聊天消息（入站事件或线程历史中的一条）。"""

    id: str
    user_id: str
    channel_id: str
    message: str
    root_id: str = ""
    remote_id: Optional[str] = None
    props: Dict[str, Any] = field(default_factory=dict)

    def get_prop(self, key: str) -> Any:
        return self.props.get(key)

    @property
    def thread_id(self) -> str:
        return self.root_id or self.id


@dataclass(frozen=True)
class ChatUser:
    id: str
    username: str
    is_bot: bool = False


@dataclass(frozen=True)
class ChatChannel:
    id: str
    type: str = CHANNEL_OPEN
    member_ids: Tuple[str, ...] = ()

    @property
    def is_direct(self) -> bool:
        return self.type == CHANNEL_DIRECT


@dataclass(frozen=True)
class UsageDecision:
    """使用限制检查结果。"""

    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "UsageDecision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "UsageDecision":
        return cls(False, reason)
