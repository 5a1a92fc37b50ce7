"""Bot 注册表（写时复制快照）。

读多写少：路由器每条消息都会读取，重新配置时才会写入。
写入方在单一写锁下构造完整的新快照后整体替换，读取方直接拿当前快照引用，
因此读取永远不会阻塞，也不会看到只更新了一半的映射。
"""

import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from copilot_core.domain.chat import ChatChannel
from copilot_core.domain.exceptions import ValidationError
from copilot_core.domain.models import BackendConfig, BotConfig
from copilot_core.infrastructure.logging.logger import logger
from copilot_core.prompts import build_system_prompt
from copilot_core.providers import LanguageModel, build_language_model
from copilot_core.providers.registry import validate_backend_configs


@dataclass(frozen=True)
class Bot:
    """Bot 身份 + 由其后端配置构造出的 Facade。"""

    config: BotConfig
    llm: LanguageModel

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def user_id(self) -> str:
        return self.config.user_id

    @property
    def system_prompt(self) -> str:
        return build_system_prompt(self.config.custom_instructions)


class BotRegistry:
    def __init__(self, llm_factory: Callable[[BackendConfig], LanguageModel] = build_language_model):
        self._llm_factory = llm_factory
        self._write_lock = threading.Lock()
        self._snapshot: Tuple[Bot, ...] = ()

    @classmethod
    def from_settings(cls, cfg, llm_factory: Optional[Callable[[BackendConfig], LanguageModel]] = None) -> "BotRegistry":
        registry = cls(llm_factory or (lambda backend: build_language_model(backend, cfg)))
        registry.reconfigure(cfg.bot_configs())
        return registry

    def reconfigure(self, configs: Iterable[BotConfig]) -> None:
        configs = list(configs)
        self._validate(configs)
        with self._write_lock:
            new_snapshot = tuple(Bot(config=c, llm=self._llm_factory(c.backend)) for c in configs)
            self._snapshot = new_snapshot
        logger.info("bots.reconfigured", extra={"extra": {"bots": [c.name for c in configs]}})

    def bots(self) -> Tuple[Bot, ...]:
        return self._snapshot

    # ---- 查询 ----

    def is_any_bot(self, user_id: str) -> bool:
        return any(b.user_id == user_id for b in self._snapshot)

    def get_by_name(self, name: str) -> Optional[Bot]:
        for bot in self._snapshot:
            if bot.name.lower() == name.lower():
                return bot
        return None

    def get_bot_mentioned(self, text: str) -> Optional[Bot]:
        """返回消息中第一个被 @提及 的 Bot（按配置顺序）。"""

        for bot in self._snapshot:
            pattern = r"(?<![\w@.-])@" + re.escape(bot.name) + r"(?![\w-])"
            if re.search(pattern, text or "", flags=re.IGNORECASE):
                return bot
        return None

    def get_bot_for_dm_channel(self, channel: ChatChannel) -> Optional[Bot]:
        """私聊频道中另一方恰好是一个已配置 Bot 时返回该 Bot。"""

        if not channel.is_direct:
            return None
        members = set(channel.member_ids)
        matched = [b for b in self._snapshot if b.user_id in members]
        if len(matched) != 1:
            return None
        return matched[0]

    def default_bot(self, preferred_name: Optional[str] = None) -> Optional[Bot]:
        snapshot = self._snapshot
        if preferred_name:
            bot = self.get_by_name(preferred_name)
            if bot is not None:
                return bot
        return snapshot[0] if snapshot else None

    # ---- 校验 ----

    @staticmethod
    def _validate(configs: list) -> None:
        names = [c.name.lower() for c in configs]
        if len(set(names)) != len(names):
            raise ValidationError(code="DUPLICATE_BOT", message="bot names must be unique")
        user_ids = [c.user_id for c in configs]
        if len(set(user_ids)) != len(user_ids):
            raise ValidationError(code="DUPLICATE_BOT", message="bot user ids must be unique")
        validate_backend_configs({c.name: c.backend for c in configs})
