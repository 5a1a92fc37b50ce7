"""已配置 Bot 的进程级注册表。"""

from copilot_core.bots.registry import Bot, BotRegistry

__all__ = ["Bot", "BotRegistry"]
