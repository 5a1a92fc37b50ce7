"""Copilot Core 顶层包。

该包提供聊天 AI 助手的核心实现，
包括配置加载、领域模型、多后端 LLM 适配与流式结果、
Bot 注册表、消息路由以及团队开通等后台任务能力。
"""

from copilot_core.api.service import CopilotService

__all__ = ["CopilotService"]
