"""聊天消息路由：准入检查、Bot 选择、流式回帖。"""

from copilot_core.routing.router import MessageRouter, RouteResult, RouteStatus
from copilot_core.routing.streaming import PostStreamer

__all__ = ["MessageRouter", "RouteResult", "RouteStatus", "PostStreamer"]
