"""Task-scoped request models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TeamRequest:
    """User-supplied settings for a single 团队开通任务.

    Attributes:
        team_name: 团队显示名（命令的第一个参数）。
        description: 团队描述，用来让 LLM 推荐频道。
        requester_id: 发起命令的用户，会被加入团队和每个新频道。
        channel_id: 发起命令的频道，所有进度/结果都以仅自己可见消息发到这里。
    """

    team_name: str
    description: str
    requester_id: str
    channel_id: str

    def __post_init__(self) -> None:
        self.team_name = self.team_name.strip()
        self.description = self.description.strip()

    @property
    def team_url_name(self) -> str:
        """URL 友好的团队名：小写，空格换成连字符。"""

        return self.team_name.replace(" ", "-").lower()
