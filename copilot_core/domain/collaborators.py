"""外部协作方接口。

宿主平台的持久化、频道/团队/用户管理、使用限制策略都不在本项目内实现，
这里只声明本项目依赖的最小接口，具体实现由宿主注入（测试中使用内存假实现）。
"""

from typing import List, Optional, Protocol

from .chat import ChatChannel, ChatPost, ChatUser, UsageDecision


class ThreadHistory(Protocol):
    def get_thread_history(self, thread_id: str) -> List[ChatPost]:
        """返回线程内的全部消息（最早在前，包含根消息）。"""
        ...


class ChatDirectory(Protocol):
    def get_user(self, user_id: str) -> ChatUser:
        ...

    def get_channel(self, channel_id: str) -> ChatChannel:
        ...


class ChatSurface(Protocol):
    def post(self, channel_id: str, text: str, *, root_id: str = "", user_id: str = "") -> str:
        """发布一条消息并返回 post_id。"""
        ...

    def update_post(self, post_id: str, text: str) -> None:
        """用完整文本覆盖已发布的消息（流式回帖使用）。"""
        ...

    def post_ephemeral(self, user_id: str, channel_id: str, text: str) -> None:
        """仅对单个用户可见的消息。"""
        ...

    def add_reaction(self, post_id: str, emoji_name: str, *, user_id: str = "") -> None:
        ...


class UsageRestrictions(Protocol):
    def check_allowed(self, user_id: str, channel_id: Optional[str]) -> UsageDecision:
        """channel_id 为 None 时只检查用户本身（私聊场景）。"""
        ...


class TeamProvisioner(Protocol):
    """团队/频道开通所需的副作用接口，失败时抛出异常。"""

    def create_team(self, name: str, display_name: str) -> str:
        ...

    def add_team_member(self, team_id: str, user_id: str) -> None:
        ...

    def create_channel(
        self,
        team_id: str,
        *,
        name: str,
        display_name: str,
        purpose: str,
        header: str,
        private: bool,
    ) -> str:
        ...

    def add_channel_member(self, channel_id: str, user_id: str) -> None:
        ...
