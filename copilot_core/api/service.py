"""对外 API 服务模块。

宿主平台通过 CopilotService 把入站事件交给本项目：新消息、斜杠命令、
线程总结和表情选择。宿主侧能力（发消息、查用户、开通团队等）以构造参数注入。
"""

from typing import List, Optional

from copilot_core.bots.registry import Bot, BotRegistry
from copilot_core.config.settings import Settings, settings
from copilot_core.domain.chat import ChatPost
from copilot_core.domain.collaborators import (
    ChatDirectory,
    ChatSurface,
    TeamProvisioner,
    ThreadHistory,
    UsageRestrictions,
)
from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import BusinessError
from copilot_core.domain.models import Message
from copilot_core.infrastructure.logging.logger import logger
from copilot_core.prompts import ANSWER_THREAD_QUESTION
from copilot_core.routing.router import USAGE_DENIED_TEXT, MessageRouter, RouteResult
from copilot_core.routing.streaming import PostStreamer
from copilot_core.tasks.config import TeamRequest
from copilot_core.tasks.task_runner import BackgroundTaskRunner
from copilot_core.tasks.team_creation import start_team_creation

INVALID_COMMAND_TEXT = "Invalid command. Use `/ai help` to see available commands."
UNKNOWN_COMMAND_TEXT = "Unknown command. Use `/ai help` to see available commands."
CREATE_TEAM_USAGE_TEXT = (
    "Please provide a team name and description. Usage: /ai create-team [team-name] [description]"
)
NO_BOT_TEXT = "No AI service configured. Please configure at least one bot in the plugin settings."


class CopilotService:
    def __init__(
        self,
        bots: BotRegistry,
        directory: ChatDirectory,
        history: ThreadHistory,
        surface: ChatSurface,
        usage: UsageRestrictions,
        provisioner: TeamProvisioner,
        *,
        cfg: Optional[Settings] = None,
        runner: Optional[BackgroundTaskRunner] = None,
    ):
        self._cfg = cfg or settings
        self._bots = bots
        self._directory = directory
        self._history = history
        self._surface = surface
        self._usage = usage
        self._provisioner = provisioner
        self._streamer = PostStreamer(
            surface,
            flush_chars=self._cfg.stream_flush_chars,
            flush_interval=self._cfg.stream_flush_interval,
        )
        self._router = MessageRouter(bots, directory, history, surface, usage, self._streamer)
        self._runner = runner or BackgroundTaskRunner(surface)

    @classmethod
    def from_settings(
        cls,
        directory: ChatDirectory,
        history: ThreadHistory,
        surface: ChatSurface,
        usage: UsageRestrictions,
        provisioner: TeamProvisioner,
        cfg: Optional[Settings] = None,
    ) -> "CopilotService":
        cfg = cfg or settings
        return cls(BotRegistry.from_settings(cfg), directory, history, surface, usage, provisioner, cfg=cfg)

    @property
    def runner(self) -> BackgroundTaskRunner:
        return self._runner

    def message_has_been_posted(self, post: ChatPost) -> RouteResult:
        """处理一条新消息。

        Raises:
            各种 domain.exceptions 中定义的异常（网络、解析等真实错误）
        """
        try:
            return self._router.handle_post(post)
        except BusinessError as e:
            logger.error(f"Message handling failed: {e.message}", extra={"extra": {
                "post_id": post.id,
                "code": e.code,
                "error": str(e),
            }})
            raise

    def execute_command(self, user_id: str, channel_id: str, command: str) -> str:
        """执行 `/ai ...` 斜杠命令，返回给用户的仅自己可见回复文本。"""

        split = command.split()
        if len(split) < 2:
            return INVALID_COMMAND_TEXT
        if split[1] == "create-team":
            return self._execute_create_team(user_id, channel_id, split[2:])
        return UNKNOWN_COMMAND_TEXT

    def summarize_thread(self, thread_id: str, channel_id: str, user_id: str) -> Optional[str]:
        """总结线程并把结果流式发布到该线程，返回回复的 post_id；被使用限制拒绝时返回 None。"""

        decision = self._usage.check_allowed(user_id, channel_id)
        if not decision.allowed:
            self._surface.post_ephemeral(user_id, channel_id, decision.reason or USAGE_DENIED_TEXT)
            return None
        bot = self._pick_bot(channel_id)
        if bot is None:
            self._surface.post_ephemeral(user_id, channel_id, NO_BOT_TEXT)
            return None
        text = self._format_thread(self._history.get_thread_history(thread_id))
        stream = bot.llm.summarize_text(text)
        return self._streamer.stream_to_post(stream, channel_id, root_id=thread_id, user_id=bot.user_id)

    def answer_thread_question(self, thread_id: str, channel_id: str, user_id: str, question: str) -> Optional[str]:
        """基于线程内容回答问题，回复发布在该线程中。"""

        decision = self._usage.check_allowed(user_id, channel_id)
        if not decision.allowed:
            self._surface.post_ephemeral(user_id, channel_id, decision.reason or USAGE_DENIED_TEXT)
            return None
        bot = self._pick_bot(channel_id)
        if bot is None:
            self._surface.post_ephemeral(user_id, channel_id, NO_BOT_TEXT)
            return None
        conversation = Conversation.of(
            Message.user(self._format_thread(self._history.get_thread_history(thread_id))),
            Message.user(question),
        )
        stream = bot.llm.stream_conversation_reply(ANSWER_THREAD_QUESTION, conversation)
        return self._streamer.stream_to_post(stream, channel_id, root_id=thread_id, user_id=bot.user_id)

    def select_reaction(self, post: ChatPost) -> Optional[str]:
        """为消息挑一个表情并添加回应，返回表情名。"""

        bot = self._pick_bot(post.channel_id)
        if bot is None:
            return None
        label = bot.llm.classify_short_label(post.message)
        if not label:
            return None
        self._surface.add_reaction(post.id, label, user_id=bot.user_id)
        return label

    # ---- 内部实现 ----

    def _execute_create_team(self, user_id: str, channel_id: str, arguments: List[str]) -> str:
        if len(arguments) < 2:
            return CREATE_TEAM_USAGE_TEXT
        bot = self._pick_bot(channel_id)
        if bot is None:
            return NO_BOT_TEXT
        request = TeamRequest(
            team_name=arguments[0],
            description=" ".join(arguments[1:]),
            requester_id=user_id,
            channel_id=channel_id,
        )
        start_team_creation(self._runner, request, bot.llm, self._provisioner)
        return f"Starting team creation for '{request.team_name}'... I'll notify you when it's ready!"

    def _pick_bot(self, channel_id: str) -> Optional[Bot]:
        bot = self._bots.get_bot_for_dm_channel(self._directory.get_channel(channel_id))
        return bot or self._bots.default_bot(self._cfg.default_bot)

    def _format_thread(self, posts: List[ChatPost]) -> str:
        lines = []
        for item in posts:
            username = self._directory.get_user(item.user_id).username
            lines.append(f"{username}: {item.message}")
        return "\n".join(lines)
