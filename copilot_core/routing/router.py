"""入站聊天消息的路由/分发。

每条入站消息按固定顺序判断，命中即停止：

1. 本系统自己的 Bot 发的消息 → 拒绝。
2. 来自远程联邦链接的消息 → 拒绝。
3. 带 "wrangler" 标记（自动化搬运，不处理）的消息 → 拒绝。
4. 其他插件/Bot 发的消息 → 拒绝，除非显式带 activate_ai。
5. 入站 webhook 消息 → 拒绝。
6. 分类：@提及 已配置 Bot → Mention；与恰好一个 Bot 的私聊 → DirectMessageContinuation；否则 Ignore。
7. 使用限制检查，拒绝时给用户发一条仅自己可见的提示。
8. 构造 Conversation 并调用 Bot 的 stream_conversation_reply。
9. 把流式结果增量回帖。

1-5 的拒绝和 Ignore 都不是错误，只记 debug 日志；网络/解析等真实错误向上抛出。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from copilot_core.bots.registry import Bot, BotRegistry
from copilot_core.domain.chat import (
    ACTIVATE_AI_PROP,
    FROM_BOT_PROP,
    FROM_PLUGIN_PROP,
    FROM_WEBHOOK_PROP,
    WRANGLER_PROP,
    ChatChannel,
    ChatPost,
    ChatUser,
)
from copilot_core.domain.collaborators import ChatDirectory, ChatSurface, ThreadHistory, UsageRestrictions
from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import NoResponse, UsageDeniedError
from copilot_core.domain.models import Message, RoutingDecision, RoutingReason
from copilot_core.infrastructure.logging.logger import logger
from copilot_core.routing.streaming import PostStreamer

USAGE_DENIED_TEXT = "You are not allowed to use the AI assistant here."


class RouteStatus(str, Enum):
    REJECTED = "rejected"
    IGNORED = "ignored"
    DENIED = "denied"
    RESPONDED = "responded"


@dataclass
class RouteResult:
    status: RouteStatus
    decision: Optional[RoutingDecision] = None
    reason: str = ""
    post_id: Optional[str] = None
    truncated: bool = False


class MessageRouter:
    def __init__(
        self,
        bots: BotRegistry,
        directory: ChatDirectory,
        history: ThreadHistory,
        surface: ChatSurface,
        usage: UsageRestrictions,
        streamer: Optional[PostStreamer] = None,
    ):
        self._bots = bots
        self._directory = directory
        self._history = history
        self._surface = surface
        self._usage = usage
        self._streamer = streamer or PostStreamer(surface)

    def handle_post(self, post: ChatPost) -> RouteResult:
        log_ctx = {"post_id": post.id, "channel_id": post.channel_id, "user_id": post.user_id}
        try:
            user = self.admit(post)
        except NoResponse as exc:
            logger.debug("router.rejected", extra={"extra": {**log_ctx, "reason": exc.reason}})
            return RouteResult(RouteStatus.REJECTED, reason=exc.reason)

        channel = self._directory.get_channel(post.channel_id)
        decision = self.classify(post, channel)
        if decision.reason is RoutingReason.IGNORE:
            logger.debug("router.ignored", extra={"extra": log_ctx})
            return RouteResult(RouteStatus.IGNORED, decision=decision)

        bot = self._bot_for(decision)
        if bot is None:
            # 分类和取 Bot 之间注册表被替换
            logger.debug("router.ignored", extra={"extra": {**log_ctx, "bot": decision.bot.name}})
            return RouteResult(RouteStatus.IGNORED, decision=decision, reason="bot no longer configured")
        log_ctx.update({"bot": bot.name, "reason": decision.reason.value})
        try:
            self._check_usage(user, channel, decision)
        except UsageDeniedError as exc:
            self._surface.post_ephemeral(user.id, post.channel_id, exc.message)
            logger.info("router.usage_denied", extra={"extra": {**log_ctx, "detail": exc.message}})
            return RouteResult(RouteStatus.DENIED, decision=decision, reason=exc.message)

        conversation = self.build_conversation(decision, post)
        stream = bot.llm.stream_conversation_reply(bot.system_prompt, conversation)
        post_id = self._streamer.stream_to_post(
            stream,
            post.channel_id,
            root_id=post.thread_id,
            user_id=bot.user_id,
        )
        logger.info("router.responded", extra={"extra": {**log_ctx, "reply_post_id": post_id}})
        return RouteResult(RouteStatus.RESPONDED, decision=decision, post_id=post_id, truncated=stream.truncated)

    # ---- 准入 ----

    def admit(self, post: ChatPost) -> ChatUser:
        """执行准入检查 1-5，拒绝时抛出 NoResponse，通过时返回发帖用户。"""

        if self._bots.is_any_bot(post.user_id):
            raise NoResponse("not responding to ourselves")
        if post.remote_id:
            raise NoResponse("not responding to remote posts")
        if post.get_prop(WRANGLER_PROP) is not None:
            raise NoResponse("not responding to wrangler posts")
        user = self._directory.get_user(post.user_id)
        automated = (
            user.is_bot
            or post.get_prop(FROM_PLUGIN_PROP) is not None
            or post.get_prop(FROM_BOT_PROP) is not None
        )
        if automated and post.get_prop(ACTIVATE_AI_PROP) is None:
            raise NoResponse("not responding to other bots or plugins")
        if post.get_prop(FROM_WEBHOOK_PROP) is not None:
            raise NoResponse("not responding to webhook posts")
        return user

    # ---- 分类 ----

    def classify(self, post: ChatPost, channel: ChatChannel) -> RoutingDecision:
        bot = self._bots.get_bot_mentioned(post.message)
        if bot is not None:
            return RoutingDecision(bot=bot.config, reason=RoutingReason.MENTION)
        bot = self._bots.get_bot_for_dm_channel(channel)
        if bot is not None:
            return RoutingDecision(bot=bot.config, reason=RoutingReason.DIRECT_MESSAGE_CONTINUATION)
        return RoutingDecision(bot=None, reason=RoutingReason.IGNORE)

    # ---- 对话构造 ----

    def build_conversation(self, decision: RoutingDecision, post: ChatPost) -> Conversation:
        if decision.reason is not RoutingReason.DIRECT_MESSAGE_CONTINUATION or not post.root_id:
            return Conversation.of(Message.user(post.message))
        bot_user_id = decision.bot.user_id
        conversation = Conversation()
        seen_trigger = False
        for item in self._history.get_thread_history(post.root_id):
            seen_trigger = seen_trigger or item.id == post.id
            if item.user_id == bot_user_id:
                conversation.append(Message.assistant(item.message))
            else:
                conversation.append(Message.user(item.message))
        if not seen_trigger:
            conversation.append(Message.user(post.message))
        return conversation

    # ---- 辅助方法 ----

    def _bot_for(self, decision: RoutingDecision) -> Optional[Bot]:
        for bot in self._bots.bots():
            if bot.config == decision.bot:
                return bot
        return None

    def _check_usage(self, user: ChatUser, channel: ChatChannel, decision: RoutingDecision) -> None:
        channel_id: Optional[str] = channel.id
        if decision.reason is RoutingReason.DIRECT_MESSAGE_CONTINUATION:
            channel_id = None
        result = self._usage.check_allowed(user.id, channel_id)
        if not result.allowed:
            raise UsageDeniedError(
                code="USAGE_RESTRICTED",
                message=result.reason or USAGE_DENIED_TEXT,
                http_status=403,
            )

