import pytest
from fakes import (
    FakeDirectory,
    FakeHistory,
    FakeLLM,
    FakeSurface,
    FakeUsage,
    bot_config,
    dm_channel,
    make_registry,
    post,
    public_channel,
)

from copilot_core.domain.chat import ChatUser
from copilot_core.domain.exceptions import NetworkError
from copilot_core.domain.models import Role, RoutingReason
from copilot_core.providers.stream import StreamResult
from copilot_core.routing.router import MessageRouter, RouteStatus
from copilot_core.routing.streaming import PostStreamer


def build(llm=None, *, usage=None, history=None, streamer_kwargs=None):
    llm = llm or FakeLLM(["Hello", " ", "there"])
    registry = make_registry(llm, bot_config("ai", "bot-ai"), bot_config("helper", "bot-helper"))
    directory = FakeDirectory(
        users=[
            ChatUser("alice", "alice"),
            ChatUser("robot", "robot", is_bot=True),
            ChatUser("bot-ai", "ai", is_bot=True),
        ],
        channels=[
            public_channel("town-square", ("alice", "bob")),
            dm_channel("dm-ai", "alice", "bot-ai"),
            dm_channel("dm-people", "alice", "bob"),
        ],
    )
    surface = FakeSurface()
    streamer = PostStreamer(surface, **(streamer_kwargs or {"flush_chars": 1}))
    router = MessageRouter(registry, directory, history or FakeHistory(), surface, usage or FakeUsage(), streamer)
    return router, llm, surface


def test_scenario_a_own_bot_post_is_rejected():
    router, llm, surface = build()
    result = router.handle_post(post("@helper hi", user_id="bot-ai"))
    assert result.status is RouteStatus.REJECTED
    assert llm.calls == []
    assert surface.posts == {} and surface.ephemerals == []


@pytest.mark.parametrize(
    "incoming",
    [
        post("@ai hi", remote_id="remote-cluster-1"),
        post("@ai hi", wrangler="moved"),
        post("@ai hi", from_webhook="true"),
        post("@ai hi", from_bot="true"),
        post("@ai hi", from_plugin="true"),
        post("@ai hi", user_id="robot"),
    ],
)
def test_admission_rejections_make_no_adapter_calls(incoming):
    router, llm, surface = build()
    assert router.handle_post(incoming).status is RouteStatus.REJECTED
    assert llm.calls == []
    assert surface.posts == {}


def test_activate_ai_lets_other_bots_through():
    router, llm, _ = build()
    result = router.handle_post(post("@ai summarize", user_id="robot", activate_ai="true"))
    assert result.status is RouteStatus.RESPONDED
    assert len(llm.calls) == 1


def test_webhook_rejected_even_with_activate_ai():
    router, llm, _ = build()
    result = router.handle_post(post("@ai hi", from_webhook="true", activate_ai="true"))
    assert result.status is RouteStatus.REJECTED
    assert llm.calls == []


def test_scenario_b_mention_in_public_channel():
    router, llm, surface = build()
    result = router.handle_post(post("hey @ai, say hello", post_id="p42"))

    assert result.status is RouteStatus.RESPONDED
    assert result.decision.reason is RoutingReason.MENTION
    assert result.decision.bot.name == "ai"
    _, system_prompt, conversation = llm.calls[0]
    messages = conversation.as_ordered_messages()
    assert len(messages) == 1
    assert messages[0].role is Role.USER and messages[0].content == "hey @ai, say hello"

    reply = surface.posts[result.post_id]
    assert reply["root_id"] == "p42"
    assert reply["user_id"] == "bot-ai"
    assert reply["text"] == "Hello there"
    assert [text for _, text in surface.updates] == ["Hello", "Hello ", "Hello there"]


def test_unaddressed_public_post_is_ignored():
    router, llm, surface = build()
    result = router.handle_post(post("just chatting"))
    assert result.status is RouteStatus.IGNORED
    assert result.decision.reason is RoutingReason.IGNORE
    assert result.decision.bot is None
    assert llm.calls == [] and surface.posts == {}


def test_dm_between_people_is_ignored():
    router, llm, _ = build()
    assert router.handle_post(post("hello", channel_id="dm-people")).status is RouteStatus.IGNORED
    assert llm.calls == []


def test_mention_wins_over_dm_and_is_exclusive():
    router, llm, _ = build()
    decision = router.handle_post(post("@helper can you help", channel_id="dm-ai")).decision
    assert decision.reason is RoutingReason.MENTION
    assert decision.bot.name == "helper"
    assert len(llm.calls) == 1


def test_usage_denied_posts_ephemeral_notice():
    usage = FakeUsage(denied_channels={"town-square"})
    router, llm, surface = build(usage=usage)
    result = router.handle_post(post("@ai hi"))
    assert result.status is RouteStatus.DENIED
    assert llm.calls == []
    assert surface.ephemerals == [("alice", "town-square", "AI is not enabled in this channel.")]
    assert usage.checks == [("alice", "town-square")]


def test_dm_usage_check_is_user_only():
    usage = FakeUsage(denied_channels={"dm-ai"})
    router, llm, _ = build(usage=usage)
    result = router.handle_post(post("hello", channel_id="dm-ai"))
    assert result.status is RouteStatus.RESPONDED
    assert result.decision.reason is RoutingReason.DIRECT_MESSAGE_CONTINUATION
    assert usage.checks == [("alice", None)]


def test_dm_new_thread_sends_single_message():
    router, llm, _ = build()
    router.handle_post(post("what's the weather", channel_id="dm-ai"))
    conversation = llm.calls[0][2]
    assert [m.content for m in conversation.as_ordered_messages()] == ["what's the weather"]


def test_dm_thread_continuation_uses_history():
    history = FakeHistory({
        "root": [
            post("first question", post_id="root", channel_id="dm-ai"),
            post("first answer", post_id="r1", user_id="bot-ai", channel_id="dm-ai", root_id="root"),
            post("follow up", post_id="p2", channel_id="dm-ai", root_id="root"),
        ]
    })
    router, llm, surface = build(history=history)
    result = router.handle_post(post("follow up", post_id="p2", channel_id="dm-ai", root_id="root"))
    messages = llm.calls[0][2].as_ordered_messages()
    assert [(m.role, m.content) for m in messages] == [
        (Role.USER, "first question"),
        (Role.ASSISTANT, "first answer"),
        (Role.USER, "follow up"),
    ]
    assert surface.posts[result.post_id]["root_id"] == "root"


def test_dm_thread_appends_trigger_missing_from_history():
    history = FakeHistory({"root": [post("first question", post_id="root", channel_id="dm-ai")]})
    router, llm, _ = build(history=history)
    router.handle_post(post("newest", post_id="p9", channel_id="dm-ai", root_id="root"))
    assert [m.content for m in llm.calls[0][2].as_ordered_messages()] == ["first question", "newest"]


def test_truncated_reply_is_posted_partially():
    router, _, surface = build(FakeLLM(["part", "ial", "lost"], truncate_after=2))
    result = router.handle_post(post("@ai go"))
    assert result.status is RouteStatus.RESPONDED
    assert result.truncated is True
    assert surface.posts[result.post_id]["text"] == "partial"


def test_adapter_failure_propagates():
    class Broken(FakeLLM):
        def stream_conversation_reply(self, system_prompt, conversation):
            raise NetworkError(code="NETWORK_ERROR", message="refused")

    router, _, surface = build(Broken())
    with pytest.raises(NetworkError):
        router.handle_post(post("@ai go"))
    assert surface.posts == {}


def test_post_streamer_batches_without_reordering():
    surface = FakeSurface()
    streamer = PostStreamer(surface, flush_chars=5, flush_interval=60.0, clock=lambda: 0.0)
    post_id = streamer.stream_to_post(StreamResult(iter(["ab", "cde", "f", "g"])), "town-square", root_id="r")
    texts = [text for _, text in surface.updates]
    assert texts == ["abcde", "abcdefg"]
    assert surface.posts[post_id]["text"] == "abcdefg"
    for earlier, later in zip(texts, texts[1:]):
        assert later.startswith(earlier)


def test_post_streamer_flushes_on_interval():
    surface = FakeSurface()
    ticks = iter([0.0, 0.1, 1.0, 1.1, 5.0])
    streamer = PostStreamer(surface, flush_chars=1000, flush_interval=0.5, clock=lambda: next(ticks))
    streamer.stream_to_post(StreamResult(iter(["a", "b", "c", "d"])), "town-square")
    assert [text for _, text in surface.updates] == ["ab", "abcd"]
