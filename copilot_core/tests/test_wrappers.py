from fakes import FakeLLM

from copilot_core.domain.conversation import Conversation
from copilot_core.domain.models import Message, Role
from copilot_core.providers.wrappers import TraceWrapper, TruncationWrapper, truncate_conversation, truncate_text


def long_conversation():
    return Conversation.of(
        Message.system("sys"),
        Message.user("a" * 40),
        Message.assistant("b" * 40),
        Message.user("c" * 40),
        Message.user("last question"),
    )


def test_truncation_keeps_suffix_within_budget():
    conv = long_conversation()
    for budget in (1, 20, 60, 100, 140):
        result = truncate_conversation(conv, budget)
        messages = result.as_ordered_messages()
        assert messages[-1].content == "last question"
        assert messages[0].role is Role.SYSTEM
        original = conv.as_ordered_messages()
        assert messages[1:] == original[len(original) - len(messages) + 1:]
        assert result.char_size() <= budget or len(messages) == 2


def test_truncation_noop_under_budget():
    conv = long_conversation()
    assert truncate_conversation(conv, 10_000) is conv


def test_truncation_always_keeps_last_message():
    conv = Conversation.of(Message.user("x" * 500))
    assert truncate_conversation(conv, 10).as_ordered_messages() == conv.as_ordered_messages()


def test_truncation_wrapper_forwards_truncated_history():
    inner = FakeLLM(["ok"])
    llm = TruncationWrapper(inner, max_chars=60)
    assert llm.stream_conversation_reply("prompt", long_conversation()).collect_all() == "ok"
    _, system_prompt, sent = inner.calls[0]
    assert system_prompt == "prompt"
    assert sent.char_size() <= 60
    assert sent.as_ordered_messages()[-1].content == "last question"


def test_classify_short_label_through_facade():
    llm = TruncationWrapper(FakeLLM(label=" :tada: "), max_chars=100)
    assert llm.classify_short_label("Great job!") == "tada"


class ListLog:
    def __init__(self):
        self.records = []

    def info(self, msg, extra=None):
        self.records.append((msg, extra["extra"]))


def test_trace_wrapper_mirrors_stream():
    log = ListLog()
    llm = TraceWrapper(FakeLLM(["Hel", "lo"]), log=log)
    stream = llm.stream_conversation_reply("sys", Conversation.of(Message.user("hi")))
    assert log.records[0][0] == "llm.trace.request"
    assert log.records[0][1]["messages"] == [{"role": "user", "content": "hi"}]
    assert stream.collect_all() == "Hello"
    msg, fields = log.records[-1]
    assert msg == "llm.trace.response"
    assert fields["response"] == "Hello"
    assert fields["fragments"] == 2
    assert fields["request_id"] == log.records[0][1]["request_id"]


def test_trace_wrapper_propagates_truncation():
    log = ListLog()
    llm = TraceWrapper(FakeLLM(["a", "b", "c"], truncate_after=1), log=log)
    stream = llm.stream_conversation_reply("", Conversation.of(Message.user("hi")))
    assert stream.collect_all() == "a"
    assert stream.truncated is True
    assert log.records[-1][1]["truncated"] is True


def test_trace_wrapper_logs_one_shot_calls():
    log = ListLog()
    llm = TraceWrapper(FakeLLM(label="smile", complete_text="[]"), log=log)
    assert llm.classify_short_label("yay") == "smile"
    assert llm.complete("", Conversation.of(Message.user("x"))) == "[]"
    assert [r[0] for r in log.records] == [
        "llm.trace.request",
        "llm.trace.response",
        "llm.trace.request",
        "llm.trace.response",
    ]


def test_summary_over_budget_keeps_newest_lines():
    inner = FakeLLM(["summary"])
    llm = TruncationWrapper(inner, max_chars=25)
    thread = "alice: old old old\ncarol: middle\nbob: newest question"
    assert llm.summarize_text(thread).collect_all() == "summary"
    _, sent = inner.calls[0]
    assert sent == "bob: newest question"


def test_truncate_text_keeps_tail_of_single_long_line():
    assert truncate_text("x" * 10 + "tail", 4) == "tail"
    assert truncate_text("short", 100) == "short"


def test_trace_wrapper_redacts_content_fields():
    log = ListLog()
    long_text = "secret " * 40
    llm = TraceWrapper(FakeLLM([long_text]), log=log, redact_content=True)
    stream = llm.stream_conversation_reply(long_text, Conversation.of(Message.user(long_text)))
    assert stream.collect_all() == long_text
    request = log.records[0][1]
    assert len(request["system_prompt"]) == 64
    assert len(request["messages"][0]["content"]) == 64
    assert request["messages"][0]["role"] == "user"
    assert len(log.records[-1][1]["response"]) == 64
    assert log.records[-1][1]["fragments"] == 1
