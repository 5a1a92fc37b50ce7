import httpx
import pytest

from copilot_core.domain.conversation import Conversation
from copilot_core.domain.exceptions import DecodeError, NetworkError, ValidationError
from copilot_core.domain.models import BackendConfig, BackendKind, Message
from copilot_core.providers.selfhosted_client import SelfHostedStreamingClient, conversation_to_prompt
from copilot_core.providers.sse import iter_sse_events


def make_client():
    config = BackendConfig(kind=BackendKind.SELF_HOSTED_STREAMING, endpoint="http://serge.local:8008", model_name="llama-7b")
    return SelfHostedStreamingClient(config, timeout=1.0)


class JsonResp:
    status_code = 200

    def __init__(self, data):
        self.data = data
        self.text = repr(data)
        self.content = self.text.encode()

    def json(self):
        return self.data


class SseResp:
    status_code = 200

    def __init__(self, lines, fail_with=None):
        self.lines = lines
        self.fail_with = fail_with

    def iter_lines(self):
        yield from self.lines
        if self.fail_with is not None:
            raise self.fail_with


class StreamContext:
    def __init__(self, resp, log):
        self.resp = resp
        self.log = log

    def __enter__(self):
        return self.resp

    def __exit__(self, *a):
        self.log.append(("stream_closed",))
        return False


def install_client(monkeypatch, *, sse_lines=(), answer=None, session_id="chat-1", stream_error=None, fail_with=None):
    log = []

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def request(self, method, url, params=None, **_):
            log.append(("request", method, url, params))
            if url.endswith("/question"):
                return JsonResp(answer)
            return JsonResp(session_id)

        def stream(self, method, url, params=None, **_):
            log.append(("stream", method, url, params))
            if stream_error is not None:
                raise stream_error
            return StreamContext(SseResp(list(sse_lines), fail_with), log)

        def delete(self, url, **_):
            log.append(("delete", url))

    monkeypatch.setattr("httpx.Client", Client)
    return log


def test_conversation_to_prompt_is_newline_joined():
    conv = Conversation.of(Message.user("hi"), Message.assistant("hello"), Message.user("how are you"))
    assert conversation_to_prompt(conv) == "hi\nhello\nhow are you\n"


def test_sse_parser_dispatches_on_blank_line():
    events = list(iter_sse_events(["data: a", "data: b", "", ": keepalive", "event: close", "data:", ""]))
    assert [(e.event, e.data) for e in events] == [("message", "a\nb"), ("close", "")]


def test_selfhosted_two_phase_stream(monkeypatch):
    lines = ["data: Hel", "", "data: lo", "", "data:  there", "", "event: close", "data: ", "", "data: late", ""]
    log = install_client(monkeypatch, sse_lines=lines)
    conv = Conversation.of(Message.user("hi"), Message.user("there"))

    stream = make_client().stream_conversation_reply("You are terse.", conv)
    assert list(stream.drain()) == ["Hel", "lo", " there"]

    create, subscribe = log[0], log[1]
    assert create == ("request", "POST", "http://serge.local:8008/chat", {"model": "llama-7b", "init_prompt": "You are terse."})
    assert subscribe == ("stream", "GET", "http://serge.local:8008/chat/chat-1/question", {"prompt": "hi\nthere\n"})
    assert log[2:] == [("stream_closed",), ("delete", "http://serge.local:8008/chat/chat-1")]


def test_selfhosted_session_id_must_be_string(monkeypatch):
    log = install_client(monkeypatch, session_id={"id": 1})
    with pytest.raises(DecodeError):
        make_client().stream_conversation_reply("", Conversation.of(Message.user("hi")))
    assert not any(entry[0] == "stream" for entry in log)


def test_selfhosted_connect_failure_releases_session(monkeypatch):
    log = install_client(monkeypatch, stream_error=httpx.ConnectError("refused"))
    with pytest.raises(NetworkError):
        make_client().stream_conversation_reply("", Conversation.of(Message.user("hi")))
    assert log[-1] == ("delete", "http://serge.local:8008/chat/chat-1")


def test_selfhosted_mid_stream_failure_is_truncated(monkeypatch):
    log = install_client(monkeypatch, sse_lines=["data: part", ""], fail_with=httpx.ReadError("reset"))
    stream = make_client().stream_conversation_reply("", Conversation.of(Message.user("hi")))
    assert stream.collect_all() == "part"
    assert stream.truncated is True
    assert ("delete", "http://serge.local:8008/chat/chat-1") in log


def test_selfhosted_abandonment_deletes_session(monkeypatch):
    log = install_client(monkeypatch, sse_lines=["data: a", "", "data: b", ""])
    stream = make_client().stream_conversation_reply("", Conversation.of(Message.user("hi")))
    it = stream.drain()
    assert next(it) == "a"
    stream.close()
    assert log[-2:] == [("stream_closed",), ("delete", "http://serge.local:8008/chat/chat-1")]


def test_selfhosted_generate_image_unsupported(monkeypatch):
    install_client(monkeypatch)
    with pytest.raises(ValidationError) as excinfo:
        make_client().generate_image("a cat")
    assert excinfo.value.code == "UNSUPPORTED_CAPABILITY"


def test_selfhosted_classify_short_label(monkeypatch):
    log = install_client(monkeypatch, answer=" :smile: ", session_id="chat-9")
    assert make_client().classify_short_label("so happy") == "smile"
    assert log[1] == ("request", "POST", "http://serge.local:8008/chat/chat-9/question", {"prompt": "so happy\n"})
    assert log[-1] == ("delete", "http://serge.local:8008/chat/chat-9")


def test_selfhosted_classify_malformed(monkeypatch):
    log = install_client(monkeypatch, answer=["not", "a", "string"])
    with pytest.raises(DecodeError):
        make_client().classify_short_label("so happy")
    assert log[-1][0] == "delete"
