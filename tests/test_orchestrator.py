"""Tests for the send state machine."""

import pytest

from conftest import FakeClient, ndjson
from lunachat.errors import StreamUnavailable, TransportError
from lunachat.models import Message
from lunachat.orchestrator import ChatSession, SendState

HELLO = [
    ndjson({"message": {"content": "He"}, "done": False}),
    ndjson({"message": {"content": "llo"}, "done": True, "prompt_eval_duration": 2_000_000_000}),
]


def _summary(store):
    return [(m.role, m.content, m.status, m.timing_seconds) for m in store.all()]


def test_send_hi_streams_hello(store):
    client = FakeClient(HELLO)
    session = ChatSession(store, client)

    assert session.send("Hi") is True

    assert _summary(store) == [
        ("user", "Hi", "complete", None),
        ("assistant", "Hello", "complete", 2.0),
    ]
    assert session.loading is False
    assert session.error is None
    assert session.state == SendState.IDLE
    assert session.last_outcome == SendState.DONE


def test_http_500_leaves_errored_placeholder(store):
    client = FakeClient(error=TransportError("HTTP error! Status: 500", status_code=500))
    session = ChatSession(store, client)

    assert session.send("Hi") is True

    assert _summary(store) == [
        ("user", "Hi", "complete", None),
        ("assistant", "", "error", None),
    ]
    assert session.loading is False
    assert session.error == "HTTP error! Status: 500"
    assert session.last_outcome == SendState.FAILED


def test_stream_unavailable_is_a_failure(store):
    session = ChatSession(store, FakeClient(error=StreamUnavailable("Failed to get response reader")))
    session.send("Hi")
    assert store.all()[-1].status == "error"
    assert session.error == "Failed to get response reader"


def test_unexpected_exception_during_setup_is_a_failure(store):
    session = ChatSession(store, FakeClient(error=RuntimeError("boom")))
    session.send("Hi")
    assert store.all()[-1].status == "error"
    assert session.error == "boom"
    assert session.loading is False


@pytest.mark.parametrize("text", ["", "   ", "\n\t "])
def test_blank_input_is_rejected(store, text):
    client = FakeClient(HELLO)
    session = ChatSession(store, client)

    assert session.send(text) is False
    assert store.all() == ()
    assert client.requests == []


def test_send_uses_input_buffer_and_clears_it(store):
    session = ChatSession(store, FakeClient(HELLO))
    session.input = "  Hi  "

    assert session.send() is True
    assert session.input == ""
    assert store.all()[0].content == "Hi"


def test_send_while_in_flight_is_rejected(store):
    """Test that a second send during streaming creates nothing."""
    client = FakeClient(HELLO)
    session = ChatSession(store, client)
    attempts = []

    def try_again(s):
        if s.pending() is not None and not attempts:
            attempts.append(session.send("again"))

    store.subscribe(try_again)
    session.send("Hi")

    assert attempts == [False]
    assert len(client.requests) == 1
    assert [m.content for m in store.all()] == ["Hi", "Hello"]


def test_at_most_one_pending_message(store):
    pending_counts = []
    store.subscribe(lambda s: pending_counts.append(sum(m.status == "pending" for m in s.all())))
    session = ChatSession(store, FakeClient(HELLO))

    session.send("Hi")
    session.client.chunks = HELLO
    session.send("Again")

    assert max(pending_counts) == 1
    assert all(m.status == "complete" for m in store.all())


def test_payload_is_prior_history_plus_new_text(store):
    store.append(Message(id="u0", role="user", content="First", status="complete"))
    store.append(Message(id="a0", role="assistant", content="Reply", status="complete", timing_seconds=1.0))
    client = FakeClient(HELLO)

    ChatSession(store, client).send("Second")

    assert client.requests == [[
        {"role": "user", "content": "First"},
        {"role": "assistant", "content": "Reply"},
        {"role": "user", "content": "Second"},
    ]]


def test_transport_error_mid_stream_then_recovers(store):
    def broken_stream():
        yield ndjson({"message": {"content": "Hel"}, "done": False})
        raise TransportError("Stream interrupted: connection reset")

    client = FakeClient()
    client.stream_chat = lambda messages: broken_stream()
    session = ChatSession(store, client)

    session.send("Hi")

    assistant = store.all()[-1]
    assert assistant.status == "error"
    assert assistant.content == "Hel"
    assert session.loading is False
    assert session.state == SendState.IDLE

    ok = FakeClient(HELLO)
    session.client = ok
    assert session.send("Retry") is True
    assert store.all()[-1].content == "Hello"
    assert store.all()[-1].status == "complete"


def test_malformed_frames_do_not_fail_the_send(store):
    chunks = [HELLO[0], b"garbage\n", HELLO[1]]
    session = ChatSession(store, FakeClient(chunks))

    session.send("Hi")

    assert store.all()[-1].content == "Hello"
    assert session.error is None


def test_stream_end_without_done_completes(store):
    session = ChatSession(store, FakeClient([HELLO[0]]))
    session.send("Hi")
    assert store.all()[-1].status == "complete"
    assert store.all()[-1].content == "He"


def test_frames_after_done_are_not_read(store):
    pulled = []

    def stream():
        yield HELLO[0]
        yield HELLO[1]
        pulled.append("late")
        yield ndjson({"message": {"content": "!!"}, "done": False})

    client = FakeClient()
    client.stream_chat = lambda messages: stream()
    ChatSession(store, client).send("Hi")

    assert pulled == []
    assert store.all()[-1].content == "Hello"


def test_error_frame_fails_the_send(store):
    chunks = [ndjson({"error": "model 'bippy/luna1' not found"})]
    session = ChatSession(store, FakeClient(chunks))
    session.send("Hi")
    assert store.all()[-1].status == "error"
    assert "not found" in session.error


def test_state_transitions_are_observable(store):
    states = []
    session = ChatSession(store, FakeClient(HELLO))
    session.subscribe(lambda s: states.append((s.state, s.loading)))

    session.send("Hi")

    assert states == [
        (SendState.SENDING, True),
        (SendState.STREAMING, True),
        (SendState.DONE, False),
        (SendState.IDLE, False),
    ]


def test_error_is_cleared_by_next_send(store):
    session = ChatSession(store, FakeClient(error=TransportError("down")))
    session.send("Hi")
    assert session.error == "down"

    session.client = FakeClient(HELLO)
    session.send("Hi again")
    assert session.error is None


def test_clear_empties_history(store):
    session = ChatSession(store, FakeClient(HELLO))
    session.send("Hi")
    assert session.clear() is True
    assert store.all() == ()


def test_fractional_prompt_eval_duration(store):
    """Test that a float duration keeps the done frame and its last token."""
    chunks = [
        ndjson({"message": {"content": "He"}, "done": False}),
        ndjson({"message": {"content": "llo"}, "done": True, "prompt_eval_duration": 2_000_000_000.5}),
    ]
    session = ChatSession(store, FakeClient(chunks))

    session.send("Hi")

    assistant = store.all()[-1]
    assert assistant.content == "Hello"
    assert assistant.status == "complete"
    assert assistant.timing_seconds == pytest.approx(2.0)


def test_streaming_is_announced_after_request_goes_out(store):
    events = []

    def stream():
        events.append("request")
        yield HELLO[0]
        yield HELLO[1]

    client = FakeClient()
    client.stream_chat = lambda messages: stream()
    session = ChatSession(store, client)
    session.subscribe(lambda s: events.append(s.state))

    session.send("Hi")

    assert events[:3] == [SendState.SENDING, "request", SendState.STREAMING]


def test_failed_request_never_reports_streaming(store):
    states = []

    def stream():
        raise TransportError("HTTP error! Status: 503", status_code=503)
        yield b""

    client = FakeClient()
    client.stream_chat = lambda messages: stream()
    session = ChatSession(store, client)
    session.subscribe(lambda s: states.append(s.state))

    session.send("Hi")

    assert SendState.STREAMING not in states
    assert states[-2:] == [SendState.FAILED, SendState.IDLE]
    assert store.all()[-1].status == "error"


def test_empty_body_completes_empty_message(store):
    session = ChatSession(store, FakeClient([]))
    session.send("Hi")
    assert store.all()[-1].status == "complete"
    assert store.all()[-1].content == ""
