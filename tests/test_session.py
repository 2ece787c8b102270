from __future__ import annotations

import asyncio

import pytest

from client.session import NOTICES, ChatSession, SessionState
from fakes import FakeClient, FakeStream, body, delta_frame, done_frame
from models.chat import MAX_MESSAGES, ChatRelayRequest, Role
from services.errors import (
    ErrorKind,
    QuotaExhausted,
    RateLimited,
    TransportFailure,
    Unauthenticated,
    UpstreamError,
)


def _session(client: FakeClient, token: str | None = "user-token") -> ChatSession:
    return ChatSession(client, lambda: token)


async def _wait_for(predicate, timeout: float = 2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
async def test_successful_turn_streams_into_assistant_message() -> None:
    client = FakeClient(FakeStream([body("Hel", "lo, ", "world")]))
    session = _session(client)

    assert await session.submit("  Hi there  ") is True

    assert session.state is SessionState.IDLE
    assert not session.pending
    assert [(m.role, m.content) for m in session.messages] == [
        (Role.USER, "Hi there"),
        (Role.ASSISTANT, "Hello, world"),
    ]
    sent, credential = client.requests[0]
    assert credential == "user-token"
    assert [(m.role, m.content) for m in sent] == [(Role.USER, "Hi there")]


@pytest.mark.asyncio
async def test_full_history_is_sent_on_next_turn() -> None:
    client = FakeClient(FakeStream([body("first")]))
    session = _session(client)
    await session.submit("one")
    client.stream = FakeStream([body("second")])
    await session.submit("two")

    sent, _ = client.requests[1]
    assert [m.content for m in sent] == ["one", "first", "two"]
    assert [m.content for m in session.messages] == ["one", "first", "two", "second"]


@pytest.mark.asyncio
async def test_natural_end_without_sentinel_returns_to_idle() -> None:
    session = _session(FakeClient(FakeStream([body("no", " sentinel", done=False)])))
    await session.submit("q")
    assert session.state is SessionState.IDLE
    assert session.messages[-1].content == "no sentinel"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "chunks",
    [
        [done_frame().encode()],
        [b'data: {"choices":[{"delta":{}}]}\n\n', b'data: {"choices":[{"delta":{"content":""}}]}\n\n', done_frame().encode()],
        [b'data: {"choices":[{"delta"\n'],
    ],
)
async def test_reply_without_text_leaves_no_assistant_message(chunks) -> None:
    client = FakeClient(FakeStream(chunks))
    session = _session(client)

    await session.submit("hi")

    assert session.state is SessionState.IDLE
    assert [(m.role, m.content) for m in session.messages] == [(Role.USER, "hi")]

    client.stream = FakeStream([body("answer")])
    await session.submit("again")

    sent, _ = client.requests[1]
    assert [m.content for m in sent] == ["hi", "again"]
    ChatRelayRequest(messages=[m.model_dump() for m in sent])
    assert session.state is SessionState.IDLE
    assert session.messages[-1].content == "answer"


@pytest.mark.asyncio
async def test_long_conversation_sends_only_the_latest_window() -> None:
    client = FakeClient(FakeStream([body("ok")]))
    session = _session(client)

    for turn in range(MAX_MESSAGES // 2 + 1):
        await session.submit(f"q{turn}")
        assert session.state is SessionState.IDLE

    sent, _ = client.requests[-1]
    assert len(session.messages) == MAX_MESSAGES + 2
    assert len(sent) == MAX_MESSAGES
    assert sent[-1].content == f"q{MAX_MESSAGES // 2}"
    ChatRelayRequest(messages=[m.model_dump() for m in sent])


@pytest.mark.asyncio
async def test_body_is_closed_when_done_arrives_early() -> None:
    stream = FakeStream([body("hi"), delta_frame("ignored").encode()])
    session = _session(FakeClient(stream))

    await session.submit("q")

    assert stream.finished
    assert session.messages[-1].content == "hi"


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_input_is_ignored(text: str) -> None:
    client = FakeClient(FakeStream([body("x")]))
    session = _session(client)
    assert await session.submit(text) is False
    assert len(session.messages) == 0
    assert client.requests == []


@pytest.mark.asyncio
async def test_submit_while_pending_is_a_no_op() -> None:
    stream = FakeStream([delta_frame("partial").encode()], hang=True)
    session = _session(FakeClient(stream))
    turn = asyncio.create_task(session.submit("first"))
    await _wait_for(lambda: session.state is SessionState.STREAMING and session.messages[-1].content)

    length = len(session.messages)
    assert await session.submit("second") is False
    assert len(session.messages) == length
    assert session.pending is True

    session.cancel()
    await turn


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, kind",
    [(RateLimited(), ErrorKind.RATE_LIMITED), (QuotaExhausted(), ErrorKind.QUOTA_EXHAUSTED)],
)
async def test_rate_limit_and_quota_keep_only_the_user_message(error, kind) -> None:
    session = _session(FakeClient(error=error))
    before = len(session.messages)

    assert await session.submit("hello") is True

    assert len(session.messages) == before + 1
    assert session.messages[-1].role is Role.USER
    assert session.state is SessionState.ERROR
    assert session.last_error is kind
    assert session.notice == NOTICES[kind]
    assert not session.pending


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [UpstreamError(), TransportFailure()])
async def test_failure_mid_stream_removes_partial_reply(error) -> None:
    stream = FakeStream([delta_frame("half an ").encode(), delta_frame("answer").encode()], error=error)
    session = _session(FakeClient(stream))

    await session.submit("question")

    assert [(m.role, m.content) for m in session.messages] == [(Role.USER, "question")]
    assert session.state is SessionState.ERROR
    assert session.last_error is error.kind
    assert not session.transcript.open


@pytest.mark.asyncio
async def test_missing_credential_fails_before_request() -> None:
    client = FakeClient(FakeStream([body("x")]))
    session = _session(client, token=None)

    await session.submit("hi")

    assert client.requests == []
    assert session.last_error is ErrorKind.UNAUTHENTICATED
    assert session.notice == NOTICES[ErrorKind.UNAUTHENTICATED]
    assert len(session.messages) == 1


@pytest.mark.asyncio
async def test_relay_rejecting_credential_is_unauthenticated() -> None:
    session = _session(FakeClient(error=Unauthenticated()))
    await session.submit("hi")
    assert session.state is SessionState.ERROR
    assert session.last_error is ErrorKind.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_resubmit_after_error() -> None:
    client = FakeClient(error=RateLimited())
    session = _session(client)
    await session.submit("try")

    client.error = None
    client.stream = FakeStream([body("ok")])
    assert await session.submit("again") is True

    assert session.state is SessionState.IDLE
    assert session.last_error is None
    assert session.notice is None
    assert [m.content for m in session.messages] == ["try", "again", "ok"]


@pytest.mark.asyncio
async def test_cancel_keeps_streamed_text() -> None:
    stream = FakeStream([delta_frame("Hel").encode()], hang=True)
    session = _session(FakeClient(stream))
    turn = asyncio.create_task(session.submit("hi"))
    await _wait_for(lambda: session.state is SessionState.STREAMING and session.messages[-1].content == "Hel")

    assert session.cancel() is True
    await turn

    assert stream.closed
    assert stream.finished
    assert session.state is SessionState.IDLE
    assert session.last_error is None
    assert not session.transcript.open
    assert [(m.role, m.content) for m in session.messages] == [(Role.USER, "hi"), (Role.ASSISTANT, "Hel")]


@pytest.mark.asyncio
async def test_cancel_when_idle_does_nothing() -> None:
    session = _session(FakeClient(FakeStream([body("x")])))
    assert session.cancel() is False


@pytest.mark.asyncio
async def test_outer_task_cancellation_closes_reply() -> None:
    stream = FakeStream([delta_frame("Hel").encode()], hang=True)
    session = _session(FakeClient(stream))
    turn = asyncio.create_task(session.submit("hi"))
    await _wait_for(lambda: session.state is SessionState.STREAMING and session.messages[-1].content == "Hel")

    turn.cancel()
    with pytest.raises(asyncio.CancelledError):
        await turn

    assert session.state is SessionState.IDLE
    assert not session.transcript.open
    assert session.messages[-1].content == "Hel"


@pytest.mark.asyncio
async def test_outer_task_cancellation_before_text_drops_reply() -> None:
    stream = FakeStream([], hang=True)
    session = _session(FakeClient(stream))
    updates: list[SessionState] = []
    session.on_update(lambda s: updates.append(s.state))
    turn = asyncio.create_task(session.submit("hi"))
    await _wait_for(lambda: session.state is SessionState.STREAMING)

    turn.cancel()
    with pytest.raises(asyncio.CancelledError):
        await turn

    assert stream.finished
    assert updates[-1] is SessionState.IDLE
    assert [(m.role, m.content) for m in session.messages] == [(Role.USER, "hi")]


@pytest.mark.asyncio
async def test_incomplete_frame_at_end_is_truncated_silently() -> None:
    chunks = [delta_frame("kept").encode(), b'data: {"choices":[{"delta"\n']
    session = _session(FakeClient(FakeStream(chunks)))

    await session.submit("q")

    assert session.state is SessionState.IDLE
    assert session.last_error is None
    assert session.messages[-1].content == "kept"


@pytest.mark.asyncio
async def test_observers_see_state_changes() -> None:
    seen = []
    session = _session(FakeClient(FakeStream([body("a", "b")])))
    session.on_update(lambda s: seen.append((s.state, s.transcript.last.content)))

    await session.submit("go")

    assert seen[0] == (SessionState.SENDING, "go")
    assert (SessionState.STREAMING, "") in seen
    assert seen[-1] == (SessionState.IDLE, "ab")
