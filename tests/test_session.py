"""Tests for the chat session pipeline."""

from __future__ import annotations

from typing import Any, AsyncIterator

import pytest

from confab.ai.decoder import DecodedChunk
from confab.ai.payload import RequestPayload
from confab.ai.session import ChatSession, SessionConfig
from confab.chat.history import History
from confab.chat.message_model import Turn
from confab.errors import ErrorCode, MalformedTranscriptError, TransportError


def _delta(text: str) -> dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


STREAM = [
    {"type": "message_start", "message": {"id": "msg_1", "content": []}},
    _delta("Hel"),
    _delta("lo"),
    {"type": "message_delta", "delta": {"stop_reason": "end_turn"}},
    {"type": "message_stop"},
]


def _session(**overrides: Any) -> ChatSession:
    config = SessionConfig(model="claude-test", **overrides)
    return ChatSession(config)


def test_exchange_accumulates_streamed_text() -> None:
    session = _session()
    seen: list[RequestPayload] = []

    def transport(payload: RequestPayload) -> list[dict[str, Any]]:
        seen.append(payload)
        return STREAM

    reply = session.exchange("hi", transport)

    assert reply == "Hello"
    assert session.history.turns == [Turn("hi", "Hello")]
    assert seen[0].streaming is True
    assert [message.content for message in seen[0].messages] == ["hi"]


def test_exchange_accepts_single_response_object() -> None:
    session = _session(streaming=False)

    reply = session.exchange("hi", lambda payload: {"content": [{"type": "text", "text": "Whole"}]})

    assert reply == "Whole"
    assert session.history.turns == [Turn("hi", "Whole")]


def test_empty_reply_closes_turn_with_empty_text() -> None:
    session = _session()

    session.exchange("hi", lambda payload: [{"type": "message_stop"}])

    assert session.history.turns == [Turn("hi", "")]
    assert session.history.open_turn is None


def test_chunk_listener_sees_every_unit() -> None:
    chunks: list[DecodedChunk] = []
    session = ChatSession(SessionConfig(model="claude-test"), on_chunk=chunks.append)

    session.exchange("hi", lambda payload: STREAM)

    assert [chunk.text for chunk in chunks] == ["", "Hel", "lo", "", ""]
    assert chunks[-1].is_final


def test_history_is_sent_with_each_new_prompt() -> None:
    session = _session(budget_spec=1)
    payloads: list[RequestPayload] = []

    def transport(payload: RequestPayload) -> list[dict[str, Any]]:
        payloads.append(payload)
        return [_delta(f"reply {len(payloads)}")]

    for prompt in ("one", "two", "three"):
        session.exchange(prompt, transport)

    assert [message.content for message in payloads[-1].messages] == ["two", "reply 2", "three"]
    assert len(session.history) == 3


def test_transport_failure_marks_turn_and_reraises(recorder) -> None:
    session = _session()

    def transport(payload: RequestPayload):
        yield _delta("part")
        raise TransportError(message="connection reset")

    with pytest.raises(TransportError):
        session.exchange("hi", transport)

    turn = session.history[-1]
    assert turn.assistant_content == "part"
    assert turn.error == "[transport_failed] connection reset"
    (event,) = recorder.tail()
    assert event["event"] == "exchange_failed"
    assert event["model"] == "claude-test"



def test_failed_turn_is_left_out_of_later_requests_and_transcripts() -> None:
    session = _session(budget_spec=1)
    payloads: list[RequestPayload] = []

    def transport(payload: RequestPayload):
        payloads.append(payload)
        return [_delta(f"reply {len(payloads)}")]

    def failing(payload: RequestPayload):
        payloads.append(payload)
        yield _delta("half")
        raise TransportError(message="connection reset")

    session.exchange("one", transport)
    with pytest.raises(TransportError):
        session.exchange("two", failing)
    session.exchange("three", transport)

    assert [message.role.value for message in payloads[-1].messages] == ["user", "assistant", "user"]
    assert [message.content for message in payloads[-1].messages] == ["one", "reply 1", "three"]
    assert session.history[1].failed
    assert len(session.history) == 3

    transcript = session.history.to_transcript()
    restored = History.from_transcript(transcript)

    assert restored.turns == [Turn("one", "reply 1"), Turn("three", "reply 3")]
    assert restored.to_transcript() == transcript


def test_streamed_error_event_fails_the_turn(recorder) -> None:
    chunks: list[DecodedChunk] = []
    session = ChatSession(SessionConfig(model="claude-test"), on_chunk=chunks.append)
    units = [
        _delta("Hel"),
        {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
    ]

    with pytest.raises(TransportError) as excinfo:
        session.exchange("hi", lambda payload: units)

    assert excinfo.value.code == ErrorCode.API_ERROR
    assert excinfo.value.message == "Overloaded"
    turn = session.history[-1]
    assert turn.assistant_content == "Hel"
    assert turn.error == "[api_error] Overloaded"
    assert [chunk.text for chunk in chunks] == ["Hel"]
    assert session.history.to_messages() == []
    assert recorder.counts()["exchange_failed"] == 1

@pytest.mark.asyncio
async def test_aexchange_streams_async_units() -> None:
    session = _session()

    async def transport(payload: RequestPayload) -> AsyncIterator[Any]:
        for unit in STREAM:
            yield unit

    reply = await session.aexchange("hi", transport)

    assert reply == "Hello"
    assert session.history.turns == [Turn("hi", "Hello")]


@pytest.mark.asyncio
async def test_aexchange_failure_leaves_turn_unanswered() -> None:
    session = _session()

    async def transport(payload: RequestPayload) -> AsyncIterator[Any]:
        raise TransportError(code=ErrorCode.TIMEOUT, message="timed out")
        yield  # pragma: no cover

    with pytest.raises(TransportError):
        await session.aexchange("hi", transport)

    turn = session.history[-1]
    assert turn.is_open
    assert turn.error == "[timeout] timed out"


def test_fork_copies_history_independently() -> None:
    session = _session()
    session.exchange("hi", lambda payload: [_delta("hello")])

    forked = session.fork()
    forked.exchange("side question", lambda payload: [_delta("side answer")])

    assert len(session.history) == 1
    assert len(forked.history) == 2
    assert forked.config is session.config


def test_restore_replays_transcript(sample_transcript: str, recorder) -> None:
    session = _session(budget_spec=0)

    payloads = session.restore(sample_transcript)

    assert session.history.turns == [Turn("hi", "hello"), Turn("and now?", "still here")]
    assert len(payloads) == 2
    assert [message.content for message in payloads[1].messages] == ["and now?"]
    (event,) = recorder.tail(event="transcript_restored")
    assert event["model"] == "claude-test"
    assert event["turns"] == 2


def test_restore_keeps_trailing_open_turn() -> None:
    session = _session()

    payloads = session.restore("User> hi\n\nAssistant> hello\n\nUser> pending")

    assert len(payloads) == 2
    assert session.history.open_turn is not None
    assert session.history.open_turn.user_content == "pending"


def test_restore_failure_leaves_history_untouched() -> None:
    session = _session()
    session.exchange("keep me", lambda payload: [_delta("kept")])

    with pytest.raises(MalformedTranscriptError):
        session.restore("User> a\n\nUser> b")

    assert session.history.turns == [Turn("keep me", "kept")]


def test_build_request_does_not_touch_history() -> None:
    session = _session(system_prompt="sys", temperature=0.0, max_tokens=64)
    session.history.append_user("draft")

    payload = session.build_request()

    assert payload.system == "sys"
    assert payload.temperature == 0.0
    assert payload.max_tokens == 64
    assert session.history.turns == [Turn("draft")]
