"""Tests for response decoding."""

from __future__ import annotations

import json

import pytest

from confab.ai.decoder import UNKNOWN_ERROR_MESSAGE, DecodedChunk, decode, decode_chunk


def test_text_delta_yields_its_text() -> None:
    event = {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}

    assert decode(event) == "Hi"
    assert decode_chunk(event) == DecodedChunk("Hi", is_final=False)


def test_lifecycle_events_yield_nothing() -> None:
    assert decode({"type": "message_start", "message": {"content": []}}) == ""
    assert decode({"type": "message_delta", "delta": {"stop_reason": "end_turn"}}) == ""


def test_input_json_delta_yields_partial_json() -> None:
    event = {"type": "content_block_delta", "delta": {"type": "input_json_delta", "partial_json": '{"a":'}}

    assert decode(event) == '{"a":'


def test_unknown_delta_type_yields_nothing() -> None:
    assert decode({"type": "content_block_delta", "delta": {"type": "thinking_delta", "thinking": "hmm"}}) == ""


def test_complete_response_yields_first_block_and_is_final() -> None:
    response = {
        "id": "msg_1",
        "type": "message",
        "content": [{"type": "text", "text": "Hello there"}, {"type": "text", "text": "ignored"}],
    }

    assert decode_chunk(response) == DecodedChunk("Hello there", is_final=True)


def test_error_object_yields_its_message() -> None:
    assert decode({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}) == "Overloaded"
    assert decode({"error": {"type": "x"}}) == UNKNOWN_ERROR_MESSAGE
    assert decode({"error": "boom"}) == UNKNOWN_ERROR_MESSAGE
    assert decode_chunk({"error": "boom"}).is_error
    assert not decode_chunk({"content": [{"type": "text", "text": "fine"}]}).is_error


def test_message_stop_is_final_without_text() -> None:
    assert decode_chunk({"type": "message_stop"}) == DecodedChunk("", is_final=True)
    assert decode_chunk({"type": "ping"}) == DecodedChunk("", is_final=False)


def test_raw_json_strings_and_bytes_are_parsed() -> None:
    event = {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "é"}}

    assert decode(json.dumps(event)) == "é"
    assert decode(json.dumps(event).encode("utf-8")) == "é"


def test_transport_diagnostics_are_skipped_before_error_object() -> None:
    raw = "curl: (22) The requested URL returned error: 529\n" + json.dumps(
        {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
    )

    assert decode(raw) == "Overloaded"
    assert decode_chunk(raw).is_error


def test_diagnostics_without_error_object_yield_nothing() -> None:
    assert decode("curl: (7) Failed to connect\nnot json either") == ""
    assert decode("curl: (7) Failed to connect\n" + json.dumps({"content": []})) == ""


@pytest.mark.parametrize(
    "value",
    [
        None,
        42,
        3.5,
        ["content_block_delta"],
        "",
        "not json",
        b"\xff\xfe",
        '"just a string"',
        "[1, 2, 3]",
        {"type": "content_block_delta"},
        {"type": "content_block_delta", "delta": "text"},
        {"type": "content_block_delta", "delta": {"type": "text_delta", "text": 5}},
        {"content": "flat"},
        {"content": []},
        {"content": [None]},
        {"content": [{"type": "tool_use", "id": "t1"}]},
    ],
)
def test_malformed_input_never_raises(value: object) -> None:
    chunk = decode_chunk(value)

    assert isinstance(chunk, DecodedChunk)
    assert chunk.text == ""
