"""Extract assistant text from chat API response units.

The decoder runs inside live streaming loops, so it is total: any input,
however malformed, yields a string. Failures are logged at DEBUG and degrade
to ``""``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

LOGGER = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown API error"
TRANSPORT_DIAGNOSTIC_PREFIXES: tuple[str, ...] = ("curl:", "httpx.", "HTTP error")
_LIFECYCLE_EVENTS = frozenset({"message_start", "message_delta"})
_FINAL_EVENTS = frozenset({"message_stop"})


@dataclass(slots=True, frozen=True)
class DecodedChunk:
    """Visible text extracted from one response unit.

    ``is_error`` marks text taken from an API error object rather than from
    the assistant reply.
    """

    text: str
    is_final: bool = False
    is_error: bool = False


def decode(value: Any) -> str:
    """Return the assistant-visible text carried by ``value``."""

    return decode_chunk(value).text


def decode_chunk(value: Any) -> DecodedChunk:
    """Decode one response unit, never raising."""

    try:
        return _decode(value, allow_raw=True)
    except Exception:  # pragma: no cover - must not abort a stream
        LOGGER.debug("Response decode failed; yielding empty text", exc_info=True)
        return DecodedChunk("")


def _decode(value: Any, *, allow_raw: bool) -> DecodedChunk:
    if isinstance(value, (bytes, bytearray, memoryview)):
        if not allow_raw:
            return DecodedChunk("")
        return _decode_raw(bytes(value).decode("utf-8", errors="replace"))
    if isinstance(value, str):
        if not allow_raw:
            return DecodedChunk("")
        return _decode_raw(value)
    if not isinstance(value, Mapping):
        return DecodedChunk("")

    event_type = value.get("type")
    if event_type == "content_block_delta":
        return DecodedChunk(_delta_text(value.get("delta")))
    if event_type in _LIFECYCLE_EVENTS:
        return DecodedChunk("")
    if "content" in value:
        return DecodedChunk(_first_block_text(value.get("content")), is_final=True)
    if "error" in value:
        return DecodedChunk(_error_message(value.get("error")), is_final=True, is_error=True)
    return DecodedChunk("", is_final=event_type in _FINAL_EVENTS)


def _decode_raw(raw: str) -> DecodedChunk:
    try:
        parsed = json.loads(raw)
    except ValueError:
        LOGGER.debug("Response unit is not JSON; looking for a trailing error object")
        message = _diagnostic_error_message(raw)
        return DecodedChunk(message, is_final=bool(message), is_error=bool(message))
    return _decode(parsed, allow_raw=False)


def _delta_text(delta: Any) -> str:
    if not isinstance(delta, Mapping):
        return ""
    delta_type = delta.get("type")
    if delta_type == "text_delta":
        return _as_text(delta.get("text"))
    if delta_type == "input_json_delta":
        return _as_text(delta.get("partial_json"))
    return ""


def _first_block_text(content: Any) -> str:
    if not isinstance(content, (list, tuple)) or not content:
        return ""
    first = content[0]
    if not isinstance(first, Mapping):
        return ""
    return _as_text(first.get("text"))


def _error_message(error: Any) -> str:
    if isinstance(error, Mapping):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return UNKNOWN_ERROR_MESSAGE


def _diagnostic_error_message(raw: str) -> str:
    """Skip leading transport diagnostics and read what follows as an error object."""

    lines = raw.splitlines()
    index = 0
    while index < len(lines) and (
        not lines[index].strip() or lines[index].lstrip().startswith(TRANSPORT_DIAGNOSTIC_PREFIXES)
    ):
        index += 1
    if index == 0 or index >= len(lines):
        return ""
    remainder = "\n".join(lines[index:])
    try:
        parsed = json.loads(remainder)
    except ValueError:
        return ""
    if isinstance(parsed, Mapping) and "error" in parsed:
        return _error_message(parsed.get("error"))
    return ""


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


__all__ = [
    "DecodedChunk",
    "TRANSPORT_DIAGNOSTIC_PREFIXES",
    "UNKNOWN_ERROR_MESSAGE",
    "decode",
    "decode_chunk",
]
