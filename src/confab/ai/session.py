"""Session handle tying history, budgeting, payload building and decoding together.

Each :class:`ChatSession` owns exactly one :class:`History`. Concurrent
pipelines (a primary conversation and a one-off query) use separate sessions;
:meth:`ChatSession.fork` produces one with an independent copy of the history.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, AsyncIterable, Callable, Iterable

from ..chat.history import History, TranscriptFormat
from ..chat.message_model import Turn
from ..errors import ErrorCode, TransportError
from ..services import telemetry
from .decoder import DecodedChunk, decode_chunk
from .payload import DEFAULT_MAX_TOKENS, RequestPayload, build
from .tokens import BudgetSpec, TokenEstimator

LOGGER = logging.getLogger(__name__)

Transport = Callable[[RequestPayload], Any]
AsyncTransport = Callable[[RequestPayload], AsyncIterable[Any]]
ChunkListener = Callable[[DecodedChunk], None]


@dataclass(slots=True)
class SessionConfig:
    """Already-resolved request parameters for one session."""

    model: str
    system_prompt: str | None = None
    temperature: float | None = None
    streaming: bool = True
    budget_spec: BudgetSpec = None
    token_budget: int | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS


class ChatSession:
    """Drives one conversation through the request/response pipeline."""

    def __init__(
        self,
        config: SessionConfig,
        *,
        history: History | None = None,
        estimator: TokenEstimator | None = None,
        on_chunk: ChunkListener | None = None,
    ) -> None:
        self._config = config
        self._history = history if history is not None else History()
        self._estimator = estimator
        self._on_chunk = on_chunk

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def history(self) -> History:
        return self._history

    def fork(self) -> ChatSession:
        """Return a session with the same config and a copy of the history."""

        return ChatSession(self._config, history=self._history.copy(), estimator=self._estimator)

    def build_request(self) -> RequestPayload:
        """Build a payload from the current history without modifying it."""

        config = self._config
        return build(
            config.model,
            self._history,
            config.budget_spec,
            system_prompt=config.system_prompt,
            temperature=config.temperature,
            streaming=config.streaming,
            token_budget=config.token_budget,
            max_tokens=config.max_tokens,
            estimator=self._estimator,
        )

    def prepare(self, prompt: str) -> RequestPayload:
        """Append ``prompt`` as a new user turn and build its request."""

        self._history.append_user(prompt)
        return self.build_request()

    def feed(self, unit: Any) -> DecodedChunk:
        """Decode one response unit and accumulate its text on the open turn.

        An API error object raises :class:`~confab.errors.TransportError`
        instead; its message never becomes assistant text.
        """

        chunk = decode_chunk(unit)
        if chunk.is_error:
            raise TransportError(code=ErrorCode.API_ERROR, message=chunk.text)
        if chunk.text:
            self._history.append_assistant(chunk.text)
        if self._on_chunk is not None:
            self._on_chunk(chunk)
        return chunk

    def complete(self) -> Turn | None:
        """Close the latest turn; a reply with no visible text becomes ``""``."""

        if not len(self._history):
            return None
        turn = self._history[-1]
        if turn.assistant_content is None:
            self._history.append_assistant("")
        return turn

    def fail(self, reason: str) -> None:
        """Record a transport failure on the latest turn, leaving its text as is."""

        self._history.fail_open_turn(reason)
        telemetry.emit(telemetry.EXCHANGE_FAILED, {"model": self._config.model, "reason": reason})
        LOGGER.warning("Exchange with %s failed: %s", self._config.model, reason)

    def exchange(self, prompt: str, transport: Transport) -> str:
        """Run one request through a synchronous ``transport`` and return the reply."""

        payload = self.prepare(prompt)
        parts: list[str] = []
        try:
            for unit in _as_units(transport(payload)):
                parts.append(self.feed(unit).text)
        except Exception as exc:
            self.fail(str(exc) or exc.__class__.__name__)
            raise
        self.complete()
        return "".join(parts)

    async def aexchange(self, prompt: str, transport: AsyncTransport) -> str:
        """Async variant of :meth:`exchange`.

        Cancellation propagates and leaves the open turn partially filled.
        """

        payload = self.prepare(prompt)
        parts: list[str] = []
        try:
            async for unit in transport(payload):
                parts.append(self.feed(unit).text)
        except Exception as exc:
            self.fail(str(exc) or exc.__class__.__name__)
            raise
        self.complete()
        return "".join(parts)

    def restore(
        self,
        transcript: str,
        turn_delimiter_pattern: str | re.Pattern[str] | None = None,
        *,
        format: TranscriptFormat | None = None,
    ) -> list[RequestPayload]:
        """Replay a persisted transcript through the live pipeline.

        Each turn's user side goes through :meth:`prepare` and its assistant
        side through :meth:`feed`, exactly as a live exchange would. The
        session's history is replaced only once the whole transcript has been
        replayed; a :class:`~confab.errors.MalformedTranscriptError` leaves it
        untouched.
        """

        parsed = History.from_transcript(transcript, turn_delimiter_pattern, format=format)
        replay = ChatSession(self._config, estimator=self._estimator, on_chunk=self._on_chunk)
        payloads: list[RequestPayload] = []
        for turn in parsed:
            payloads.append(replay.prepare(turn.user_content or ""))
            if turn.assistant_content is None:
                continue
            replay.feed({"content": [{"type": "text", "text": turn.assistant_content}]})
            replay.complete()
        self._history = replay.history
        telemetry.emit(telemetry.TRANSCRIPT_RESTORED, {"model": self._config.model, "turns": len(parsed)})
        LOGGER.info("Restored %s turn(s) into session for %s", len(parsed), self._config.model)
        return payloads


def _as_units(result: Any) -> Iterable[Any]:
    if result is None:
        return ()
    if isinstance(result, (Mapping, str, bytes, bytearray)):
        return (result,)
    return result


__all__ = ["AsyncTransport", "ChatSession", "ChunkListener", "SessionConfig", "Transport"]
