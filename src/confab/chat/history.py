"""Turn-structured conversation history and its transcript form."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from ..errors import ErrorCode, MalformedTranscriptError
from .message_model import Message, Role, Turn

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TranscriptFormat:
    """Prompt markers that open each unit of a persisted transcript."""

    user_prompt: str = "User> "
    assistant_prompt: str = "Assistant> "
    separator: str = "\n\n"

    def __post_init__(self) -> None:
        if not self.user_prompt.strip() or not self.assistant_prompt.strip():
            raise ValueError("Transcript prompts must contain visible characters")
        if self.user_prompt.strip() == self.assistant_prompt.strip():
            raise ValueError("User and assistant prompts must differ")

    def delimiter_pattern(self) -> re.Pattern[str]:
        """Return the pattern matching either prompt at the start of a line."""

        labels = sorted({self.user_prompt, self.assistant_prompt}, key=len, reverse=True)
        alternatives = "|".join(re.escape(label) for label in labels)
        return re.compile(rf"^(?P<role>{alternatives})", re.MULTILINE)

    def prompt_for(self, role: Role) -> str:
        return self.user_prompt if role is Role.USER else self.assistant_prompt

    def role_for(self, marker: str) -> Role | None:
        """Map captured marker text onto a role, or ``None`` when unknown."""

        key = marker.strip().lower()
        if key in {self.user_prompt.strip().lower(), Role.USER.value}:
            return Role.USER
        if key in {self.assistant_prompt.strip().lower(), Role.ASSISTANT.value}:
            return Role.ASSISTANT
        return None


DEFAULT_FORMAT = TranscriptFormat()


@dataclass(slots=True, frozen=True)
class TranscriptUnit:
    """One delimited block of a transcript, before pairing into turns."""

    role: Role
    content: str
    offset: int


def split_transcript(
    text: str,
    turn_delimiter_pattern: str | re.Pattern[str] | None = None,
    *,
    format: TranscriptFormat | None = None,
) -> list[TranscriptUnit]:
    """Cut ``text`` into role-tagged units at every delimiter match.

    A custom pattern may define a named group ``role``; otherwise the whole
    match is used as the marker text. Markers are mapped to roles through
    ``format``. Non-blank text before the first delimiter is rejected.
    """

    transcript_format = format or DEFAULT_FORMAT
    pattern = _compile_delimiter(turn_delimiter_pattern, transcript_format)
    buffer = text or ""
    matches = list(pattern.finditer(buffer))
    leading_end = matches[0].start() if matches else len(buffer)
    if buffer[:leading_end].strip():
        raise MalformedTranscriptError(
            code=ErrorCode.LEADING_TEXT,
            message="Transcript has text before the first prompt",
            index=0,
            offset=0,
        )

    units: list[TranscriptUnit] = []
    for index, match in enumerate(matches):
        marker = match.group("role") if "role" in pattern.groupindex else match.group(0)
        role = transcript_format.role_for(marker or "")
        if role is None:
            raise MalformedTranscriptError(
                code=ErrorCode.INVALID_PATTERN,
                message=f"Cannot tell which role the prompt {marker!r} belongs to",
                index=index,
                offset=match.start(),
            )
        end = matches[index + 1].start() if index + 1 < len(matches) else len(buffer)
        content = buffer[match.end() : end].rstrip("\n")
        units.append(TranscriptUnit(role=role, content=content, offset=match.start()))
    return units


def _compile_delimiter(
    pattern: str | re.Pattern[str] | None,
    transcript_format: TranscriptFormat,
) -> re.Pattern[str]:
    if pattern is None:
        return transcript_format.delimiter_pattern()
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern, re.MULTILINE)
    except re.error as exc:
        raise MalformedTranscriptError(
            code=ErrorCode.INVALID_PATTERN,
            message=f"Invalid turn delimiter pattern: {exc}",
        ) from exc


def _pair_units(units: Sequence[tuple[Role, str, int | None]]) -> list[Turn]:
    turns: list[Turn] = []
    for index, (role, content, offset) in enumerate(units):
        if role is Role.USER:
            if turns and turns[-1].is_open:
                raise MalformedTranscriptError(
                    code=ErrorCode.CONSECUTIVE_USER,
                    message="Two user units appear without an assistant reply between them",
                    index=index,
                    offset=offset,
                )
            turns.append(Turn(user_content=content))
            continue
        if not turns:
            raise MalformedTranscriptError(
                code=ErrorCode.FIRST_UNIT_NOT_USER,
                message="Transcript must start with a user unit",
                index=index,
                offset=offset,
            )
        if not turns[-1].is_open:
            raise MalformedTranscriptError(
                code=ErrorCode.CONSECUTIVE_ASSISTANT,
                message="Assistant unit has no preceding unanswered user unit",
                index=index,
                offset=offset,
            )
        turns[-1].assistant_content = content
    return turns


class History:
    """Ordered sequence of :class:`Turn` objects owned by one session."""

    __slots__ = ("_turns",)

    def __init__(self, turns: Iterable[Turn] = ()) -> None:
        self._turns: list[Turn] = list(turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, History):
            return NotImplemented
        return self._turns == other._turns

    def __repr__(self) -> str:
        return f"History(turns={self._turns!r})"

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    @property
    def open_turn(self) -> Turn | None:
        """Return the last turn while it still awaits an assistant reply."""

        if self._turns and self._turns[-1].is_open:
            return self._turns[-1]
        return None

    def copy(self) -> History:
        return History(
            Turn(turn.user_content, turn.assistant_content, turn.error) for turn in self._turns
        )

    def clear(self) -> None:
        self._turns.clear()

    def append_user(self, text: str) -> Turn:
        """Start a new turn with ``text`` as the user side."""

        turn = Turn(user_content=text or "")
        self._turns.append(turn)
        return turn

    def append_assistant(self, text: str) -> Turn:
        """Extend the assistant side of the latest turn with ``text``."""

        if not self._turns:
            LOGGER.debug("Assistant text arrived with no user turn; starting an assistant-only turn")
            self._turns.append(Turn())
        turn = self._turns[-1]
        turn.assistant_content = (turn.assistant_content or "") + (text or "")
        return turn

    def fail_open_turn(self, reason: str) -> Turn | None:
        """Record a transport failure on the latest turn, if there is one."""

        if not self._turns:
            return None
        turn = self._turns[-1]
        turn.error = reason or "transport failed"
        return turn

    def to_messages(self) -> list[Message]:
        """Flatten turns into wire messages, dropping absent sides.

        Failed turns stay in the history for inspection but are never sent
        again or written to a transcript.
        """

        messages: list[Message] = []
        for turn in self._turns:
            if turn.failed:
                continue
            messages.extend(turn.messages())
        return messages

    @classmethod
    def from_messages(cls, messages: Iterable[Any]) -> History:
        """Re-pair alternating wire messages into turns."""

        units = []
        for message in messages:
            resolved = Message.from_value(message)
            units.append((resolved.role, resolved.content, None))
        return cls(_pair_units(units))

    @classmethod
    def from_transcript(
        cls,
        text: str,
        turn_delimiter_pattern: str | re.Pattern[str] | None = None,
        *,
        format: TranscriptFormat | None = None,
    ) -> History:
        """Parse a persisted transcript into a history.

        Raises :class:`MalformedTranscriptError` when the first unit is not a
        user unit or two same-role units are adjacent.
        """

        units = split_transcript(text, turn_delimiter_pattern, format=format)
        history = cls(_pair_units([(unit.role, unit.content, unit.offset) for unit in units]))
        LOGGER.debug("Parsed transcript into %s turn(s) from %s unit(s)", len(history), len(units))
        return history

    def to_transcript(self, format: TranscriptFormat | None = None) -> str:
        """Serialize the history using ``format`` prompt markers."""

        transcript_format = format or DEFAULT_FORMAT
        blocks = [
            f"{transcript_format.prompt_for(message.role)}{message.content}"
            for message in self.to_messages()
        ]
        return transcript_format.separator.join(blocks)


__all__ = [
    "DEFAULT_FORMAT",
    "History",
    "TranscriptFormat",
    "TranscriptUnit",
    "split_transcript",
]
