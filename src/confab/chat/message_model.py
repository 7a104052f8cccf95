"""Chat message and turn data models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class Role(str, Enum):
    """Speaker of a wire message."""

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def coerce(cls, value: Any) -> Role:
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported message role: {value!r}") from exc


@dataclass(slots=True, frozen=True)
class Message:
    """Flat wire unit sent to and received from the chat API."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role.coerce(self.role))
        object.__setattr__(self, "content", "" if self.content is None else str(self.content))

    def to_dict(self) -> Dict[str, str]:
        """Serialize the message for the request body."""

        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_value(cls, value: Any) -> Message:
        """Coerce a mapping or :class:`Message` into a :class:`Message`."""

        if isinstance(value, Message):
            return value
        if isinstance(value, Mapping):
            return cls(role=value.get("role", Role.USER), content=value.get("content", ""))
        raise TypeError("Messages must be Message instances or mappings")

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(Role.ASSISTANT, content)


@dataclass(slots=True)
class Turn:
    """One user/assistant exchange; either side may be absent.

    ``error`` is set when the transport reported a failure for this turn, so
    an unanswered turn can be told apart from one answered with ``""``.
    """

    user_content: str | None = None
    assistant_content: str | None = None
    error: str | None = None

    @property
    def is_open(self) -> bool:
        """Return ``True`` while the assistant side is still absent."""

        return self.assistant_content is None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def messages(self) -> list[Message]:
        result: list[Message] = []
        if self.user_content is not None:
            result.append(Message(Role.USER, self.user_content))
        if self.assistant_content is not None:
            result.append(Message(Role.ASSISTANT, self.assistant_content))
        return result

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "user_content": self.user_content,
            "assistant_content": self.assistant_content,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


__all__ = ["Message", "Role", "Turn"]
