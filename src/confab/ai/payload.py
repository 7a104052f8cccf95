"""Outbound request assembly for the Messages API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping

from jsonschema import Draft7Validator, ValidationError

from ..chat.history import History
from ..chat.message_model import Message
from .tokens import BudgetSpec, TokenEstimator, apply_budget

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096

_MESSAGE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["role", "content"],
    "properties": {
        "role": {"type": "string", "enum": ["user", "assistant"]},
        "content": {"type": "string"},
    },
}

WIRE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["model", "messages", "max_tokens"],
    "properties": {
        "model": {"type": "string", "minLength": 1},
        "messages": {"type": "array", "minItems": 1, "items": _MESSAGE_SCHEMA},
        "system": {"type": "string"},
        "temperature": {"type": "number", "minimum": 0},
        "stream": {"type": "boolean"},
        "max_tokens": {"type": "integer", "minimum": 1},
    },
}

_WIRE_VALIDATOR = Draft7Validator(WIRE_SCHEMA)


def validate_wire(body: Mapping[str, Any]) -> None:
    """Raise ``ValueError`` when ``body`` does not match the request wire shape."""

    try:
        _WIRE_VALIDATOR.validate(dict(body))
    except ValidationError as error:
        path = ".".join(str(part) for part in error.path)
        message = f"{path}: {error.message}" if path else error.message
        raise ValueError(f"Invalid request payload: {message}") from error


@dataclass(slots=True, frozen=True)
class RequestPayload:
    """Immutable request handed to the transport collaborator.

    Optional fields left as ``None`` (or ``streaming=False``) are omitted from
    the wire form so the remote default applies.
    """

    model: str
    messages: tuple[Message, ...] = field(default_factory=tuple)
    system: str | None = None
    temperature: float | None = None
    streaming: bool = False
    max_tokens: int = DEFAULT_MAX_TOKENS

    def __post_init__(self) -> None:
        if not self.model:
            raise ValueError("A model name is required to build a request")
        object.__setattr__(self, "messages", tuple(Message.from_value(item) for item in self.messages))

    def to_wire(self) -> Dict[str, Any]:
        """Return the JSON-ready request body."""

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [message.to_dict() for message in self.messages],
            "max_tokens": int(self.max_tokens),
        }
        if self.system is not None:
            payload["system"] = self.system
        if self.temperature is not None:
            payload["temperature"] = float(self.temperature)
        if self.streaming:
            payload["stream"] = True
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False)


def build(
    model: str,
    history: History | Iterable[Any],
    budget_spec: BudgetSpec = None,
    system_prompt: str | None = None,
    temperature: float | None = None,
    streaming: bool = False,
    *,
    token_budget: int | None = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    estimator: TokenEstimator | None = None,
) -> RequestPayload:
    """Trim ``history`` to the budget and assemble a :class:`RequestPayload`."""

    messages = history.to_messages() if isinstance(history, History) else list(history)
    windowed = apply_budget(
        messages,
        budget_spec,
        model=model,
        token_budget=token_budget,
        estimator=estimator,
    )
    LOGGER.debug(
        "Built request for %s with %s of %s message(s)",
        model,
        len(windowed),
        len(messages),
    )
    return RequestPayload(
        model=model,
        messages=tuple(windowed),
        system=system_prompt,
        temperature=temperature,
        streaming=bool(streaming),
        max_tokens=max_tokens,
    )


__all__ = ["DEFAULT_MAX_TOKENS", "RequestPayload", "WIRE_SCHEMA", "build", "validate_wire"]
