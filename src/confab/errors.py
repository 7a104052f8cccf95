"""Error and warning types surfaced by the session engine.

Data-integrity problems (a transcript whose roles do not alternate) are
raised to the caller. Context clipping is advisory and travels through the
:mod:`warnings` machinery. Transport failures belong to the HTTP layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Machine-readable codes attached to :class:`ConfabError` instances."""

    # Transcript restore
    FIRST_UNIT_NOT_USER = "first_unit_not_user"
    CONSECUTIVE_USER = "consecutive_user"
    CONSECUTIVE_ASSISTANT = "consecutive_assistant"
    LEADING_TEXT = "leading_text"
    INVALID_PATTERN = "invalid_pattern"

    # Transport
    TRANSPORT_FAILED = "transport_failed"
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"
    API_ERROR = "api_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ConfabError(Exception):
    """Base exception for engine errors.

    Attributes:
        code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured information.
    """

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


@dataclass
class MalformedTranscriptError(ConfabError):
    """Role alternation was violated while restoring a transcript.

    ``index`` is the position of the offending unit (0-based) and ``offset``
    its character offset in the transcript text when one is known.
    """

    code: str = field(default=ErrorCode.CONSECUTIVE_USER)
    message: str = field(default="Transcript roles do not alternate")
    details: dict[str, Any] = field(default_factory=dict)
    index: int | None = None
    offset: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.index is not None:
            result["index"] = self.index
        if self.offset is not None:
            result["offset"] = self.offset
        return result


@dataclass
class TransportError(ConfabError):
    """The HTTP transport could not deliver a response."""

    code: str = field(default=ErrorCode.TRANSPORT_FAILED)
    message: str = field(default="Request to the chat API failed")
    details: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None
    body: str | None = None

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return self.code in {ErrorCode.TRANSPORT_FAILED, ErrorCode.TIMEOUT}
        return self.status_code in RETRYABLE_STATUS_CODES or self.status_code >= 500

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})


class ContextClippedWarning(UserWarning):
    """Even the most recent exchange exceeds the configured token budget.

    The request still goes out with that exchange; the warning is advisory.
    """

    def __init__(self, estimate: int, budget: int) -> None:
        super().__init__(
            f"Most recent exchange needs ~{estimate} tokens which exceeds the budget of {budget}; "
            "sending it anyway"
        )
        self.estimate = estimate
        self.budget = budget


__all__ = [
    "ConfabError",
    "ContextClippedWarning",
    "ErrorCode",
    "MalformedTranscriptError",
    "RETRYABLE_STATUS_CODES",
    "TransportError",
]
