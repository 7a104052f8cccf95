"""Conversation history: messages, turns and the transcript format."""

from .history import DEFAULT_FORMAT, History, TranscriptFormat, TranscriptUnit, split_transcript
from .message_model import Message, Role, Turn

__all__ = [
    "DEFAULT_FORMAT",
    "History",
    "Message",
    "Role",
    "TranscriptFormat",
    "TranscriptUnit",
    "Turn",
    "split_transcript",
]
