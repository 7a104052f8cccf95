"""Request building, token budgeting, response decoding and transport."""

from .decoder import DecodedChunk, decode, decode_chunk
from .payload import RequestPayload, build
from .session import ChatSession, SessionConfig
from .tokens import TokenEstimator, apply_budget, estimate, trim

__all__ = [
    "ChatSession",
    "DecodedChunk",
    "RequestPayload",
    "SessionConfig",
    "TokenEstimator",
    "apply_budget",
    "build",
    "decode",
    "decode_chunk",
    "estimate",
    "trim",
]
