"""Pure-text structural scanning for chat transcripts."""

from .languages import CapabilityTable, LanguageAction, LanguageCapability, normalize_language
from .markup import CodeBlock, SCAN_ORDER, Span, SpanKind, code_block_at, extract_code_blocks, scan, scan_kind

__all__ = [
    "CapabilityTable",
    "CodeBlock",
    "LanguageAction",
    "LanguageCapability",
    "SCAN_ORDER",
    "Span",
    "SpanKind",
    "code_block_at",
    "extract_code_blocks",
    "normalize_language",
    "scan",
    "scan_kind",
]
