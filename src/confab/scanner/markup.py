"""Structural markup scanning for chat transcripts.

The scanner locates fenced code blocks and inline Markdown markup and
returns :class:`Span` records. It never mutates the buffer; renderers decide
how to present whatever spans they receive.

Kinds are scanned in :data:`SCAN_ORDER`. Each pass treats the ranges claimed
by earlier passes as opaque, so emphasis inside a code block or a link inside
inline code is never reported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping

from ..core.ranges import RangeSet, TextRange
from .languages import CapabilityTable, LanguageCapability


class SpanKind(str, Enum):
    """Structural markup categories, listed in scan priority order."""

    CODE_BLOCK = "code_block"
    INLINE_CODE = "inline_code"
    HEADER = "header"
    LINK = "link"
    BOLD = "bold"
    STRIKETHROUGH = "strikethrough"
    ITALIC = "italic"


SCAN_ORDER: tuple[SpanKind, ...] = tuple(SpanKind)


@dataclass(slots=True, frozen=True)
class Span:
    """Located markup region with kind-specific sub-ranges."""

    kind: SpanKind
    start: int
    end: int
    sub_spans: Mapping[str, TextRange] = field(default_factory=dict)

    @property
    def range(self) -> TextRange:
        return TextRange(self.start, self.end)

    @property
    def level(self) -> int | None:
        """Heading depth for :attr:`SpanKind.HEADER` spans."""

        marker = self.sub_spans.get("marker")
        if self.kind is not SpanKind.HEADER or marker is None:
            return None
        return marker.length

    def sub(self, name: str) -> TextRange | None:
        return self.sub_spans.get(name)

    def text(self, buffer: str) -> str:
        return buffer[self.start : self.end]

    def sub_text(self, buffer: str, name: str) -> str | None:
        """Return the substring for sub-range ``name`` or ``None`` when absent."""

        target = self.sub_spans.get(name)
        if target is None:
            return None
        return target.slice(buffer)

    def as_payload(self) -> Dict[str, Any]:
        """Serialize the span for JSON consumers."""

        return {
            "kind": self.kind.value,
            "start": self.start,
            "end": self.end,
            "sub_spans": {name: value.to_dict() for name, value in self.sub_spans.items()},
        }


@dataclass(slots=True, frozen=True)
class CodeBlock:
    """Fenced code block resolved against a capability table."""

    span: Span
    language: str
    body: str
    capability: LanguageCapability | None = None


_CODE_BLOCK_PATTERN = re.compile(
    r"^[ \t]*(?P<open>```)(?P<language>[^\s`]*)[^\n`]*\n"
    r"(?P<body>.*?)"
    r"^[ \t]*(?P<close>```)[ \t]*\r?$",
    re.MULTILINE | re.DOTALL,
)
_CLOSING_FENCE_PATTERN = re.compile(r"^[ \t]*```[ \t]*\r?$", re.MULTILINE)
_INLINE_CODE_PATTERN = re.compile(r"`(?P<text>[^`\n]+)`")
_HEADER_PATTERN = re.compile(r"^(?P<marker>#+) (?P<title>[^\n]+)", re.MULTILINE)
_LINK_PATTERN = re.compile(r"\[(?P<title>[^\]]+)\]\((?P<url>[^)]+)\)")
_BOLD_PATTERNS = (
    re.compile(r"\*\*(?P<text>[^*\n]+)\*\*"),
    re.compile(r"__(?P<text>[^_\n]+)__"),
)
_STRIKETHROUGH_PATTERN = re.compile(r"~~(?P<text>[^~\n]+)~~")
_ITALIC_PATTERNS = (
    re.compile(r"(?:^|(?<=\s))\*(?P<text>[^*\n]+)\*", re.MULTILINE),
    re.compile(r"(?:^|(?<=\s))_(?P<text>[^_\n]+)_", re.MULTILINE),
)


def _group_range(match: re.Match[str], name: str) -> TextRange:
    start, end = match.span(name)
    return TextRange(start, end)


def _code_block_parts(match: re.Match[str]) -> Dict[str, TextRange]:
    parts: Dict[str, TextRange] = {"open_fence": _group_range(match, "open")}
    if match.group("language"):
        parts["language"] = _group_range(match, "language")
    body_start, body_end = match.span("body")
    # The body group ends with the newline that precedes the closing fence.
    if body_end > body_start and match.string[body_end - 1] == "\n":
        body_end -= 1
        if body_end > body_start and match.string[body_end - 1] == "\r":
            body_end -= 1
    parts["body"] = TextRange(body_start, body_end)
    parts["close_fence"] = _group_range(match, "close")
    return parts


def _named_parts(*names: str) -> Callable[[re.Match[str]], Dict[str, TextRange]]:
    def build(match: re.Match[str]) -> Dict[str, TextRange]:
        return {name: _group_range(match, name) for name in names}

    return build


_RULES: Mapping[SpanKind, tuple[tuple[re.Pattern[str], ...], Callable[[re.Match[str]], Dict[str, TextRange]]]] = {
    SpanKind.CODE_BLOCK: ((_CODE_BLOCK_PATTERN,), _code_block_parts),
    SpanKind.INLINE_CODE: ((_INLINE_CODE_PATTERN,), _named_parts("text")),
    SpanKind.HEADER: ((_HEADER_PATTERN,), _named_parts("marker", "title")),
    SpanKind.LINK: ((_LINK_PATTERN,), _named_parts("title", "url")),
    SpanKind.BOLD: (_BOLD_PATTERNS, _named_parts("text")),
    SpanKind.STRIKETHROUGH: ((_STRIKETHROUGH_PATTERN,), _named_parts("text")),
    SpanKind.ITALIC: (_ITALIC_PATTERNS, _named_parts("text")),
}


def scan_kind(text: str, kind: SpanKind | str, avoid: Iterable[Any] = ()) -> list[Span]:
    """Return spans of ``kind`` found outside the ``avoid`` ranges.

    Candidates that intersect an avoided range are dropped whole; the search
    then resumes one character past the dropped candidate's start so a valid
    match hiding behind it is still found.
    """

    resolved = SpanKind(kind)
    patterns, build = _RULES[resolved]
    claimed = avoid.copy() if isinstance(avoid, RangeSet) else RangeSet(avoid)
    buffer = text or ""
    spans: list[Span] = []
    for pattern in patterns:
        spans.extend(_scan_pattern(buffer, pattern, resolved, claimed, build))
    spans.sort(key=lambda span: span.start)
    return spans


def scan(text: str, kinds: Iterable[SpanKind | str] = SCAN_ORDER) -> list[Span]:
    """Run every requested kind in priority order and return all spans by offset."""

    requested = {SpanKind(kind) for kind in kinds}
    claimed = RangeSet()
    spans: list[Span] = []
    for kind in SCAN_ORDER:
        if kind not in requested:
            continue
        found = scan_kind(text, kind, claimed)
        for span in found:
            claimed.add(span.range)
        spans.extend(found)
    spans.sort(key=lambda span: (span.start, span.end))
    return spans


def extract_code_blocks(text: str, table: CapabilityTable | None = None) -> list[CodeBlock]:
    """Return every fenced code block in ``text`` with its resolved capability."""

    buffer = text or ""
    capabilities = table or CapabilityTable.default()
    blocks: list[CodeBlock] = []
    for span in scan_kind(buffer, SpanKind.CODE_BLOCK):
        language = span.sub_text(buffer, "language") or ""
        blocks.append(
            CodeBlock(
                span=span,
                language=language,
                body=span.sub_text(buffer, "body") or "",
                capability=capabilities.resolve(language),
            )
        )
    return blocks


def code_block_at(text: str, offset: int, table: CapabilityTable | None = None) -> CodeBlock | None:
    """Return the code block whose span contains ``offset``, if any."""

    for block in extract_code_blocks(text, table):
        if block.span.range.contains(offset):
            return block
    return None


def _scan_pattern(
    text: str,
    pattern: re.Pattern[str],
    kind: SpanKind,
    claimed: RangeSet,
    build: Callable[[re.Match[str]], Dict[str, TextRange]],
) -> list[Span]:
    spans: list[Span] = []
    position = 0
    limit = _search_end(text, pattern)
    while position <= limit:
        match = pattern.search(text, position, limit)
        if match is None:
            break
        start, end = match.span()
        if end <= start or claimed.intersects((start, end)):
            position = start + 1
            continue
        span = Span(kind=kind, start=start, end=end, sub_spans=build(match))
        claimed.add(span.range)
        spans.append(span)
        position = end
    return spans


def _search_end(text: str, pattern: re.Pattern[str]) -> int:
    if pattern is not _CODE_BLOCK_PATTERN:
        return len(text)
    # No block can end past the last closing fence line, and an opening fence
    # after it would otherwise make the lazy body scan to the end of the text.
    last = None
    for last in _CLOSING_FENCE_PATTERN.finditer(text):
        pass
    return last.end() if last is not None else 0


__all__ = [
    "CodeBlock",
    "SCAN_ORDER",
    "Span",
    "SpanKind",
    "code_block_at",
    "extract_code_blocks",
    "scan",
    "scan_kind",
]
