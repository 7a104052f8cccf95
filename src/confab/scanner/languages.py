"""Language capability table for fenced code blocks.

A renderer that finds a code block asks the table two questions: which
editing mode should display the body, and what (if anything) the host may do
to run it. Both answers are fixed when the table is built.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping


class LanguageAction(str, Enum):
    """What a host is allowed to do with a block in a given language."""

    NONE = "none"
    COMPILE_AND_RUN = "compile_and_run"
    INTERPRET_INLINE = "interpret_inline"
    STRUCTURED_EXECUTE = "structured_execute"


@dataclass(slots=True, frozen=True)
class LanguageCapability:
    """Resolved presentation mode and action for one language identifier."""

    language: str
    mode: str
    action: LanguageAction = LanguageAction.NONE

    @property
    def executable(self) -> bool:
        return self.action is not LanguageAction.NONE


_ALIASES: Mapping[str, str] = {
    "py": "python",
    "python3": "python",
    "js": "javascript",
    "node": "javascript",
    "ts": "typescript",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    "c++": "cpp",
    "cc": "cpp",
    "objective-c": "objc",
    "objectivec": "objc",
    "elisp": "emacs-lisp",
    "golang": "go",
    "rs": "rust",
    "kt": "kotlin",
    "rb": "ruby",
    "yml": "yaml",
    "md": "markdown",
    "postgres": "sql",
    "postgresql": "sql",
    "sqlite": "sql",
}

DEFAULT_CAPABILITIES: Mapping[str, tuple[str, LanguageAction]] = {
    "c": ("c", LanguageAction.COMPILE_AND_RUN),
    "cpp": ("c++", LanguageAction.COMPILE_AND_RUN),
    "go": ("go", LanguageAction.COMPILE_AND_RUN),
    "rust": ("rust", LanguageAction.COMPILE_AND_RUN),
    "java": ("java", LanguageAction.COMPILE_AND_RUN),
    "kotlin": ("kotlin", LanguageAction.COMPILE_AND_RUN),
    "swift": ("swift", LanguageAction.COMPILE_AND_RUN),
    "objc": ("objc", LanguageAction.COMPILE_AND_RUN),
    "python": ("python", LanguageAction.INTERPRET_INLINE),
    "javascript": ("js", LanguageAction.INTERPRET_INLINE),
    "typescript": ("typescript", LanguageAction.INTERPRET_INLINE),
    "ruby": ("ruby", LanguageAction.INTERPRET_INLINE),
    "shell": ("sh", LanguageAction.STRUCTURED_EXECUTE),
    "emacs-lisp": ("emacs-lisp", LanguageAction.STRUCTURED_EXECUTE),
    "sql": ("sql", LanguageAction.STRUCTURED_EXECUTE),
    "json": ("json", LanguageAction.NONE),
    "yaml": ("yaml", LanguageAction.NONE),
    "markdown": ("markdown", LanguageAction.NONE),
    "html": ("html", LanguageAction.NONE),
    "css": ("css", LanguageAction.NONE),
}


def normalize_language(name: str | None, aliases: Mapping[str, str] | None = None) -> str:
    """Return the canonical identifier for a fence language token."""

    key = (name or "").strip().lower()
    if not key:
        return ""
    table = _ALIASES if aliases is None else aliases
    return table.get(key, key)


class CapabilityTable:
    """Immutable lookup from normalized language identifier to capability."""

    def __init__(
        self,
        capabilities: Iterable[LanguageCapability],
        *,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._aliases = dict(_ALIASES if aliases is None else aliases)
        self._entries: dict[str, LanguageCapability] = {}
        for capability in capabilities:
            key = normalize_language(capability.language, self._aliases)
            if not key:
                raise ValueError("Language capabilities require a language identifier")
            self._entries[key] = capability

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, tuple[str, LanguageAction | str]],
        *,
        aliases: Mapping[str, str] | None = None,
    ) -> CapabilityTable:
        """Build a table from ``{language: (mode, action)}`` entries."""

        entries = [
            LanguageCapability(language=language, mode=mode, action=LanguageAction(action))
            for language, (mode, action) in mapping.items()
        ]
        return cls(entries, aliases=aliases)

    @classmethod
    def default(cls) -> CapabilityTable:
        return cls.from_mapping(DEFAULT_CAPABILITIES)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_language(name, self._aliases) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, name: str | None) -> LanguageCapability | None:
        """Return the capability for ``name`` or ``None`` when unknown."""

        key = normalize_language(name, self._aliases)
        if not key:
            return None
        return self._entries.get(key)

    def languages(self) -> list[str]:
        return sorted(self._entries)


__all__ = [
    "CapabilityTable",
    "DEFAULT_CAPABILITIES",
    "LanguageAction",
    "LanguageCapability",
    "normalize_language",
]
