"""Tests for the language capability table."""

from __future__ import annotations

import pytest

from confab.scanner.languages import CapabilityTable, LanguageAction, LanguageCapability, normalize_language


def test_normalize_language_applies_aliases() -> None:
    assert normalize_language(" Py ") == "python"
    assert normalize_language("bash") == "shell"
    assert normalize_language("haskell") == "haskell"
    assert normalize_language(None) == ""


def test_default_table_resolves_modes_and_actions() -> None:
    table = CapabilityTable.default()

    shell = table.resolve("zsh")
    assert shell is not None
    assert shell.mode == "sh"
    assert shell.action is LanguageAction.STRUCTURED_EXECUTE
    assert table.resolve("rs").action is LanguageAction.COMPILE_AND_RUN  # type: ignore[union-attr]
    assert table.resolve("json").executable is False  # type: ignore[union-attr]
    assert table.resolve("brainfuck") is None
    assert table.resolve("") is None


def test_table_membership_and_listing() -> None:
    table = CapabilityTable.from_mapping({"python": ("python-mode", "interpret_inline")})

    assert "py" in table
    assert "ruby" not in table
    assert len(table) == 1
    assert table.languages() == ["python"]
    assert table.resolve("python3").mode == "python-mode"  # type: ignore[union-attr]


def test_custom_aliases_replace_defaults() -> None:
    table = CapabilityTable(
        [LanguageCapability("lisp", "lisp", LanguageAction.STRUCTURED_EXECUTE)],
        aliases={"el": "lisp"},
    )

    assert table.resolve("el") is not None
    assert table.resolve("py") is None


def test_capabilities_require_a_language() -> None:
    with pytest.raises(ValueError):
        CapabilityTable([LanguageCapability(" ", "text")])
    with pytest.raises(ValueError):
        CapabilityTable.from_mapping({"c": ("c", "explode")})
