"""Core offset types shared by the scanner and the renderers that consume it."""

from .ranges import RangeSet, TextRange

__all__ = ["RangeSet", "TextRange"]
