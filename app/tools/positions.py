"""Character-offset arithmetic shared by every mutation tool.

All offsets are plain code-point indices into a Python ``str``.
"""

from __future__ import annotations

from app.core.state import ContentRange


def clamp(value: int, length: int) -> int:
    """Pin *value* into ``[0, length]``."""
    return max(0, min(value, length))


def clamp_range(start: int, end: int, length: int) -> ContentRange:
    """Clamp a ``(from, to)`` pair so that ``0 <= from <= to <= length``.

    Inverted or out-of-bounds input degrades to a (possibly zero-length)
    range instead of raising.
    """
    safe_start = clamp(start, length)
    safe_end = max(safe_start, clamp(end, length))
    return ContentRange(start=safe_start, end=safe_end)


def splice(text: str, start: int, end: int, replacement: str = "") -> str:
    """Return *text* with ``text[start:end]`` swapped for *replacement*."""
    return text[:start] + replacement + text[end:]
