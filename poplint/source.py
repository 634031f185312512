"""
poplint/source.py
═════════════════

Source text ownership: byte-offset spans, line/column mapping and
snippet extraction.

Every HIR node carries a :class:`Span` (half-open ``[lo, hi)`` offsets
into the text of its :class:`SourceFile`).  Spans are the currency of
the suggestion builder: replacements are expressed as ``(span, text)``
pairs and never as edits of a text buffer.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union


@dataclass(frozen=True, order=True)
class Span:
    """Half-open range ``[lo, hi)`` of character offsets."""
    lo: int
    hi: int

    def __post_init__(self) -> None:
        if self.lo < 0 or self.hi < self.lo:
            raise ValueError(f"invalid span [{self.lo}, {self.hi})")

    def __len__(self) -> int:
        return self.hi - self.lo

    def contains(self, other: Span) -> bool:
        return self.lo <= other.lo and other.hi <= self.hi

    def overlaps(self, other: Span) -> bool:
        """True if the two spans share at least one character."""
        return self.lo < other.hi and other.lo < self.hi

    def to(self, other: Span) -> Span:
        """Smallest span covering both ``self`` and ``other``."""
        return Span(min(self.lo, other.lo), max(self.hi, other.hi))


DUMMY_SPAN = Span(0, 0)


@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code (1-based line and column)."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


@dataclass
class SourceFile:
    """
    The text of one Rust source file.

    Attributes
    ----------
    name : display name (usually the path given on the command line)
    text : full source text
    """
    name: str
    text: str
    _line_starts: List[int] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        starts = [0]
        for idx, ch in enumerate(self.text):
            if ch == "\n":
                starts.append(idx + 1)
        self._line_starts = starts

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> SourceFile:
        p = Path(path)
        return cls(name=str(path), text=p.read_text(encoding="utf-8"))

    # ── position mapping ─────────────────────────────────────────────

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def line_col(self, offset: int) -> Tuple[int, int]:
        """Map a character offset to a 1-based ``(line, column)``."""
        offset = max(0, min(offset, len(self.text)))
        idx = bisect.bisect_right(self._line_starts, offset) - 1
        return idx + 1, offset - self._line_starts[idx] + 1

    def location(self, span: Span) -> SourceLocation:
        line, col = self.line_col(span.lo)
        return SourceLocation(file=self.name, line=line, column=col)

    def line_span(self, line: int) -> Span:
        """Span of a 1-based line, excluding its newline."""
        lo = self._line_starts[line - 1]
        if line < len(self._line_starts):
            hi = self._line_starts[line] - 1
        else:
            hi = len(self.text)
        return Span(lo, hi)

    def line_text(self, line: int) -> str:
        if line < 1 or line > self.line_count:
            return ""
        sp = self.line_span(line)
        return self.text[sp.lo:sp.hi].rstrip("\r")

    def lines_covering(self, span: Span) -> Span:
        """Span of all whole lines touched by ``span``."""
        first, _ = self.line_col(span.lo)
        last, _ = self.line_col(max(span.lo, span.hi - 1))
        return self.line_span(first).to(self.line_span(last))

    # ── snippets ─────────────────────────────────────────────────────

    def snippet(self, span: Optional[Span], default: str = "..") -> str:
        """Source text of ``span``, or ``default`` if it is unusable."""
        if span is None or span.hi > len(self.text) or span == DUMMY_SPAN:
            return default
        return self.text[span.lo:span.hi]
