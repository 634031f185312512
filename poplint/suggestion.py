"""
poplint/suggestion.py
═════════════════════

Machine-applicable fix suggestions.

A :class:`MultiSpanSuggestion` is a set of ``(span, replacement)`` edits
that must be applied together.  The edits never overlap; that is checked
when the suggestion is built.  Applying them to the file on disk is left
to the tool that consumes the suggestion (an editor, ``--format json``
consumers, SARIF ``fixes``); :func:`apply_edits` exists for previews.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Sequence, Tuple

from poplint.errors import OverlappingEditsError
from poplint.source import SourceFile, Span
from poplint.while_pop_unwrap import Finding, PopStmtKind

logger = logging.getLogger(__name__)

PLACEHOLDER = "element"
SUGGESTION_MESSAGE = "consider using a `while..let` loop"


class Applicability(Enum):
    """How confident the suggestion is (same levels as rustc)."""
    MACHINE_APPLICABLE = "MachineApplicable"
    MAYBE_INCORRECT = "MaybeIncorrect"
    HAS_PLACEHOLDERS = "HasPlaceholders"
    UNSPECIFIED = "Unspecified"


@dataclass(frozen=True)
class Edit:
    span: Span
    replacement: str

    def to_json_dict(self) -> dict:
        return {"lo": self.span.lo, "hi": self.span.hi, "replacement": self.replacement}


@dataclass(frozen=True)
class MultiSpanSuggestion:
    message: str
    edits: Tuple[Edit, ...]
    applicability: Applicability = Applicability.MACHINE_APPLICABLE

    def __post_init__(self) -> None:
        check_disjoint(self.edits)

    def to_json_dict(self) -> dict:
        return {
            "message": self.message,
            "applicability": self.applicability.value,
            "edits": [e.to_json_dict() for e in self.edits],
        }


def check_disjoint(edits: Iterable[Edit]) -> None:
    """
    Raise :class:`OverlappingEditsError` if two edits touch the same text.

    Two insertions at the same offset also collide: their order would be
    ambiguous.
    """
    ordered = sorted(edits, key=lambda e: (e.span.lo, e.span.hi))
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.span.overlaps(cur.span) or prev.span == cur.span:
            raise OverlappingEditsError(
                f"edits [{prev.span.lo}, {prev.span.hi}) and "
                f"[{cur.span.lo}, {cur.span.hi}) overlap"
            )


def build_suggestion(finding: Finding, source: SourceFile) -> MultiSpanSuggestion:
    """
    Two edits: the loop header becomes ``while let Some(<pat>) = <recv>.pop()``
    and the pop site is deleted (local form) or replaced by ``element``.
    """
    if finding.kind is PopStmtKind.LOCAL:
        pat_span = finding.pop_stmt.pat.span if finding.pop_stmt.pat is not None else None
        pat = source.snippet(pat_span)
        pop_replacement = ""
    else:
        pat = PLACEHOLDER
        pop_replacement = PLACEHOLDER
    receiver = source.snippet(finding.receiver_span)
    loop_replacement = f"while let Some({pat}) = {receiver}.pop()"
    return MultiSpanSuggestion(
        message=SUGGESTION_MESSAGE,
        edits=(
            Edit(finding.loop_span, loop_replacement),
            Edit(finding.pop_span, pop_replacement),
        ),
        applicability=Applicability.MACHINE_APPLICABLE,
    )


def apply_edits(text: str, edits: Sequence[Edit]) -> str:
    """Return ``text`` with all ``edits`` applied (offsets refer to ``text``)."""
    check_disjoint(edits)
    pieces: List[str] = []
    cursor = 0
    for edit in sorted(edits, key=lambda e: e.span.lo):
        pieces.append(text[cursor:edit.span.lo])
        pieces.append(edit.replacement)
        cursor = edit.span.hi
    pieces.append(text[cursor:])
    return "".join(pieces)


__all__ = [
    "PLACEHOLDER",
    "SUGGESTION_MESSAGE",
    "Applicability",
    "Edit",
    "MultiSpanSuggestion",
    "check_disjoint",
    "build_suggestion",
    "apply_edits",
]
