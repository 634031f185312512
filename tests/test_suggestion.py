"""
Tests for suggestion edits, overlap checking and spans.
"""

import pytest

from poplint.errors import OverlappingEditsError
from poplint.source import DUMMY_SPAN, SourceFile, Span
from poplint.suggestion import (
    Applicability,
    Edit,
    MultiSpanSuggestion,
    apply_edits,
    check_disjoint,
)


class TestEdits:

    def test_apply_in_any_order(self):
        text = "abcdef"
        edits = [Edit(Span(4, 6), "XY"), Edit(Span(0, 1), "")]
        assert apply_edits(text, edits) == "bcdXY"

    def test_insertion(self):
        assert apply_edits("ac", [Edit(Span(1, 1), "b")]) == "abc"

    def test_no_edits(self):
        assert apply_edits("same", []) == "same"

    def test_overlap_raises(self):
        with pytest.raises(OverlappingEditsError) as excinfo:
            check_disjoint([Edit(Span(0, 4), "a"), Edit(Span(3, 6), "b")])
        assert excinfo.value.code.code == "POP-3001"

    def test_adjacent_edits_are_fine(self):
        check_disjoint([Edit(Span(0, 3), "a"), Edit(Span(3, 6), "b")])

    def test_two_insertions_at_one_offset_collide(self):
        with pytest.raises(OverlappingEditsError):
            check_disjoint([Edit(Span(2, 2), "a"), Edit(Span(2, 2), "b")])

    def test_suggestion_checks_overlap_on_construction(self):
        with pytest.raises(OverlappingEditsError):
            MultiSpanSuggestion("m", (Edit(Span(0, 5), ""), Edit(Span(1, 2), "")))

    def test_json_shape(self):
        suggestion = MultiSpanSuggestion("fix it", (Edit(Span(1, 2), "z"),))
        assert suggestion.to_json_dict() == {
            "message": "fix it",
            "applicability": "MachineApplicable",
            "edits": [{"lo": 1, "hi": 2, "replacement": "z"}],
        }
        assert suggestion.applicability is Applicability.MACHINE_APPLICABLE


class TestSpans:

    def test_invalid_span(self):
        with pytest.raises(ValueError):
            Span(5, 2)

    def test_overlap_and_containment(self):
        outer, inner, after = Span(0, 10), Span(2, 4), Span(10, 12)
        assert outer.contains(inner)
        assert not inner.contains(outer)
        assert outer.overlaps(inner)
        assert not outer.overlaps(after)
        assert outer.to(after) == Span(0, 12)
        assert len(inner) == 2


class TestSourceFile:

    def test_line_col(self):
        source = SourceFile("a.rs", "ab\ncd\n")
        assert source.line_col(0) == (1, 1)
        assert source.line_col(3) == (2, 1)
        assert source.line_col(4) == (2, 2)

    def test_location_string(self):
        source = SourceFile("a.rs", "ab\ncd\n")
        assert str(source.location(Span(4, 5))) == "a.rs:2:2"

    def test_line_text_strips_carriage_return(self):
        source = SourceFile("a.rs", "one\r\ntwo")
        assert source.line_text(1) == "one"
        assert source.line_text(2) == "two"
        assert source.line_text(3) == ""

    def test_lines_covering(self):
        source = SourceFile("a.rs", "ab\ncd\nef")
        covering = source.lines_covering(Span(1, 4))
        assert source.snippet(covering) == "ab\ncd"

    def test_snippet_fallback(self):
        source = SourceFile("a.rs", "abc")
        assert source.snippet(Span(0, 2)) == "ab"
        assert source.snippet(None) == ".."
        assert source.snippet(DUMMY_SPAN) == ".."
        assert source.snippet(Span(0, 99), default="?") == "?"
