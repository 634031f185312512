"""
Tests for the terminal, GCC, JSON and SARIF reporters.
"""

import io
import json

import pytest

from poplint.checkers import CheckerRunner, Diagnostic, DiagnosticSeverity
from poplint.plus_reporter import (
    Reporter,
    ReporterStats,
    Severity,
    SpanAnnotation,
    suggestion_preview,
)
from poplint.source import SourceFile, SourceLocation, Span

from tests.conftest import ARGUMENT_FORM_RS, LOCAL_FORM_RS


@pytest.fixture(autouse=True)
def _no_sarif_env(monkeypatch):
    monkeypatch.delenv("POPLINT_SARIF", raising=False)


@pytest.fixture
def local_results():
    return CheckerRunner().run_text(LOCAL_FORM_RS, "test.rs")


def _render(results, **kwargs):
    out, err = io.StringIO(), io.StringIO()
    with Reporter(stream=out, summary_stream=err, **kwargs) as rep:
        rep.report_all(results)
    return out.getvalue(), err.getvalue(), rep


class TestSeverity:

    def test_from_string(self):
        assert Severity.from_string(" Style ") is Severity.STYLE
        assert Severity.from_string("bogus") is Severity.WARNING

    def test_every_diagnostic_severity_maps(self):
        for sev in DiagnosticSeverity:
            assert Severity.from_string(sev.value).label == sev.value

    def test_sarif_levels(self):
        assert Severity.STYLE.sarif_level == "note"
        assert Severity.ERROR.sarif_level == "error"


class TestStats:

    def test_empty(self):
        assert ReporterStats().summary_line() == "no diagnostics emitted"

    def test_counts(self):
        stats = ReporterStats()
        stats.record(Severity.STYLE)
        stats.record(Severity.STYLE)
        stats.record(Severity.ERROR)
        assert stats.total == 3
        assert stats.summary_line() == "1 error; 2 style (3 total)"


class TestTextOutput:

    def test_plain_rendering(self, local_results):
        out, err, rep = _render(local_results, colour=False)
        lines = out.splitlines()
        assert lines[0] == (
            "style[whilePopUnwrap]: you seem to be trying to pop elements "
            "from a `Vec` in a loop"
        )
        assert lines[1] == "  --> test.rs:3:9"
        assert "  2 |     while !v.is_empty() {" in lines
        assert "  3 |         let x = v.pop().unwrap();" in lines
        assert "    |         " + "^" * 25 in lines
        assert any(
            line.endswith("-" * 19 + " the loop condition checks for emptiness here")
            for line in lines
        )
        assert "  = help: consider using a `while..let` loop" in lines
        assert "  2 ~     while let Some(x) = v.pop() {" in lines
        assert "  = note: `#[allow(clippy::while_pop_unwrap)]` silences this lint" in lines
        assert "\x1b[" not in out
        assert err.strip() == "╰─ 1 style (1 total)"
        assert rep.stats.style == 1

    def test_spans_sharing_a_line(self):
        text = (
            "fn drain(mut v: Vec<i32>) {\n"
            "    while !v.is_empty() { let x = v.pop().unwrap(); process(x); }\n"
            "}\n"
        )
        out, _, _ = _render(CheckerRunner().run_text(text, "one.rs"), colour=False)
        lines = out.splitlines()
        assert [line for line in lines if line.startswith("  2 |")] == [
            "  2 |     while !v.is_empty() { let x = v.pop().unwrap(); process(x); }"
        ]
        start = lines.index("  2 |     while !v.is_empty() { let x = v.pop().unwrap(); process(x); }")
        assert lines[start + 1] == "    |     " + "-" * 19 + " the loop condition checks for emptiness here"
        assert lines[start + 2] == "    |" + " " * 27 + "^" * 25
        assert {line.index("|") for line in lines if line.startswith("    |")} == {4}

    def test_colour_rendering(self, local_results):
        out, _, _ = _render(local_results, colour=True)
        assert "\x1b[" in out
        assert "whilePopUnwrap" in out

    def test_syntax_error_without_span(self):
        results = CheckerRunner().run_text("fn f( {\n", "broken.rs")
        out, err, _ = _render(results, colour=False)
        assert out.startswith("error[syntaxError]: cannot parse broken.rs")
        assert "~" not in out
        assert "1 error" in err

    def test_no_diagnostics(self):
        results = CheckerRunner().run_text("fn f() {}\n")
        out, err, _ = _render(results, colour=False)
        assert out == ""
        assert "no diagnostics emitted" in err


class TestMachineFormats:

    def test_gcc(self, local_results):
        out, err, _ = _render(local_results, output_format="gcc")
        assert out == local_results.to_gcc_format() + "\n"
        assert err == ""

    def test_json(self, local_results):
        out, _, _ = _render(local_results, output_format="json")
        records = [json.loads(line) for line in out.splitlines()]
        assert len(records) == 1
        assert records[0]["errorId"] == "whilePopUnwrap"

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            Reporter(output_format="xml")


class TestSarif:

    def test_sarif_file(self, local_results, tmp_path):
        target = tmp_path / "out.sarif"
        _render(local_results, colour=False, sarif_path=str(target), tool_version="9.9")
        sarif = json.loads(target.read_text(encoding="utf-8"))
        assert sarif["version"] == "2.1.0"
        run = sarif["runs"][0]
        assert run["tool"]["driver"]["version"] == "9.9"
        rule, = run["tool"]["driver"]["rules"]
        assert rule["id"] == "whilePopUnwrap"
        assert rule["name"] == "while_pop_unwrap"
        result, = run["results"]
        assert result["level"] == "note"
        region = result["locations"][0]["physicalLocation"]["region"]
        assert (region["startLine"], region["startColumn"]) == (3, 9)
        related, = result["relatedLocations"]
        assert related["physicalLocation"]["region"]["startLine"] == 2
        replacements = result["fixes"][0]["artifactChanges"][0]["replacements"]
        assert [r["insertedContent"]["text"] for r in replacements] == [
            "while let Some(x) = v.pop()", "",
        ]
        assert result["properties"]["applicability"] == "MachineApplicable"

    def test_sarif_path_from_environment(self, local_results, tmp_path, monkeypatch):
        target = tmp_path / "env.sarif"
        monkeypatch.setenv("POPLINT_SARIF", str(target))
        _render(local_results, output_format="gcc")
        assert json.loads(target.read_text(encoding="utf-8"))["runs"][0]["results"]

    def test_diagnostic_without_source(self, tmp_path):
        target = tmp_path / "bare.sarif"
        diag = Diagnostic("fileReadError", "cannot read file", DiagnosticSeverity.ERROR,
                          SourceLocation("gone.rs"))
        with Reporter(stream=io.StringIO(), summary_stream=io.StringIO(),
                      sarif_path=str(target)) as rep:
            rep.report(diag)
        result = json.loads(target.read_text(encoding="utf-8"))["runs"][0]["results"][0]
        assert result["locations"][0]["physicalLocation"]["region"] == {"startLine": 1}
        assert "fixes" not in result


class TestPreview:

    def test_local_form(self):
        results = CheckerRunner().run_text(LOCAL_FORM_RS)
        diag = results.diagnostics[0]
        source = results.sources["<string>"]
        assert suggestion_preview(source, diag.suggestion) == [
            (2, "    while let Some(x) = v.pop() {"),
            (3, "        "),
        ]

    def test_argument_form(self):
        results = CheckerRunner().run_text(ARGUMENT_FORM_RS)
        diag = results.diagnostics[0]
        source = results.sources["<string>"]
        assert suggestion_preview(source, diag.suggestion) == [
            (2, "    while let Some(element) = v.pop() {"),
            (3, "        process(other_arg, element);"),
        ]

    def test_span_annotation_multiline(self):
        source = SourceFile("a.rs", "abc\ndefgh\n")
        ann = SpanAnnotation.from_span(source, Span(1, 6), label="here")
        assert (ann.start_line, ann.start_col) == (1, 2)
        assert ann.end_line == 2
        assert ann.end_col == 4
