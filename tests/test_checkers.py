"""
Tests for the checker framework: diagnostics, suppressions, registry
and runner.
"""

import json
from pathlib import Path
from typing import ClassVar

import pytest

from poplint import hir as H
from poplint.checkers import (
    Checker,
    CheckerContext,
    CheckerRegistry,
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
    SuppressionManager,
    WhilePopUnwrapChecker,
    allowed_lints,
    default_registry,
    iter_source_files,
)
from poplint.parser import parse_text
from poplint.source import SourceFile, SourceLocation, Span

from tests.conftest import (
    FIELD_RECEIVER_RS,
    LOCAL_FORM_RS,
    SUPPRESSED_RS,
)


class _ExplodingChecker(Checker):
    name: ClassVar[str] = "exploding"
    error_ids = frozenset({"boom"})

    def collect_evidence(self, ctx):
        raise RuntimeError("kaboom")

    def diagnose(self, ctx):
        pass


class _StatementCounter(Checker):
    """Reports each statement of the first function."""
    name: ClassVar[str] = "statement-counter"
    error_ids = frozenset({"statementSeen"})
    default_severity = DiagnosticSeverity.INFORMATION

    def __init__(self):
        super().__init__()
        self._stmts = []

    def collect_evidence(self, ctx):
        self._stmts = list(ctx.crate.items[0].body.stmts)

    def diagnose(self, ctx):
        for stmt in self._stmts:
            self._emit(ctx, "statementSeen", "statement", stmt.span)


class TestDiagnostic:

    def test_local_form_diagnostic(self, runner):
        results = runner.run_text(LOCAL_FORM_RS, "test.rs")
        assert results.total_count == 1
        diag = results.diagnostics[0]
        assert diag.error_id == "whilePopUnwrap"
        assert diag.severity is DiagnosticSeverity.STYLE
        assert diag.message == "you seem to be trying to pop elements from a `Vec` in a loop"
        assert diag.lint == "while_pop_unwrap"
        assert diag.checker_name == "while-pop-unwrap"
        assert (diag.location.line, diag.location.column) == (3, 9)
        assert diag.suggestion is not None
        assert len(diag.suggestion.edits) == 2
        (span, label), = diag.secondary
        assert label == "the loop condition checks for emptiness here"
        assert LOCAL_FORM_RS[span.lo:span.hi] == "while !v.is_empty()"

    def test_json_dict(self, runner):
        diag = runner.run_text(LOCAL_FORM_RS, "test.rs").diagnostics[0]
        data = json.loads(diag.to_json_str())
        assert data["file"] == "test.rs"
        assert data["linenr"] == 3
        assert data["column"] == 9
        assert data["severity"] == "style"
        assert data["errorId"] == "whilePopUnwrap"
        assert data["addon"] == "poplint"
        assert data["lint"] == "while_pop_unwrap"
        assert data["span"]["hi"] > data["span"]["lo"]
        assert data["suggestion"]["applicability"] == "MachineApplicable"
        replacements = [e["replacement"] for e in data["suggestion"]["edits"]]
        assert replacements == ["while let Some(x) = v.pop()", ""]

    def test_gcc_format(self, runner):
        diag = runner.run_text(LOCAL_FORM_RS, "test.rs").diagnostics[0]
        assert diag.to_gcc_format() == (
            "test.rs:3:9: style: you seem to be trying to pop elements from a "
            "`Vec` in a loop [whilePopUnwrap]"
        )

    def test_minimal_json_dict(self):
        diag = Diagnostic(
            error_id="syntaxError",
            message="bad",
            severity=DiagnosticSeverity.ERROR,
            location=SourceLocation("x.rs", 1, 2),
        )
        assert set(diag.to_json_dict()) == {
            "file", "linenr", "column", "severity", "message", "addon", "errorId",
        }

    def test_suggestions_can_be_disabled(self):
        runner = CheckerRunner(options={"suggestions": False})
        diag = runner.run_text(LOCAL_FORM_RS).diagnostics[0]
        assert diag.suggestion is None
        assert "suggestion" not in diag.to_json_dict()

    def test_clean_file(self, runner):
        results = runner.run_text("fn f() {}\n")
        assert results.total_count == 0
        assert results.stats["while-pop-unwrap_loops"] == 0


class TestSuppressions:

    def test_inline_on_previous_line(self, runner):
        text = LOCAL_FORM_RS.replace(
            "        let x",
            "        // poplint-suppress whilePopUnwrap\n        let x",
        )
        assert runner.run_text(text).total_count == 0

    def test_inline_on_same_line(self, runner):
        text = LOCAL_FORM_RS.replace(
            "v.pop().unwrap();",
            "v.pop().unwrap(); // poplint-suppress *",
        )
        assert runner.run_text(text).total_count == 0

    def test_inline_for_other_id(self, runner):
        text = LOCAL_FORM_RS.replace(
            "        let x",
            "        // poplint-suppress somethingElse\n        let x",
        )
        assert runner.run_text(text).total_count == 1

    def test_allow_attribute_on_function(self, runner):
        results = runner.run_text(SUPPRESSED_RS, "s.rs")
        assert results.total_count == 1
        assert results.diagnostics[0].location.line == 11

    @pytest.mark.parametrize("attr", [
        "#[allow(clippy::while_pop_unwrap)]",
        "#[allow(clippy::manual_while_let_some)]",
        "#[expect(clippy::style)]",
        "#[allow(poplint::all)]",
        "#[allow(dead_code, clippy::while_pop_unwrap)]",
    ])
    def test_allow_spellings(self, runner, attr):
        assert runner.run_text(attr + "\n" + LOCAL_FORM_RS).total_count == 0

    @pytest.mark.parametrize("attr", [
        "#[allow(dead_code)]",
        "#[allow(while_pop_unwrap)]",
        "#[deny(clippy::while_pop_unwrap)]",
        "#[derive(Debug)]",
    ])
    def test_attributes_that_do_not_suppress(self, runner, attr):
        assert runner.run_text(attr + "\n" + LOCAL_FORM_RS).total_count == 1

    def test_crate_level_allow(self, runner):
        text = "#![allow(clippy::while_pop_unwrap)]\n" + LOCAL_FORM_RS
        assert runner.run_text(text).total_count == 0

    def test_allow_on_impl_block(self, runner):
        text = FIELD_RECEIVER_RS.replace(
            "impl Machine", "#[allow(clippy::while_pop_unwrap)]\nimpl Machine")
        assert runner.run_text(text).total_count == 0

    def test_global_suppression(self):
        sm = SuppressionManager()
        sm.add_global_suppression("whilePopUnwrap")
        assert CheckerRunner(suppressions=sm).run_text(LOCAL_FORM_RS).total_count == 0

    def test_file_suppression(self):
        sm = SuppressionManager()
        sm.add_file_suppression("whilePopUnwrap", "gen_*.rs")
        runner = CheckerRunner(suppressions=sm)
        assert runner.run_text(LOCAL_FORM_RS, "gen_tables.rs").total_count == 0
        assert runner.run_text(LOCAL_FORM_RS, "main.rs").total_count == 1

    def test_allowed_lints(self):
        attr = H.Attribute("#[allow(clippy::while_pop_unwrap, dead_code)]", Span(0, 1))
        assert allowed_lints(attr) == frozenset({"while_pop_unwrap"})
        assert allowed_lints(H.Attribute("#[inline]", Span(0, 1))) == frozenset()

    def test_attribute_regions(self):
        source, crate = parse_text(SUPPRESSED_RS, "s.rs")
        sm = SuppressionManager()
        sm.load_attribute_suppressions(source, crate)
        quiet = crate.items[0]
        inside = Diagnostic("whilePopUnwrap", "m", DiagnosticSeverity.STYLE,
                            source.location(quiet.body.span), span=quiet.body.span,
                            lint="while_pop_unwrap")
        assert sm.is_suppressed(inside)
        unlinted = Diagnostic("syntaxError", "m", DiagnosticSeverity.ERROR,
                              source.location(quiet.body.span), span=quiet.body.span)
        assert not sm.is_suppressed(unlinted)


class TestRegistry:

    def test_default_registry(self):
        registry = default_registry()
        assert registry.names == ["while-pop-unwrap"]
        assert registry.get_by_name("while-pop-unwrap") is WhilePopUnwrapChecker
        assert registry.filter_by_error_id("whilePopUnwrap") == [WhilePopUnwrapChecker]

    def test_disable_enable(self):
        registry = CheckerRegistry()
        registry.register(WhilePopUnwrapChecker)
        registry.disable("while-pop-unwrap")
        assert registry.get_enabled() == []
        assert CheckerRunner(registry=registry).run_text(LOCAL_FORM_RS).total_count == 0
        registry.enable("while-pop-unwrap")
        assert registry.get_enabled() == [WhilePopUnwrapChecker]

    def test_unregister(self):
        registry = CheckerRegistry()
        registry.register(_ExplodingChecker)
        registry.unregister("exploding")
        assert registry.get_all() == []

    def test_register_as_decorator(self):
        registry = CheckerRegistry()

        @registry.register
        class Named(_ExplodingChecker):
            name: ClassVar[str] = "named"

        assert registry.get_by_name("named") is Named


class TestRunner:

    def test_syntax_error(self, runner):
        results = runner.run_text("fn f( {\n", "broken.rs")
        assert results.total_count == 1
        diag = results.diagnostics[0]
        assert diag.error_id == "syntaxError"
        assert diag.severity is DiagnosticSeverity.ERROR
        assert diag.location.file == "broken.rs"
        assert results.error_count == 1
        assert results.finding_count == 0

    def test_checker_crash_is_reported(self):
        registry = CheckerRegistry()
        registry.register(_ExplodingChecker)
        registry.register(WhilePopUnwrapChecker)
        results = CheckerRunner(registry=registry).run_text(LOCAL_FORM_RS)
        ids = sorted(d.error_id for d in results.diagnostics)
        assert ids == ["checkerInternalError", "whilePopUnwrap"]
        crash = results.by_error_id("checkerInternalError")[0]
        assert "kaboom" in crash.message
        assert crash.severity is DiagnosticSeverity.INFORMATION

    def test_checker_selection(self):
        registry = CheckerRegistry()
        registry.register(_StatementCounter)
        registry.register(WhilePopUnwrapChecker)
        runner = CheckerRunner(registry=registry)
        only = runner.run_text(LOCAL_FORM_RS, checkers=["while-pop-unwrap"])
        assert only.checker_names == ["while-pop-unwrap"]
        unknown = runner.run_text(LOCAL_FORM_RS, checkers=["nope"])
        assert unknown.checker_names == []
        assert unknown.total_count == 0

    def test_results_grouping(self):
        registry = CheckerRegistry()
        registry.register(_StatementCounter)
        registry.register(WhilePopUnwrapChecker)
        text = "fn f(mut v: Vec<u8>) {\n    let a = 1;\n" + LOCAL_FORM_RS.split("{", 1)[1]
        results = CheckerRunner(registry=registry).run_text(text, "g.rs")
        assert len(results.diagnostics_by_checker["statement-counter"]) == 1
        assert len(results.diagnostics_by_checker["while-pop-unwrap"]) == 1
        assert len(results.by_severity(DiagnosticSeverity.INFORMATION)) == 1
        assert len(results.by_file("g.rs")) == 2
        assert results.finding_count == 1
        assert "while-pop-unwrap: 1 findings" in results.summary()
        assert len(results.to_json_lines().splitlines()) == 2
        assert len(results.to_gcc_format().splitlines()) == 2

    def test_typeck_is_shared(self):
        source, crate = parse_text(LOCAL_FORM_RS)
        ctx = CheckerContext(source=source, crate=crate)
        first = ctx.typeck_results
        assert ctx.typeck_results is first
        assert "typeck_elapsed_ms" in ctx.stats
        assert ctx.lint_context().resolver is first

    def test_run_paths(self, runner, rust_tree):
        results = runner.run_paths([rust_tree])
        assert len(results.sources) == 3
        assert results.finding_count == 2
        names = sorted(Path(d.location.file).name for d in results.diagnostics)
        assert names == ["args.rs", "main.rs"]
        assert results.stats["while-pop-unwrap_loops"] == 3

    def test_iter_source_files(self, rust_tree):
        names = [p.name for p in iter_source_files([rust_tree])]
        assert names == ["clean.rs", "main.rs", "args.rs"]

    def test_missing_file(self, runner, tmp_path):
        results = runner.run_paths([tmp_path / "missing.rs"])
        assert [d.error_id for d in results.diagnostics] == ["fileReadError"]
        assert results.error_count == 1

    def test_undecodable_file(self, runner, tmp_path):
        bad = tmp_path / "bad.rs"
        bad.write_bytes(b"fn f() { \xff\xfe }")
        results = runner.run_paths([bad])
        assert [d.error_id for d in results.diagnostics] == ["fileReadError"]

    def test_merge(self):
        a = CheckerRunner().run_text(LOCAL_FORM_RS, "a.rs")
        b = CheckerRunner().run_text(LOCAL_FORM_RS, "b.rs")
        combined = CheckerRunResults()
        combined.merge(a)
        combined.merge(b)
        assert combined.total_count == 2
        assert set(combined.sources) == {"a.rs", "b.rs"}
        assert combined.checker_names == ["while-pop-unwrap"]
        assert combined.stats["while-pop-unwrap_loops"] == 2

    def test_run_source_file(self, runner):
        results = runner.run(SourceFile("x.rs", LOCAL_FORM_RS))
        assert results.sources["x.rs"].text == LOCAL_FORM_RS
