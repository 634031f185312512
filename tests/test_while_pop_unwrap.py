"""
Tests for the loop detector and the fix it proposes.
"""

import pytest

from poplint.source import Span
from poplint.suggestion import PLACEHOLDER, Applicability, build_suggestion
from poplint.while_pop_unwrap import LINT_NAME, MESSAGE, PopStmtKind

from tests.conftest import (
    ARGUMENT_FORM_RS,
    FIELD_RECEIVER_RS,
    LOCAL_FORM_RS,
    MISMATCHED_RS,
    USER_STACK_RS,
    lint,
    lint_source,
    normalize,
    rewrite,
    wrap_fn,
)


class TestDetection:
    """Which loops are reported."""

    def test_local_form(self):
        source, findings = lint_source(LOCAL_FORM_RS)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.kind is PopStmtKind.LOCAL
        assert source.snippet(finding.pop_span) == "let x = v.pop().unwrap();"
        assert source.snippet(finding.loop_span) == "while !v.is_empty()"
        assert source.snippet(finding.receiver_span) == "v"

    def test_argument_form(self):
        source, findings = lint_source(ARGUMENT_FORM_RS)
        assert len(findings) == 1
        finding = findings[0]
        assert finding.kind is PopStmtKind.ANONYMOUS
        assert finding.pop_stmt.pat is None
        assert source.snippet(finding.pop_span) == "v.pop().unwrap()"

    def test_method_argument_form(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        out.push(v.pop().unwrap());\n"
            "    }",
            params="mut v: Vec<i32>, mut out: Vec<i32>",
        )
        assert len(findings) == 1
        assert findings[0].kind is PopStmtKind.ANONYMOUS

    def test_expect_variant(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        let x = v.pop().expect(\"non-empty\");\n"
            "        process(x);\n"
            "    }"
        )
        assert len(findings) == 1
        assert findings[0].kind is PopStmtKind.LOCAL

    def test_mismatched_receivers_are_ignored(self):
        _, findings = lint_source(MISMATCHED_RS)
        assert findings == []

    def test_pop_in_second_statement_is_ignored(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        log();\n"
            "        let x = v.pop().unwrap();\n"
            "    }"
        )
        assert findings == []

    def test_bare_pop_is_ignored(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        v.pop();\n"
            "    }"
        )
        assert findings == []

    def test_unwrap_or_is_ignored(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        let x = v.pop().unwrap_or(0);\n"
            "    }"
        )
        assert findings == []

    def test_empty_body_is_ignored(self):
        assert lint("    while !v.is_empty() {}") == []

    def test_tail_expression_is_not_a_statement(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        process(v.pop().unwrap())\n"
            "    }"
        )
        assert findings == []

    def test_len_comparison_is_ignored(self):
        findings = lint(
            "    while v.len() > 0 {\n"
            "        let x = v.pop().unwrap();\n"
            "    }"
        )
        assert findings == []

    def test_condition_without_negation_is_ignored(self):
        findings = lint(
            "    while v.is_empty() {\n"
            "        let x = v.pop().unwrap();\n"
            "    }"
        )
        assert findings == []

    def test_while_let_is_ignored(self):
        findings = lint(
            "    while let Some(x) = v.pop() {\n"
            "        process(x);\n"
            "    }"
        )
        assert findings == []

    def test_user_type_with_pop_is_ignored(self):
        _, findings = lint_source(USER_STACK_RS)
        assert findings == []

    def test_vec_deque_is_ignored(self):
        findings = lint(
            "    while !q.is_empty() {\n"
            "        let x = q.pop_back().unwrap();\n"
            "    }",
            params="mut q: std::collections::VecDeque<i32>",
        )
        assert findings == []

    def test_pop_of_another_binding_with_same_shape(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        let x = w.pop().unwrap();\n"
            "    }",
            params="mut v: Vec<i32>, mut w: Vec<i32>",
        )
        assert findings == []

    def test_field_receiver(self):
        source, findings = lint_source(FIELD_RECEIVER_RS)
        assert len(findings) == 1
        assert source.snippet(findings[0].receiver_span) == "self.stack"

    def test_parenthesised_receiver(self):
        findings = lint(
            "    while !(v.is_empty()) {\n"
            "        let x = (v).pop().unwrap();\n"
            "    }"
        )
        assert len(findings) == 1

    def test_labelled_loop(self):
        source, findings = lint_source(
            "fn f(mut v: Vec<i32>) {\n"
            "    'outer: while !v.is_empty() {\n"
            "        let x = v.pop().unwrap();\n"
            "        if x == 0 { break 'outer; }\n"
            "    }\n"
            "}\n"
        )
        assert len(findings) == 1
        assert source.snippet(findings[0].loop_span) == "while !v.is_empty()"

    def test_nested_loops_are_each_checked(self):
        _, findings = lint_source(
            "fn f(mut a: Vec<Vec<u8>>) {\n"
            "    while !a.is_empty() {\n"
            "        let mut inner = a.pop().unwrap();\n"
            "        while !inner.is_empty() {\n"
            "            let b = inner.pop().unwrap();\n"
            "            process(b);\n"
            "        }\n"
            "    }\n"
            "}\n"
        )
        assert len(findings) == 2

    def test_loop_inside_closure(self):
        _, findings = lint_source(
            "fn f() {\n"
            "    let drain = |mut v: Vec<i32>| {\n"
            "        while !v.is_empty() {\n"
            "            let x = v.pop().unwrap();\n"
            "            process(x);\n"
            "        }\n"
            "    };\n"
            "}\n"
        )
        assert len(findings) == 1

    def test_vec_built_by_macro(self):
        findings = lint(
            "    let mut stack = vec![1, 2, 3];\n"
            "    while !stack.is_empty() {\n"
            "        let top = stack.pop().unwrap();\n"
            "        process(top);\n"
            "    }",
            params="",
        )
        assert len(findings) == 1

    def test_vec_through_type_alias(self):
        _, findings = lint_source(
            "type Stack = Vec<u8>;\n"
            "\n"
            "fn f(mut s: Stack) {\n"
            "    while !s.is_empty() {\n"
            "        let x = s.pop().unwrap();\n"
            "    }\n"
            "}\n"
        )
        assert len(findings) == 1

    def test_vec_behind_mutable_reference(self):
        findings = lint(
            "    while !v.is_empty() {\n"
            "        let x = v.pop().unwrap();\n"
            "    }",
            params="v: &mut Vec<String>",
        )
        assert len(findings) == 1


class TestSuggestion:
    """The two-edit rewrite."""

    def test_local_form_rewrite(self):
        fixed = rewrite(LOCAL_FORM_RS)
        assert normalize(fixed) == normalize(
            "fn drain(mut v: Vec<i32>) {\n"
            "    while let Some(x) = v.pop() {\n"
            "        process(x);\n"
            "    }\n"
            "}\n"
        )

    def test_argument_form_rewrite(self):
        fixed = rewrite(ARGUMENT_FORM_RS)
        assert "while let Some(element) = v.pop() {" in fixed
        assert "process(other_arg, element);" in fixed

    def test_pattern_text_is_kept(self):
        fixed = rewrite(wrap_fn(
            "    while !v.is_empty() {\n"
            "        let mut x = v.pop().unwrap();\n"
            "        x += 1;\n"
            "    }"
        ))
        assert "while let Some(mut x) = v.pop() {" in fixed

    def test_tuple_pattern(self):
        fixed = rewrite(wrap_fn(
            "    while !pairs.is_empty() {\n"
            "        let (a, b) = pairs.pop().unwrap();\n"
            "    }",
            params="mut pairs: Vec<(u8, u8)>",
        ))
        assert "while let Some((a, b)) = pairs.pop() {" in fixed

    def test_receiver_text_is_kept(self):
        fixed = rewrite(FIELD_RECEIVER_RS)
        assert "while let Some(top) = self.stack.pop() {" in fixed
        assert "let top" not in fixed

    def test_edits_and_applicability(self):
        source, findings = lint_source(LOCAL_FORM_RS)
        suggestion = build_suggestion(findings[0], source)
        assert suggestion.applicability is Applicability.MACHINE_APPLICABLE
        assert suggestion.message == "consider using a `while..let` loop"
        assert len(suggestion.edits) == 2
        loop_edit, pop_edit = suggestion.edits
        assert loop_edit.span == findings[0].loop_span
        assert loop_edit.replacement == "while let Some(x) = v.pop()"
        assert pop_edit.span == findings[0].pop_span
        assert pop_edit.replacement == ""

    def test_anonymous_placeholder(self):
        source, findings = lint_source(ARGUMENT_FORM_RS)
        suggestion = build_suggestion(findings[0], source)
        assert suggestion.edits[1].replacement == PLACEHOLDER


class TestConstants:

    def test_lint_name_and_message(self):
        assert LINT_NAME == "while_pop_unwrap"
        assert MESSAGE == "you seem to be trying to pop elements from a `Vec` in a loop"

    def test_finding_spans_are_disjoint(self):
        _, findings = lint_source(LOCAL_FORM_RS)
        finding = findings[0]
        assert isinstance(finding.loop_span, Span)
        assert not finding.loop_span.overlaps(finding.pop_span)


@pytest.mark.parametrize("recv_decl,recv", [
    ("let mut v: Vec<u8> = Vec::new();", "v"),
    ("let mut v = Vec::<u8>::with_capacity(4);", "v"),
    ("let mut v: Vec<u8> = Vec::from([1, 2]);", "v"),
    ("let mut v = vec![0u8; 8];", "v"),
])
def test_receiver_declarations(recv_decl, recv):
    findings = lint(
        f"    {recv_decl}\n"
        f"    while !{recv}.is_empty() {{\n"
        f"        let x = {recv}.pop().unwrap();\n"
        f"    }}",
        params="",
    )
    assert len(findings) == 1
