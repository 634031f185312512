"""
Tests for position-insensitive expression equality.
"""

from poplint import hir as H
from poplint.spanless import SpanlessEq, eq_expr_value

from tests.conftest import analyze, wrap_fn


def _inits(text):
    """``init`` expression of every ``let`` in ``text``, in source order."""
    _, crate, results = analyze(text)
    body = crate.items[0].body
    return [s.init for s in body.stmts if isinstance(s, H.Local)], results


class TestStructural:

    def test_reflexive(self):
        (a,), results = _inits(wrap_fn("    let a = v.pop().unwrap();"))
        assert SpanlessEq(results).eq_expr(a, a)

    def test_whitespace_and_comments_ignored(self):
        (a, b), results = _inits(wrap_fn(
            "    let a = v.pop().unwrap();\n"
            "    let b = v\n        .pop() /* again */\n        .unwrap();"
        ))
        eq = SpanlessEq(results)
        assert eq.eq_expr(a, b)
        assert eq.eq_expr(b, a)

    def test_parentheses_ignored(self):
        (a, b), results = _inits(wrap_fn("    let a = v.len();\n    let b = (v).len();"))
        assert SpanlessEq(results).eq_expr(a, b)

    def test_different_methods(self):
        (a, b), results = _inits(wrap_fn("    let a = v.len();\n    let b = v.capacity();"))
        assert not SpanlessEq(results).eq_expr(a, b)

    def test_different_arguments(self):
        (a, b), _ = _inits(wrap_fn("    let a = f(1, 2);\n    let b = f(1, 3);", params=""))
        assert not SpanlessEq().eq_expr(a, b)

    def test_different_node_kinds(self):
        (a, b), _ = _inits(wrap_fn("    let a = x;\n    let b = x.y;", params="x: u8"))
        assert not SpanlessEq().eq_expr(a, b)

    def test_none_handling(self):
        eq = SpanlessEq()
        assert eq.eq_expr(None, None)
        (a,), _ = _inits(wrap_fn("    let a = 1;", params=""))
        assert not eq.eq_expr(a, None)
        assert not eq.eq_expr(None, a)

    def test_field_chains(self):
        (a, b, c), results = _inits(wrap_fn(
            "    let a = s.inner.items;\n"
            "    let b = s.inner.items;\n"
            "    let c = s.outer.items;",
            params="s: State",
        ))
        eq = SpanlessEq(results)
        assert eq.eq_expr(a, b)
        assert not eq.eq_expr(a, c)


class TestLiterals:

    def test_hex_equals_decimal(self):
        (a, b), _ = _inits(wrap_fn("    let a = 16;\n    let b = 0x10;", params=""))
        assert SpanlessEq().eq_expr(a, b)

    def test_suffix_ignored(self):
        (a, b), _ = _inits(wrap_fn("    let a = 16u8;\n    let b = 1_6;", params=""))
        assert eq_expr_value(None, a, b)

    def test_kinds_differ(self):
        (a, b), _ = _inits(wrap_fn("    let a = 1;\n    let b = 1.0;", params=""))
        assert not SpanlessEq().eq_expr(a, b)

    def test_strings(self):
        (a, b, c), _ = _inits(wrap_fn(
            "    let a = \"x\";\n    let b = r\"x\";\n    let c = \"y\";", params=""))
        eq = SpanlessEq()
        assert eq.eq_expr(a, b)
        assert not eq.eq_expr(a, c)


class TestBindings:

    def test_shadowed_names_differ(self):
        (_, a, _, b), results = _inits(wrap_fn(
            "    let x = 1;\n"
            "    let a = x;\n"
            "    let x = 2;\n"
            "    let b = x;",
            params="",
        ))
        assert not SpanlessEq(results).eq_expr(a, b)

    def test_without_resolver_names_compare_by_text(self):
        (_, a, _, b), _ = _inits(wrap_fn(
            "    let x = 1;\n"
            "    let a = x;\n"
            "    let x = 2;\n"
            "    let b = x;",
            params="",
        ))
        assert SpanlessEq().eq_expr(a, b)

    def test_same_binding(self):
        (a, b), results = _inits(wrap_fn("    let a = v;\n    let b = v;"))
        assert SpanlessEq(results).eq_expr(a, b)

    def test_non_local_paths_compare_by_segments(self):
        (a, b, c), results = _inits(wrap_fn(
            "    let a = std::u8::MAX;\n"
            "    let b = std::u8::MAX;\n"
            "    let c = std::u16::MAX;",
            params="",
        ))
        eq = SpanlessEq(results)
        assert eq.eq_expr(a, b)
        assert not eq.eq_expr(a, c)


class TestSideEffects:

    def test_calls_equal_by_default(self):
        (a, b), results = _inits(wrap_fn("    let a = v.len();\n    let b = v.len();"))
        assert SpanlessEq(results).eq_expr(a, b)

    def test_deny_side_effects(self):
        (a, b), results = _inits(wrap_fn("    let a = v.len();\n    let b = v.len();"))
        eq = SpanlessEq(results).deny_side_effects()
        assert not eq.eq_expr(a, b)

    def test_deny_side_effects_keeps_pure_expressions(self):
        (a, b), results = _inits(wrap_fn("    let a = v[0] + 1;\n    let b = v[0] + 1;"))
        assert SpanlessEq(results).deny_side_effects().eq_expr(a, b)


class TestOtherNodes:

    def test_block_items_never_equal(self):
        _, crate, results = analyze(
            "fn f() { fn g() {} }\n"
            "fn h() { fn g() {} }\n"
        )
        left = crate.items[0].body.stmts[0]
        right = crate.items[1].body.stmts[0]
        assert isinstance(left, H.ItemStmt)
        assert not SpanlessEq(results).eq_stmt(left, right)

    def test_patterns_and_types(self):
        _, crate, results = analyze(
            "fn f(a: Vec<u8>, b: Vec<u8>, c: Vec<u16>) {}\n"
        )
        params = crate.items[0].params
        eq = SpanlessEq(results)
        assert eq.eq_ty(params[0].ty, params[1].ty)
        assert not eq.eq_ty(params[0].ty, params[2].ty)
        assert not eq.eq_pat(params[0].pat, params[1].pat)

    def test_blocks(self):
        (a, b), results = _inits(wrap_fn(
            "    let a = { let t = 1; t + 1 };\n"
            "    let b = { let t = 1; t + 1 };",
            params="",
        ))
        # each block declares its own `t`
        assert not SpanlessEq(results).eq_block(a, b)
        assert SpanlessEq().eq_block(a, b)
