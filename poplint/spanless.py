"""
poplint/spanless.py
═══════════════════

Structural equality of HIR fragments, ignoring source positions.

``SpanlessEq`` answers "are these two expressions the same code?":

  * spans, ``hir_id``s, whitespace, comments and parentheses never
    matter (parentheses are already gone after lowering);
  * literals compare by kind and value, so ``0x10`` equals ``16``;
  * a path naming a local compares by the binding it resolves to, so
    two ``v`` that refer to different (shadowed) bindings differ;
  * paths that do not name locals compare by their segments.

Items declared inside blocks are never equal to anything: two
declarations of the same text are still two definitions.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any, Optional, Sequence

from poplint import hir as H
from poplint.resolver import SymbolResolver
from poplint.source import Span

_SKIPPED_FIELDS = frozenset({"hir_id", "span"})
_SIDE_EFFECTS = (H.Call, H.MethodCall, H.MacroCall, H.Assign)


class SpanlessEq:
    """
    Span-insensitive comparison of expressions, patterns, types,
    statements and blocks.

    Parameters
    ----------
    resolver : SymbolResolver, optional
        Used to compare local paths by binding.  Without one, paths
        compare by their segments only.
    """

    def __init__(self, resolver: Optional[SymbolResolver] = None) -> None:
        self.resolver = resolver
        self.allow_side_effects = True

    def deny_side_effects(self) -> SpanlessEq:
        """Treat calls and assignments as never equal (they may not be idempotent)."""
        self.allow_side_effects = False
        return self

    # ── public entry points ──────────────────────────────────────────

    def eq_expr(self, a: Optional[H.Expr], b: Optional[H.Expr]) -> bool:
        return self._eq_value(a, b)

    def eq_exprs(self, a: Sequence[H.Expr], b: Sequence[H.Expr]) -> bool:
        return self._eq_value(tuple(a), tuple(b))

    def eq_pat(self, a: Optional[H.Pat], b: Optional[H.Pat]) -> bool:
        return self._eq_value(a, b)

    def eq_ty(self, a: Optional[H.Ty], b: Optional[H.Ty]) -> bool:
        return self._eq_value(a, b)

    def eq_stmt(self, a: Optional[H.Stmt], b: Optional[H.Stmt]) -> bool:
        return self._eq_value(a, b)

    def eq_block(self, a: Optional[H.Block], b: Optional[H.Block]) -> bool:
        return self._eq_value(a, b)

    # ── comparison core ──────────────────────────────────────────────

    def _eq_value(self, a: Any, b: Any) -> bool:
        if a is None or b is None:
            return a is None and b is None
        if isinstance(a, H.Node) or isinstance(b, H.Node):
            if not (isinstance(a, H.Node) and isinstance(b, H.Node)):
                return False
            return self._eq_node(a, b)
        if isinstance(a, tuple) or isinstance(b, tuple):
            if not (isinstance(a, tuple) and isinstance(b, tuple)) or len(a) != len(b):
                return False
            return all(self._eq_value(x, y) for x, y in zip(a, b))
        if isinstance(a, Span):
            return True
        return type(a) is type(b) and a == b

    def _eq_node(self, a: H.Node, b: H.Node) -> bool:
        if type(a) is not type(b):
            return False
        if not self.allow_side_effects and isinstance(a, _SIDE_EFFECTS):
            return False
        if isinstance(a, H.PathExpr):
            return self._eq_path_expr(a, b)
        if isinstance(a, H.Lit):
            return a.kind is b.kind and a.value == b.value
        if isinstance(a, (H.ItemStmt, H.Item)):
            return a is b
        for f in fields(a):
            if f.name in _SKIPPED_FIELDS:
                continue
            if not self._eq_value(getattr(a, f.name), getattr(b, f.name)):
                return False
        return True

    def _eq_path_expr(self, a: H.PathExpr, b: H.PathExpr) -> bool:
        if self.resolver is not None:
            left = self.resolver.binding_of(a)
            right = self.resolver.binding_of(b)
            if left is not None or right is not None:
                return left == right
        return a.segments == b.segments and self._eq_value(a.generic_args, b.generic_args)


def eq_expr_value(resolver: Optional[SymbolResolver], a: H.Expr, b: H.Expr) -> bool:
    """Convenience wrapper: ``SpanlessEq(resolver).eq_expr(a, b)``."""
    return SpanlessEq(resolver).eq_expr(a, b)


__all__ = ["SpanlessEq", "eq_expr_value"]
