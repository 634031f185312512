"""
poplint/matchers.py
═══════════════════

Call-shape matching on resolved identities.

Every predicate here takes a :class:`LintContext` and answers from the
resolver's side tables.  A call the resolver could not resolve matches
nothing; none of these functions raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from poplint import hir as H
from poplint.paths import (
    OPTION_EXPECT,
    OPTION_UNWRAP,
    VEC_POP,
    CallIdentity,
    match_def_path,
)
from poplint.resolver import SymbolResolver
from poplint.source import SourceFile
from poplint.spanless import SpanlessEq

POP_UNWRAP_METHODS: Tuple[CallIdentity, ...] = (OPTION_UNWRAP, OPTION_EXPECT)


@dataclass(frozen=True)
class LintContext:
    """What a lint sees while checking one crate."""
    resolver: SymbolResolver
    source: Optional[SourceFile] = None

    def spanless_eq(self) -> SpanlessEq:
        return SpanlessEq(self.resolver)


def match_method_call(cx: LintContext, expr: H.Expr, path: Iterable[str]) -> bool:
    """True if ``expr`` is a method call resolving to exactly ``path``."""
    if not isinstance(expr, H.MethodCall):
        return False
    return match_def_path(cx.resolver.resolve(expr), path)


def is_call_to(
    cx: LintContext,
    expr: H.Expr,
    identities: Iterable[CallIdentity],
) -> bool:
    """True if ``expr`` is a method call resolving to one of ``identities``."""
    if not isinstance(expr, H.MethodCall):
        return False
    resolved = cx.resolver.resolve(expr)
    if resolved is None:
        return False
    return any(match_def_path(resolved, identity) for identity in identities)


def extract_pop_unwrap(cx: LintContext, expr: H.Expr) -> Optional[H.Expr]:
    """
    If ``expr`` is ``R.pop().unwrap()`` or ``R.pop().expect(..)`` with
    ``pop`` resolving to ``Vec::pop``, return ``R``.
    """
    if not isinstance(expr, H.MethodCall) or not is_call_to(cx, expr, POP_UNWRAP_METHODS):
        return None
    pop_call = expr.receiver
    if not isinstance(pop_call, H.MethodCall) or not match_method_call(cx, pop_call, VEC_POP):
        return None
    return pop_call.receiver


__all__ = [
    "LintContext",
    "POP_UNWRAP_METHODS",
    "match_method_call",
    "is_call_to",
    "extract_pop_unwrap",
]
