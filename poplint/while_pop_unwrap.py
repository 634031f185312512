"""
poplint/while_pop_unwrap.py
═══════════════════════════

Detects loops that drain a ``Vec`` by hand::

    while !v.is_empty() {
        let x = v.pop().unwrap();
        use(x);
    }

and proposes the equivalent ``while let Some(x) = v.pop() { use(x); }``.

Two shapes of the first body statement are recognised:

  * **local**     — ``let PAT = R.pop().unwrap();``: the statement is
                    removed and ``PAT`` moves into the loop header;
  * **anonymous** — ``f(.., R.pop().unwrap(), ..)`` or
                    ``x.m(.., R.pop().expect(".."), ..)``: the argument is
                    replaced by the placeholder ``element``.

``R`` must be structurally the same expression as the receiver of the
``is_empty`` check.  Only the first statement is inspected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from poplint import hir as H
from poplint.matchers import LintContext, extract_pop_unwrap, match_method_call
from poplint.paths import VEC_IS_EMPTY
from poplint.source import Span

logger = logging.getLogger(__name__)

LINT_NAME = "while_pop_unwrap"
MESSAGE = "you seem to be trying to pop elements from a `Vec` in a loop"


class PopStmtKind(Enum):
    LOCAL = "local"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class PopStmt:
    """Where the ``pop().unwrap()`` appeared."""
    kind: PopStmtKind
    pat: Optional[H.Pat] = None

    @classmethod
    def local(cls, pat: H.Pat) -> PopStmt:
        return cls(PopStmtKind.LOCAL, pat)

    @classmethod
    def anonymous(cls) -> PopStmt:
        return cls(PopStmtKind.ANONYMOUS)


@dataclass(frozen=True)
class Finding:
    """
    One detected loop.

    Attributes
    ----------
    pop_span      : the ``let`` statement (local) or the argument (anonymous)
    loop_span     : ``while <cond>``, the text the new header replaces
    receiver_span : the receiver of the ``is_empty`` check
    pop_stmt      : which shape was found
    """
    pop_span: Span
    loop_span: Span
    receiver_span: Span
    pop_stmt: PopStmt

    @property
    def kind(self) -> PopStmtKind:
        return self.pop_stmt.kind


def is_vec_pop_unwrap(cx: LintContext, expr: H.Expr, is_empty_recv: H.Expr) -> bool:
    """``expr`` pops-and-unwraps the same ``Vec`` that was checked for emptiness."""
    pop_recv = extract_pop_unwrap(cx, expr)
    if pop_recv is None:
        return False
    return cx.spanless_eq().eq_expr(pop_recv, is_empty_recv)


def check_local(
    cx: LintContext, stmt: H.Stmt, is_empty_recv: H.Expr, loop_span: Span,
) -> Optional[Finding]:
    if isinstance(stmt, H.Local) and stmt.init is not None \
            and is_vec_pop_unwrap(cx, stmt.init, is_empty_recv):
        return Finding(stmt.span, loop_span, is_empty_recv.span, PopStmt.local(stmt.pat))
    return None


def check_call_arguments(
    cx: LintContext, stmt: H.Stmt, is_empty_recv: H.Expr, loop_span: Span,
) -> Optional[Finding]:
    if not isinstance(stmt, H.ExprStmt):
        return None
    expr = stmt.expr
    if not isinstance(expr, (H.MethodCall, H.Call)):
        return None
    for arg in expr.args:
        if is_vec_pop_unwrap(cx, arg, is_empty_recv):
            return Finding(arg.span, loop_span, is_empty_recv.span, PopStmt.anonymous())
    return None


def classify_first_statement(
    cx: LintContext, stmt: H.Stmt, is_empty_recv: H.Expr, loop_span: Span,
) -> Optional[Finding]:
    """Match ``stmt`` against the local form, then the call-argument form."""
    return check_local(cx, stmt, is_empty_recv, loop_span) \
        or check_call_arguments(cx, stmt, is_empty_recv, loop_span)


def check(cx: LintContext, cond: H.Expr, body: H.Expr, loop_span: Span) -> Optional[Finding]:
    """
    Examine one ``while`` loop.

    ``cond`` must be ``!R.is_empty()`` with ``is_empty`` resolving to
    ``Vec::is_empty``, and ``body`` a block with at least one statement.
    """
    if not (isinstance(cond, H.Unary) and cond.op is H.UnOp.NOT):
        return None
    inner = cond.operand
    if not (isinstance(inner, H.MethodCall) and match_method_call(cx, inner, VEC_IS_EMPTY)):
        logger.debug("loop at %s: condition is not `!Vec::is_empty()`", loop_span)
        return None
    if not isinstance(body, H.Block) or not body.stmts:
        logger.debug("loop at %s: body has no statements", loop_span)
        return None
    finding = classify_first_statement(cx, body.stmts[0], inner.receiver, loop_span)
    if finding is None:
        logger.debug("loop at %s: first statement does not pop the checked Vec", loop_span)
    return finding


def check_while(cx: LintContext, loop: H.While) -> Optional[Finding]:
    """:func:`check` applied to a ``while`` node, using its header span."""
    return check(cx, loop.cond, loop.body, loop.header_span)


__all__ = [
    "LINT_NAME",
    "MESSAGE",
    "PopStmtKind",
    "PopStmt",
    "Finding",
    "is_vec_pop_unwrap",
    "check_local",
    "check_call_arguments",
    "classify_first_statement",
    "check",
    "check_while",
]
