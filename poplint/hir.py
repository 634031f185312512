"""
poplint/hir.py
══════════════

High-level intermediate representation of a parsed Rust crate.

Every node is an immutable dataclass carrying

  * ``hir_id`` — a crate-unique integer assigned by the parser, used as
    the key of every side table (resolved call identities, expression
    types, local bindings);
  * ``span``   — the exact source range the node was parsed from.

Nodes compare by identity (``eq=False``).  Structural comparison that
ignores spans and ids is the job of :mod:`poplint.spanless`.

Parentheses do not survive lowering: ``(x)`` becomes the node for ``x``.
A block's trailing expression statement without a semicolon becomes the
block's ``expr``, so ``Block.stmts`` holds only real statements.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple

from poplint.source import Span


# ═════════════════════════════════════════════════════════════════════════
#  OPERATORS / LITERAL KINDS
# ═════════════════════════════════════════════════════════════════════════

class UnOp(Enum):
    NOT = "!"
    NEG = "-"
    DEREF = "*"


class BinOp(Enum):
    OR = "||"
    AND = "&&"
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    BIT_OR = "|"
    BIT_XOR = "^"
    BIT_AND = "&"
    SHL = "<<"
    SHR = ">>"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    REM = "%"

    @property
    def precedence(self) -> int:
        return _BINOP_PRECEDENCE[self]


_BINOP_PRECEDENCE = {
    BinOp.OR: 1,
    BinOp.AND: 2,
    BinOp.EQ: 3, BinOp.NE: 3, BinOp.LT: 3, BinOp.GT: 3, BinOp.LE: 3, BinOp.GE: 3,
    BinOp.BIT_OR: 4,
    BinOp.BIT_XOR: 5,
    BinOp.BIT_AND: 6,
    BinOp.SHL: 7, BinOp.SHR: 7,
    BinOp.ADD: 8, BinOp.SUB: 8,
    BinOp.MUL: 9, BinOp.DIV: 9, BinOp.REM: 9,
}


class LitKind(Enum):
    INT = "int"
    FLOAT = "float"
    STR = "str"
    BYTE_STR = "byte_str"
    CHAR = "char"
    BYTE = "byte"
    BOOL = "bool"


# ═════════════════════════════════════════════════════════════════════════
#  BASE
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class Node:
    hir_id: int
    span: Span

    def children(self) -> Iterator[Node]:
        """Direct child nodes, in source order."""
        for f in fields(self):
            if f.name in ("hir_id", "span"):
                continue
            yield from _nodes_in(getattr(self, f.name))


def _nodes_in(value: Any) -> Iterator[Node]:
    if isinstance(value, Node):
        yield value
    elif isinstance(value, tuple):
        for v in value:
            yield from _nodes_in(v)


@dataclass(frozen=True, eq=False)
class Expr(Node):
    pass


@dataclass(frozen=True, eq=False)
class Stmt(Node):
    pass


@dataclass(frozen=True, eq=False)
class Pat(Node):
    pass


@dataclass(frozen=True, eq=False)
class Ty(Node):
    pass


@dataclass(frozen=True, eq=False)
class Item(Node):
    pass


@dataclass(frozen=True)
class Attribute:
    """An outer or inner attribute, kept as its source text."""
    text: str
    span: Span

    @property
    def body(self) -> str:
        """Text between the brackets: ``allow(clippy::foo)``."""
        start = self.text.index("[") + 1
        return self.text[start:self.text.rindex("]")].strip()


# ═════════════════════════════════════════════════════════════════════════
#  TYPES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class PathTy(Ty):
    segments: Tuple[str, ...]
    args: Tuple[Ty, ...] = ()

    @property
    def name(self) -> str:
        return self.segments[-1]


@dataclass(frozen=True, eq=False)
class RefTy(Ty):
    mutable: bool
    inner: Ty


@dataclass(frozen=True, eq=False)
class PtrTy(Ty):
    mutable: bool
    inner: Ty


@dataclass(frozen=True, eq=False)
class TupleTy(Ty):
    elems: Tuple[Ty, ...]


@dataclass(frozen=True, eq=False)
class SliceTy(Ty):
    inner: Ty
    length: Optional[Expr] = None


@dataclass(frozen=True, eq=False)
class FnPtrTy(Ty):
    params: Tuple[Ty, ...]
    ret: Optional[Ty]


@dataclass(frozen=True, eq=False)
class OpaqueTy(Ty):
    """``impl Trait`` / ``dyn Trait``; only the first bound is kept."""
    keyword: str
    bound: Optional[Ty]


@dataclass(frozen=True, eq=False)
class NeverTy(Ty):
    pass


@dataclass(frozen=True, eq=False)
class InferTy(Ty):
    pass


# ═════════════════════════════════════════════════════════════════════════
#  PATTERNS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class BindingPat(Pat):
    name: str
    mutable: bool = False
    by_ref: bool = False
    subpat: Optional[Pat] = None


@dataclass(frozen=True, eq=False)
class WildPat(Pat):
    pass


@dataclass(frozen=True, eq=False)
class RestPat(Pat):
    pass


@dataclass(frozen=True, eq=False)
class TuplePat(Pat):
    elems: Tuple[Pat, ...]


@dataclass(frozen=True, eq=False)
class SlicePat(Pat):
    elems: Tuple[Pat, ...]


@dataclass(frozen=True, eq=False)
class TupleStructPat(Pat):
    path: Tuple[str, ...]
    elems: Tuple[Pat, ...]


@dataclass(frozen=True, eq=False)
class StructPat(Pat):
    path: Tuple[str, ...]


@dataclass(frozen=True, eq=False)
class PathPat(Pat):
    path: Tuple[str, ...]


@dataclass(frozen=True, eq=False)
class LitPat(Pat):
    lit: Expr


@dataclass(frozen=True, eq=False)
class RefPat(Pat):
    mutable: bool
    inner: Pat


@dataclass(frozen=True, eq=False)
class OrPat(Pat):
    alts: Tuple[Pat, ...]


# ═════════════════════════════════════════════════════════════════════════
#  EXPRESSIONS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class Lit(Expr):
    kind: LitKind
    value: Any
    suffix: str = ""


@dataclass(frozen=True, eq=False)
class PathExpr(Expr):
    segments: Tuple[str, ...]
    generic_args: Tuple[Ty, ...] = ()

    @property
    def is_single(self) -> bool:
        return len(self.segments) == 1


@dataclass(frozen=True, eq=False)
class MethodCall(Expr):
    receiver: Expr
    method: str
    args: Tuple[Expr, ...]
    method_span: Span
    generic_args: Tuple[Ty, ...] = ()


@dataclass(frozen=True, eq=False)
class Call(Expr):
    func: Expr
    args: Tuple[Expr, ...]


@dataclass(frozen=True, eq=False)
class MacroCall(Expr):
    path: Tuple[str, ...]
    args: Tuple[Expr, ...]
    delimiter: str = "("
    tokens: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path[-1]


@dataclass(frozen=True, eq=False)
class Field(Expr):
    base: Expr
    name: str


@dataclass(frozen=True, eq=False)
class Index(Expr):
    base: Expr
    index: Expr


@dataclass(frozen=True, eq=False)
class Unary(Expr):
    op: UnOp
    operand: Expr


@dataclass(frozen=True, eq=False)
class AddrOf(Expr):
    mutable: bool
    operand: Expr


@dataclass(frozen=True, eq=False)
class Binary(Expr):
    op: BinOp
    lhs: Expr
    rhs: Expr


@dataclass(frozen=True, eq=False)
class Assign(Expr):
    target: Expr
    value: Expr
    op: Optional[BinOp] = None


@dataclass(frozen=True, eq=False)
class Cast(Expr):
    expr: Expr
    ty: Ty


@dataclass(frozen=True, eq=False)
class Try(Expr):
    expr: Expr


@dataclass(frozen=True, eq=False)
class Range(Expr):
    start: Optional[Expr]
    end: Optional[Expr]
    inclusive: bool = False


@dataclass(frozen=True, eq=False)
class TupleExpr(Expr):
    elems: Tuple[Expr, ...]


@dataclass(frozen=True, eq=False)
class ArrayExpr(Expr):
    elems: Tuple[Expr, ...]


@dataclass(frozen=True, eq=False)
class RepeatExpr(Expr):
    elem: Expr
    count: Expr


@dataclass(frozen=True, eq=False)
class StructLit(Expr):
    path: Tuple[str, ...]
    fields: Tuple[Tuple[str, Expr], ...]
    base: Optional[Expr] = None

    def children(self) -> Iterator[Node]:
        for _, value in self.fields:
            yield value
        if self.base is not None:
            yield self.base


@dataclass(frozen=True, eq=False)
class Block(Expr):
    stmts: Tuple[Stmt, ...]
    expr: Optional[Expr] = None
    unsafe: bool = False


@dataclass(frozen=True, eq=False)
class LetCond(Expr):
    """``let PAT = EXPR`` in the condition of ``if``/``while``."""
    pat: Pat
    init: Expr


@dataclass(frozen=True, eq=False)
class If(Expr):
    cond: Expr
    then: Block
    else_: Optional[Expr] = None


@dataclass(frozen=True, eq=False)
class While(Expr):
    cond: Expr
    body: Block
    header_span: Span
    label: Optional[str] = None


@dataclass(frozen=True, eq=False)
class Loop(Expr):
    body: Block
    label: Optional[str] = None


@dataclass(frozen=True, eq=False)
class ForLoop(Expr):
    pat: Pat
    iter: Expr
    body: Block
    label: Optional[str] = None


@dataclass(frozen=True, eq=False)
class Arm(Node):
    pat: Pat
    guard: Optional[Expr]
    body: Expr


@dataclass(frozen=True, eq=False)
class Match(Expr):
    scrutinee: Expr
    arms: Tuple[Arm, ...]


@dataclass(frozen=True, eq=False)
class Closure(Expr):
    params: Tuple[Param, ...]
    body: Expr
    ret: Optional[Ty] = None
    is_move: bool = False


@dataclass(frozen=True, eq=False)
class Break(Expr):
    label: Optional[str] = None
    expr: Optional[Expr] = None


@dataclass(frozen=True, eq=False)
class Continue(Expr):
    label: Optional[str] = None


@dataclass(frozen=True, eq=False)
class Return(Expr):
    expr: Optional[Expr] = None


# ═════════════════════════════════════════════════════════════════════════
#  STATEMENTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class Local(Stmt):
    pat: Pat
    ty: Optional[Ty] = None
    init: Optional[Expr] = None
    els: Optional[Block] = None


@dataclass(frozen=True, eq=False)
class ExprStmt(Stmt):
    expr: Expr
    semi: bool = True


@dataclass(frozen=True, eq=False)
class ItemStmt(Stmt):
    item: Item


# ═════════════════════════════════════════════════════════════════════════
#  ITEMS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class Param(Node):
    pat: Pat
    ty: Optional[Ty]


@dataclass(frozen=True, eq=False)
class FnDef(Item):
    name: str
    generics: Tuple[str, ...]
    params: Tuple[Param, ...]
    ret: Optional[Ty]
    body: Optional[Block]
    attrs: Tuple[Attribute, ...] = ()

    @property
    def has_self(self) -> bool:
        return bool(self.params) and _is_self_pat(self.params[0].pat)


def _is_self_pat(pat: Pat) -> bool:
    return isinstance(pat, BindingPat) and pat.name == "self"


@dataclass(frozen=True, eq=False)
class FieldDef(Node):
    name: str
    ty: Ty


@dataclass(frozen=True, eq=False)
class StructDef(Item):
    name: str
    generics: Tuple[str, ...]
    fields: Tuple[FieldDef, ...]
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class EnumDef(Item):
    name: str
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class TypeAlias(Item):
    name: str
    generics: Tuple[str, ...]
    ty: Optional[Ty]
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class ConstItem(Item):
    name: str
    ty: Ty
    value: Optional[Expr]
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class UseDecl(Item):
    """One leaf of a ``use`` tree: ``use std::vec::Vec as Stack;``."""
    path: Tuple[str, ...]
    alias: Optional[str] = None
    glob: bool = False
    attrs: Tuple[Attribute, ...] = ()

    @property
    def local_name(self) -> str:
        if self.alias:
            return self.alias
        if self.path and self.path[-1] == "self" and len(self.path) > 1:
            return self.path[-2]
        return self.path[-1] if self.path else ""


@dataclass(frozen=True, eq=False)
class ImplBlock(Item):
    generics: Tuple[str, ...]
    self_ty: Ty
    trait_ref: Optional[Ty]
    items: Tuple[Item, ...]
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class TraitDef(Item):
    name: str
    generics: Tuple[str, ...]
    items: Tuple[Item, ...]
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class ModDef(Item):
    name: str
    items: Tuple[Item, ...]
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class MacroItem(Item):
    path: Tuple[str, ...]
    attrs: Tuple[Attribute, ...] = ()


@dataclass(frozen=True, eq=False)
class Crate(Node):
    items: Tuple[Item, ...]
    attrs: Tuple[Attribute, ...] = ()

    def iter_items(self) -> Iterator[Item]:
        """All items, descending into inline modules."""
        stack: List[Item] = list(reversed(self.items))
        while stack:
            item = stack.pop()
            yield item
            if isinstance(item, ModDef):
                stack.extend(reversed(item.items))


# ═════════════════════════════════════════════════════════════════════════
#  DUMPING
# ═════════════════════════════════════════════════════════════════════════

def dump(node: Any, indent: int = 0) -> str:
    """Indented tree rendering of a node, used by ``poplint dump-hir``."""
    pad = "  " * indent
    if isinstance(node, Node):
        head = f"{pad}{type(node).__name__} #{node.hir_id} [{node.span.lo}..{node.span.hi})"
        lines = [head]
        for f in fields(node):
            if f.name in ("hir_id", "span"):
                continue
            value = getattr(node, f.name)
            if isinstance(value, (Node, tuple)) and _contains_node(value):
                lines.append(f"{pad}  {f.name}:")
                lines.append(dump(value, indent + 2))
            elif value not in (None, (), False, ""):
                lines.append(f"{pad}  {f.name}: {_scalar(value)}")
        return "\n".join(lines)
    if isinstance(node, tuple):
        return "\n".join(dump(v, indent) for v in node)
    return f"{pad}{_scalar(node)}"


def _contains_node(value: Any) -> bool:
    return any(True for _ in _nodes_in(value)) or (
        isinstance(value, tuple) and any(isinstance(v, tuple) for v in value)
    )


def _scalar(value: Any) -> str:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Attribute):
        return value.text
    if isinstance(value, tuple) and all(isinstance(v, str) for v in value):
        return "::".join(value)
    return repr(value)
