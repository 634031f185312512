"""
poplint/parser.py
═════════════════

Rust-subset frontend: a Parsimonious PEG grammar and a ``NodeVisitor``
that lowers the parse tree into :mod:`poplint.hir` nodes.

The grammar covers the item, statement, expression, pattern and type
forms that ordinary application code uses.  Binary operators are parsed
as a flat operand/operator chain and folded by precedence in Python,
which keeps the parse tree shallow.

Conventions inherited by every rule:

  * ``_`` (whitespace and comments) appears *between* elements, never
    at the end of a rule, so a node's ``[start, end)`` is exactly the
    source text of the construct;
  * keywords are regex tokens with a word boundary, and ``identifier``
    refuses them;
  * struct literals are only recognised when the first field is written
    ``name: value`` (or ``..base``), which keeps ``while x { y }`` a loop.
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import re
import sys
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from poplint import hir as H
from poplint.errors import UNSUPPORTED_SYNTAX, ParseFailure
from poplint.source import SourceFile, Span

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

RUST_GRAMMAR = Grammar(r'''
    crate               = _ (inner_attr _)* (item _)*

    # ─────────────────────────────────────────────────────────────
    # Items
    # ─────────────────────────────────────────────────────────────

    item                = (outer_attr _)* (visibility _)? item_kind
    item_kind           = fn_def / struct_def / enum_def / impl_block / trait_def
                        / use_decl / type_alias / const_item / mod_item / macro_item
    stmt_item_kind      = fn_def / struct_def / enum_def / impl_block / trait_def
                        / use_decl / type_alias / const_item / mod_item

    inner_attr          = "#!" "[" tts "]"
    outer_attr          = "#" "[" tts "]"
    visibility          = PUB (_ "(" tts ")")?

    fn_def              = (fn_qualifier _)* FN _ identifier _ (generic_params _)?
                          "(" _ (fn_params _)? ")" _ (ARROW _ ty _)? (where_clause _)? fn_body
    fn_qualifier        = CONST / ASYNC / UNSAFE / (EXTERN (_ string_lit)?)
    fn_body             = block_expr / ";"
    fn_params           = fn_param (_ "," _ fn_param)* (_ ",")?
    fn_param            = (outer_attr _)* (self_param / typed_param)
    self_param          = ("&" _ (lifetime _)? (MUT _)? SELF)
                        / ((MUT _)? SELF (_ COLON _ ty)?)
    typed_param         = pat _ COLON _ ty

    struct_def          = STRUCT _ identifier _ (generic_params _)? (where_clause _)? struct_body
    struct_body         = named_fields / (tuple_fields _ (where_clause _)? ";") / ";"
    named_fields        = "{" _ (field_def_list _)? "}"
    field_def_list      = field_def (_ "," _ field_def)* (_ ",")?
    field_def           = (outer_attr _)* (visibility _)? identifier _ COLON _ ty
    tuple_fields        = "(" _ (tuple_field_list _)? ")"
    tuple_field_list    = tuple_field (_ "," _ tuple_field)* (_ ",")?
    tuple_field         = (outer_attr _)* (visibility _)? ty

    enum_def            = ENUM _ identifier _ (generic_params _)? (where_clause _)? "{" tts "}"

    impl_block          = (UNSAFE _)? IMPL _ (generic_params _)? (trait_for _)? ty _
                          (where_clause _)? "{" _ (item _)* "}"
    trait_for           = "!"? ty_path _ FOR

    trait_def           = (UNSAFE _)? TRAIT _ identifier _ (generic_params _)?
                          (COLON _ bounds _)? (where_clause _)? "{" _ (item _)* "}"

    use_decl            = USE _ use_tree _ ";"
    use_tree            = (use_path _ "::" _ use_group) / use_group
                        / (use_path _ "::" _ "*") / (use_path (_ AS _ use_alias)?)
    use_alias           = identifier / "_"
    use_path            = "::"? identifier (_ "::" _ identifier)*
    use_group           = "{" _ (use_tree_list _)? "}"
    use_tree_list       = use_tree (_ "," _ use_tree)* (_ ",")?

    type_alias          = TYPE _ identifier _ (generic_params _)? (COLON _ bounds _)?
                          (where_clause _)? (EQ _ ty _)? ";"
    const_item          = (CONST / STATIC) _ (MUT _)? (identifier / "_") _ COLON _ ty _
                          (EQ _ expr _)? ";"
    mod_item            = MOD _ identifier _ (";" / ("{" _ (item _)* "}"))
    macro_item          = simple_path "!" _ (identifier _)? macro_body (_ ";")?

    # ─────────────────────────────────────────────────────────────
    # Generics
    # ─────────────────────────────────────────────────────────────

    generic_params      = "<" _ (generic_param_list _)? ">"
    generic_param_list  = generic_param (_ "," _ generic_param)* (_ ",")?
    generic_param       = (lifetime (_ COLON _ bounds)?)
                        / (CONST _ identifier _ COLON _ ty (_ EQ _ expr)?)
                        / (identifier (_ COLON _ bounds)? (_ EQ _ ty)?)
    where_clause        = WHERE _ where_pred (_ "," _ where_pred)* (_ ",")?
    where_pred          = (lifetime / ty) _ COLON _ bounds
    bounds              = bound (_ "+" _ bound)*
    bound               = lifetime / ("?" _ ty_path) / ("(" _ ty_path _ ")")
                        / (FOR _ generic_params _ ty_path) / ty_path

    # ─────────────────────────────────────────────────────────────
    # Types
    # ─────────────────────────────────────────────────────────────

    ty                  = ref_ty / ptr_ty / tuple_ty / slice_ty / never_ty / infer_ty
                        / opaque_ty / fn_ptr_ty / ty_path
    ref_ty              = "&" _ (lifetime _)? (MUT _)? ty
    ptr_ty              = "*" _ (CONST / MUT) _ ty
    tuple_ty            = "(" _ (ty_list _)? ")"
    ty_list             = ty (_ "," _ ty)* (_ ",")?
    slice_ty            = "[" _ ty (_ ";" _ expr)? _ "]"
    never_ty            = "!"
    infer_ty            = ~r"_(?![A-Za-z0-9_])"
    opaque_ty           = (IMPL / DYN) _ bounds
    fn_ptr_ty           = (UNSAFE _)? (EXTERN _ (string_lit _)?)? FN _ "(" _ (ty_list _)? ")"
                          (_ ARROW _ ty)?
    ty_path             = "::"? ty_path_seg (_ "::" _ ty_path_seg)*
    ty_path_seg         = identifier (_ "::"? _ ty_args)?
    ty_args             = generic_args / fn_sugar_args
    generic_args        = "<" _ (generic_arg_list _)? ">"
    generic_arg_list    = generic_arg (_ "," _ generic_arg)* (_ ",")?
    generic_arg         = lifetime / assoc_binding / ty / block_expr / literal
    assoc_binding       = identifier _ (EQ / COLON) _ ty
    fn_sugar_args       = "(" _ (ty_list _)? ")" (_ ARROW _ ty)?

    # ─────────────────────────────────────────────────────────────
    # Patterns
    # ─────────────────────────────────────────────────────────────

    pat                 = ref_pat / tuple_pat / slice_pat / rest_pat / wild_pat / lit_pat
                        / tuple_struct_pat / struct_pat / path_pat / ident_pat
    ref_pat             = ("&&" / "&") _ (MUT _)? pat
    tuple_pat           = "(" _ (pat_list _)? ")"
    slice_pat           = "[" _ (pat_list _)? "]"
    pat_list            = pat (_ "," _ pat)* (_ ",")?
    rest_pat            = ".."
    wild_pat            = ~r"_(?![A-Za-z0-9_])"
    lit_pat             = ("-" _)? literal
    tuple_struct_pat    = simple_path _ "(" _ (pat_list _)? ")"
    struct_pat          = simple_path _ "{" tts "}"
    path_pat            = identifier (_ "::" _ identifier)+
    ident_pat           = (REF _)? (MUT _)? identifier (_ "@" _ pat)?
    arm_pat             = ("|" _)? pat (_ "|" _ pat)*
    simple_path         = identifier (_ "::" _ identifier)*

    # ─────────────────────────────────────────────────────────────
    # Statements and blocks
    # ─────────────────────────────────────────────────────────────

    block_expr          = "{" _ (stmt _)* (expr _)? "}"
    unsafe_block        = UNSAFE _ block_expr
    stmt                = local_stmt / item_stmt / block_like_stmt / semi_stmt / empty_stmt
    local_stmt          = LET _ pat (_ COLON _ ty)? (_ EQ _ expr)? (_ ELSE _ block_expr)? _ ";"
    item_stmt           = (outer_attr _)* stmt_item_kind
    block_like_stmt     = block_like !(_ ~r"[.?]")
    block_like          = if_expr / match_expr / while_expr / loop_expr / for_expr
                        / unsafe_block / block_expr
    semi_stmt           = expr _ ";"
    empty_stmt          = ";"

    # ─────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────

    expr                = range_expr (_ ASSIGN_OP _ expr)?
    range_expr          = (binary_expr _ RANGE_OP (_ binary_expr)?)
                        / (RANGE_OP (_ binary_expr)?)
                        / binary_expr
    binary_expr         = cast_expr (_ BINOP _ cast_expr)*
    cast_expr           = unary_expr (_ AS _ ty)*
    unary_expr          = (UNOP _ unary_expr) / postfix_expr
    postfix_expr        = primary (_ postfix_op)*
    postfix_op          = method_call / field_access / call_op / index_op / try_op
    method_call         = "." _ identifier _ ("::" _ generic_args _)? "(" _ (expr_list _)? ")"
    field_access        = "." _ (identifier / ~r"[0-9]+")
    call_op             = "(" _ (expr_list _)? ")"
    index_op            = "[" _ expr _ "]"
    try_op              = "?"
    expr_list           = expr (_ "," _ expr)* (_ ",")?

    primary             = literal / closure / while_expr / loop_expr / for_expr / if_expr
                        / match_expr / unsafe_block / block_expr / return_expr / break_expr
                        / continue_expr / struct_lit / macro_call / path_expr / paren_expr
                        / array_expr

    closure             = (MOVE _)? closure_head _ closure_body
    closure_head        = "||" / ("|" _ (closure_param_list _)? "|")
    closure_param_list  = closure_param (_ "," _ closure_param)* (_ ",")?
    closure_param       = pat (_ COLON _ ty)?
    closure_body        = (ARROW _ ty _ block_expr) / expr

    if_expr             = IF _ cond _ block_expr (_ ELSE _ else_branch)?
    else_branch         = if_expr / block_expr
    cond                = let_cond / expr
    let_cond            = LET _ arm_pat _ EQ _ expr
    while_expr          = (label _)? WHILE _ cond _ block_expr
    loop_expr           = (label _)? LOOP _ block_expr
    for_expr            = (label _)? FOR _ pat _ IN _ expr _ block_expr
    label               = lifetime _ COLON
    match_expr          = MATCH _ expr _ "{" _ (match_arm _)* "}"
    match_arm           = arm_pat _ (IF _ expr _)? FAT_ARROW _ arm_body
    arm_body            = (block_like (_ ",")?) / (expr (_ ",")?)
    return_expr         = RETURN (_ expr)?
    break_expr          = BREAK (_ lifetime)? (_ expr)?
    continue_expr       = CONTINUE (_ lifetime)?

    struct_lit          = path_expr _ "{" _ struct_lit_body _ "}"
    struct_lit_body     = (struct_lit_field_full (_ "," _ struct_lit_field)*
                           (_ "," _ ".." _ expr)? (_ ",")?)
                        / (".." _ expr)
    struct_lit_field_full = identifier _ COLON _ expr
    struct_lit_field    = identifier (_ COLON _ expr)?

    macro_call          = simple_path "!" _ macro_body
    macro_body          = ("(" _ (macro_args _)? ")") / ("[" _ (macro_args _)? "]")
                        / ("{" _ (macro_args _)? "}")
                        / ("(" tts ")") / ("[" tts "]") / ("{" tts "}")
    macro_args          = expr (_ MACRO_SEP _ expr)* (_ ",")?
    MACRO_SEP           = "," / ";"
    tts                 = tt*
    tt                  = ~r"[^()\[\]{}\"'/]+" / comment / string_lit / char_lit / "'" / "/"
                        / ("(" tts ")") / ("[" tts "]") / ("{" tts "}")

    path_expr           = "::"? identifier (_ "::" _ path_expr_seg)*
    path_expr_seg       = generic_args / identifier
    paren_expr          = "(" _ (expr_list _)? ")"
    array_expr          = ("[" _ expr _ ";" _ expr _ "]") / ("[" _ (expr_list _)? "]")

    # ─────────────────────────────────────────────────────────────
    # Literals
    # ─────────────────────────────────────────────────────────────

    literal             = float_lit / int_lit / string_lit / char_lit / bool_lit
    float_lit           = ~r"[0-9][0-9_]*(?:\.[0-9][0-9_]*(?:[eE][+-]?[0-9_]+)?(?:f32|f64)?|[eE][+-]?[0-9_]+(?:f32|f64)?|(?:f32|f64))"
    int_lit             = ~r"(?:0x[0-9a-fA-F_]+|0o[0-7_]+|0b[01_]+|[0-9][0-9_]*)(?:[iu](?:8|16|32|64|128|size))?"
    string_lit          = ~r'b?r(#*)"[\s\S]*?"\1|b?"(?:[^"\\]|\\[\s\S])*"'
    char_lit            = ~r"b?'(?:[^'\\\n]|\\(?:[nrt0\\'\"]|x[0-9a-fA-F]{2}|u\{[0-9a-fA-F]{1,6}\}))'"
    bool_lit            = ~r"(?:true|false)\b"

    # ─────────────────────────────────────────────────────────────
    # Tokens
    # ─────────────────────────────────────────────────────────────

    identifier          = ~r"(?!(?:as|async|break|const|continue|dyn|else|enum|extern|false|fn|for|if|impl|in|let|loop|match|mod|move|mut|pub|ref|return|static|struct|trait|true|type|unsafe|use|where|while)\b)(?!_\b)[A-Za-z_][A-Za-z0-9_]*"
    lifetime            = ~r"'[A-Za-z_][A-Za-z0-9_]*(?!')"

    BINOP               = ~r"\|\||&&|==|!=|<=|>=|<<(?!=)|>>(?!=)|<(?![<=])|>(?![>=])|\+(?!=)|-(?![=>])|\*(?!=)|/(?![=/*])|%(?!=)|&(?![&=])|\^(?!=)|\|(?![|=])"
    ASSIGN_OP           = ~r"(?:<<|>>|[-+*/%^&|])?=(?![=>])"
    RANGE_OP            = ~r"\.\.=?"
    UNOP                = ~r"&[ \t\r\n]*mut\b|&|\*|-|!"
    EQ                  = ~r"=(?![=>])"
    COLON               = ~r":(?!:)"
    ARROW               = "->"
    FAT_ARROW           = "=>"

    AS                  = ~r"as\b"
    ASYNC               = ~r"async\b"
    BREAK               = ~r"break\b"
    CONST               = ~r"const\b"
    CONTINUE            = ~r"continue\b"
    DYN                 = ~r"dyn\b"
    ELSE                = ~r"else\b"
    ENUM                = ~r"enum\b"
    EXTERN              = ~r"extern\b"
    FN                  = ~r"fn\b"
    FOR                 = ~r"for\b"
    IF                  = ~r"if\b"
    IMPL                = ~r"impl\b"
    IN                  = ~r"in\b"
    LET                 = ~r"let\b"
    LOOP                = ~r"loop\b"
    MATCH               = ~r"match\b"
    MOD                 = ~r"mod\b"
    MOVE                = ~r"move\b"
    MUT                 = ~r"mut\b"
    PUB                 = ~r"pub\b"
    REF                 = ~r"ref\b"
    RETURN              = ~r"return\b"
    SELF                = ~r"self\b"
    STATIC              = ~r"static\b"
    STRUCT              = ~r"struct\b"
    TRAIT               = ~r"trait\b"
    TYPE                = ~r"type\b"
    UNSAFE              = ~r"unsafe\b"
    USE                 = ~r"use\b"
    WHERE               = ~r"where\b"
    WHILE               = ~r"while\b"

    comment             = ~r"//[^\n]*|/\*[\s\S]*?\*/"
    _                   = ~r"(?:\s+|//[^\n]*|/\*[\s\S]*?\*/)*"
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — VISITED-CHILDREN HELPERS
# ═══════════════════════════════════════════════════════════════════
#
#  With ``generic_visit`` returning ``visited_children or node``:
#    * an absent ``x?`` / ``x*`` yields the bare Node;
#    * a present ``x?`` yields ``[x]``; ``x*`` yields ``[x, x, ...]``;
#    * an anonymous ``(a b c)`` yields ``[a, b, c]``.
# ═══════════════════════════════════════════════════════════════════

def _opt(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def _many(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _present(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def _comma_list(visited: Sequence[Any]) -> List[Any]:
    """``X (_ "," _ X)* (_ ",")?`` → ``[X, X, ...]``."""
    return [visited[0]] + [entry[3] for entry in _many(visited[1])]


def _flatten(values: Any) -> Iterator[Any]:
    for v in values:
        if isinstance(v, list):
            yield from _flatten(v)
        elif v is not None:
            yield v


_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "0": "\0", "\\": "\\", "'": "'", '"': '"'}


def _unescape(body: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            if nxt in _ESCAPES:
                out.append(_ESCAPES[nxt])
                i += 2
                continue
            if nxt == "x":
                out.append(chr(int(body[i + 2:i + 4], 16)))
                i += 4
                continue
            if nxt == "u":
                end = body.index("}", i)
                out.append(chr(int(body[i + 3:end], 16)))
                i = end + 1
                continue
            if nxt == "\n":
                i += 2
                while i < len(body) and body[i] in " \t\r\n":
                    i += 1
                continue
        out.append(ch)
        i += 1
    return "".join(out)


_INT_RE = re.compile(r"(0x[0-9a-fA-F_]+|0o[0-7_]+|0b[01_]+|[0-9][0-9_]*)(.*)")
_FLOAT_SUFFIX_RE = re.compile(r"(f32|f64)$")
_RAW_STRING_RE = re.compile(r'b?r(#*)"([\s\S]*)"\1$')
_GENERIC_PARAM_RE = re.compile(r"(?:const\s+)?('?[A-Za-z_][A-Za-z0-9_]*)")


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — PARSE TREE → HIR
# ═══════════════════════════════════════════════════════════════════

class HirBuilder(NodeVisitor):
    """Transforms a Parsimonious parse tree into a :class:`hir.Crate`."""

    def __init__(self, source: SourceFile) -> None:
        self.source = source
        self._next_id = 0

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    @staticmethod
    def _span(node: Node) -> Span:
        return Span(node.start, node.end)

    def generic_visit(self, node, visited_children):
        return visited_children or node

    # ─────────────────────────────────────────────────────────────
    # Crate and items
    # ─────────────────────────────────────────────────────────────

    def visit_crate(self, node, visited_children):
        _, attrs, items = visited_children
        return H.Crate(
            self._id(), self._span(node),
            items=tuple(_flatten(entry[0] for entry in _many(items))),
            attrs=tuple(entry[0] for entry in _many(attrs)),
        )

    def visit_inner_attr(self, node, visited_children):
        return H.Attribute(node.text, self._span(node))

    visit_outer_attr = visit_inner_attr

    def visit_item(self, node, visited_children):
        attrs, _, kind = visited_children
        attr_tuple = tuple(entry[0] for entry in _many(attrs))
        if isinstance(kind, list):
            return [self._with_attrs(k, attr_tuple) for k in kind]
        return self._with_attrs(kind, attr_tuple)

    @staticmethod
    def _with_attrs(item: H.Item, attrs: Tuple[H.Attribute, ...]) -> H.Item:
        if not attrs:
            return item
        return dataclasses.replace(item, attrs=attrs)

    def visit_item_kind(self, node, visited_children):
        return visited_children[0]

    visit_stmt_item_kind = visit_item_kind

    def visit_fn_def(self, node, visited_children):
        name = visited_children[3]
        generics = _opt(visited_children[5])
        params = _opt(visited_children[8])
        ret = _opt(visited_children[11])
        return H.FnDef(
            self._id(), self._span(node),
            name=name,
            generics=tuple(generics[0]) if generics else (),
            params=tuple(params[0]) if params else (),
            ret=ret[2] if ret else None,
            body=visited_children[13],
        )

    def visit_fn_body(self, node, visited_children):
        body = visited_children[0]
        return body if isinstance(body, H.Block) else None

    def visit_fn_params(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_fn_param(self, node, visited_children):
        return visited_children[1][0]

    def visit_self_param(self, node, visited_children):
        alt = visited_children[0]
        span = self._span(node)
        self_ty: H.Ty = H.PathTy(self._id(), span, ("Self",))
        if node.text.startswith("&"):
            ty = H.RefTy(self._id(), span, _present(alt[3]), self_ty)
            pat = H.BindingPat(self._id(), span, "self")
        else:
            typed = _opt(alt[2])
            ty = typed[3] if typed else self_ty
            pat = H.BindingPat(self._id(), span, "self", mutable=_present(alt[0]))
        return H.Param(self._id(), span, pat, ty)

    def visit_typed_param(self, node, visited_children):
        return H.Param(self._id(), self._span(node), visited_children[0], visited_children[4])

    def visit_struct_def(self, node, visited_children):
        generics = _opt(visited_children[4])
        return H.StructDef(
            self._id(), self._span(node),
            name=visited_children[2],
            generics=tuple(generics[0]) if generics else (),
            fields=tuple(visited_children[6]),
        )

    def visit_struct_body(self, node, visited_children):
        matched = node.children[0]
        if matched.expr_name == "named_fields":
            return visited_children[0]
        if matched.text == ";":
            return []
        return visited_children[0][0]

    def visit_named_fields(self, node, visited_children):
        found = _opt(visited_children[2])
        return found[0] if found else []

    def visit_field_def_list(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_field_def(self, node, visited_children):
        return H.FieldDef(self._id(), self._span(node), visited_children[2], visited_children[6])

    def visit_tuple_fields(self, node, visited_children):
        found = _opt(visited_children[2])
        tys = found[0] if found else []
        return [H.FieldDef(self._id(), t.span, str(i), t) for i, t in enumerate(tys)]

    visit_tuple_field_list = visit_field_def_list

    def visit_tuple_field(self, node, visited_children):
        return visited_children[2]

    def visit_enum_def(self, node, visited_children):
        return H.EnumDef(self._id(), self._span(node), name=visited_children[2])

    def visit_impl_block(self, node, visited_children):
        generics = _opt(visited_children[3])
        trait_ref = _opt(visited_children[4])
        return H.ImplBlock(
            self._id(), self._span(node),
            generics=tuple(generics[0]) if generics else (),
            self_ty=visited_children[5],
            trait_ref=trait_ref[0] if trait_ref else None,
            items=tuple(_flatten(entry[0] for entry in _many(visited_children[10]))),
        )

    def visit_trait_for(self, node, visited_children):
        return visited_children[1]

    def visit_trait_def(self, node, visited_children):
        generics = _opt(visited_children[5])
        return H.TraitDef(
            self._id(), self._span(node),
            name=visited_children[3],
            generics=tuple(generics[0]) if generics else (),
            items=tuple(_flatten(entry[0] for entry in _many(visited_children[10]))),
        )

    def visit_use_decl(self, node, visited_children):
        span = self._span(node)
        return [
            H.UseDecl(self._id(), span, path=path, alias=alias, glob=glob)
            for path, alias, glob in visited_children[2]
        ]

    def visit_use_tree(self, node, visited_children):
        matched = node.children[0]
        if matched.expr_name == "use_group":
            return visited_children[0]
        alt = visited_children[0]
        path = alt[0]
        if len(alt) == 5:
            if isinstance(alt[4], list):
                return [(path + sub, alias, glob) for sub, alias, glob in alt[4]]
            return [(path, None, True)]
        alias = _opt(alt[1])
        alias_name = alias[3] if alias else None
        return [(path, alias_name, False)]

    def visit_use_alias(self, node, visited_children):
        return node.text

    def visit_use_path(self, node, visited_children):
        return tuple([visited_children[1]] + [entry[3] for entry in _many(visited_children[2])])

    def visit_use_group(self, node, visited_children):
        found = _opt(visited_children[2])
        return found[0] if found else []

    def visit_use_tree_list(self, node, visited_children):
        trees: List[Any] = []
        for tree in _comma_list(visited_children):
            trees.extend(tree)
        return trees

    def visit_type_alias(self, node, visited_children):
        generics = _opt(visited_children[4])
        value = _opt(visited_children[7])
        return H.TypeAlias(
            self._id(), self._span(node),
            name=visited_children[2],
            generics=tuple(generics[0]) if generics else (),
            ty=value[2] if value else None,
        )

    def visit_const_item(self, node, visited_children):
        name = visited_children[3][0]
        value = _opt(visited_children[9])
        return H.ConstItem(
            self._id(), self._span(node),
            name=name if isinstance(name, str) else "_",
            ty=visited_children[7],
            value=value[2] if value else None,
        )

    def visit_mod_item(self, node, visited_children):
        body = visited_children[4][0]
        items = _flatten(entry[0] for entry in _many(body[2])) if isinstance(body, list) else ()
        return H.ModDef(self._id(), self._span(node), name=visited_children[2], items=tuple(items))

    def visit_macro_item(self, node, visited_children):
        return H.MacroItem(self._id(), self._span(node), path=visited_children[0])

    def visit_simple_path(self, node, visited_children):
        return tuple([visited_children[0]] + [entry[3] for entry in _many(visited_children[1])])

    # ─────────────────────────────────────────────────────────────
    # Generics
    # ─────────────────────────────────────────────────────────────

    def visit_generic_params(self, node, visited_children):
        found = _opt(visited_children[2])
        return found[0] if found else []

    def visit_generic_param_list(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_generic_param(self, node, visited_children):
        return _GENERIC_PARAM_RE.match(node.text).group(1)

    def visit_bounds(self, node, visited_children):
        bounds = [visited_children[0]] + [entry[3] for entry in _many(visited_children[1])]
        return [b for b in bounds if b is not None]

    def visit_bound(self, node, visited_children):
        alt = visited_children[0]
        if isinstance(alt, H.Ty):
            return alt
        if isinstance(alt, list):
            tys = [x for x in alt if isinstance(x, H.Ty)]
            return tys[0] if tys else None
        return None

    # ─────────────────────────────────────────────────────────────
    # Types
    # ─────────────────────────────────────────────────────────────

    def visit_ty(self, node, visited_children):
        return visited_children[0]

    def visit_ref_ty(self, node, visited_children):
        return H.RefTy(self._id(), self._span(node), _present(visited_children[3]), visited_children[4])

    def visit_ptr_ty(self, node, visited_children):
        mutable = node.children[2].text == "mut"
        return H.PtrTy(self._id(), self._span(node), mutable, visited_children[4])

    def visit_tuple_ty(self, node, visited_children):
        found = _opt(visited_children[2])
        tys = found[0] if found else []
        if len(tys) == 1 and not node.text[1:-1].rstrip().endswith(","):
            return tys[0]
        return H.TupleTy(self._id(), self._span(node), tuple(tys))

    def visit_ty_list(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_slice_ty(self, node, visited_children):
        length = _opt(visited_children[3])
        return H.SliceTy(self._id(), self._span(node), visited_children[2],
                         length[3] if length else None)

    def visit_never_ty(self, node, visited_children):
        return H.NeverTy(self._id(), self._span(node))

    def visit_infer_ty(self, node, visited_children):
        return H.InferTy(self._id(), self._span(node))

    def visit_opaque_ty(self, node, visited_children):
        bounds = visited_children[2]
        return H.OpaqueTy(self._id(), self._span(node), node.children[0].text,
                          bounds[0] if bounds else None)

    def visit_fn_ptr_ty(self, node, visited_children):
        params = _opt(visited_children[6])
        ret = _opt(visited_children[8])
        return H.FnPtrTy(self._id(), self._span(node),
                         tuple(params[0]) if params else (),
                         ret[3] if ret else None)

    def visit_ty_path(self, node, visited_children):
        segs = [visited_children[1]] + [entry[3] for entry in _many(visited_children[2])]
        args: Tuple[H.Ty, ...] = ()
        for _, seg_args in segs:
            if seg_args:
                args = tuple(seg_args)
        return H.PathTy(self._id(), self._span(node), tuple(name for name, _ in segs), args)

    def visit_ty_path_seg(self, node, visited_children):
        args = _opt(visited_children[1])
        return (visited_children[0], args[3] if args else [])

    def visit_ty_args(self, node, visited_children):
        return visited_children[0]

    def visit_generic_args(self, node, visited_children):
        found = _opt(visited_children[2])
        return [t for t in (found[0] if found else []) if t is not None]

    def visit_generic_arg_list(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_generic_arg(self, node, visited_children):
        arg = visited_children[0]
        return arg if isinstance(arg, H.Ty) else None

    def visit_fn_sugar_args(self, node, visited_children):
        found = _opt(visited_children[2])
        return found[0] if found else []

    # ─────────────────────────────────────────────────────────────
    # Patterns
    # ─────────────────────────────────────────────────────────────

    def visit_pat(self, node, visited_children):
        return visited_children[0]

    def visit_ref_pat(self, node, visited_children):
        return H.RefPat(self._id(), self._span(node), _present(visited_children[2]), visited_children[3])

    def visit_tuple_pat(self, node, visited_children):
        found = _opt(visited_children[2])
        pats = found[0] if found else []
        if len(pats) == 1 and not node.text[1:-1].rstrip().endswith(","):
            return pats[0]
        return H.TuplePat(self._id(), self._span(node), tuple(pats))

    def visit_slice_pat(self, node, visited_children):
        found = _opt(visited_children[2])
        return H.SlicePat(self._id(), self._span(node), tuple(found[0]) if found else ())

    def visit_pat_list(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_rest_pat(self, node, visited_children):
        return H.RestPat(self._id(), self._span(node))

    def visit_wild_pat(self, node, visited_children):
        return H.WildPat(self._id(), self._span(node))

    def visit_lit_pat(self, node, visited_children):
        lit = visited_children[1]
        if _present(visited_children[0]):
            lit = H.Unary(self._id(), self._span(node), H.UnOp.NEG, lit)
        return H.LitPat(self._id(), self._span(node), lit)

    def visit_tuple_struct_pat(self, node, visited_children):
        found = _opt(visited_children[4])
        return H.TupleStructPat(self._id(), self._span(node), visited_children[0],
                                tuple(found[0]) if found else ())

    def visit_struct_pat(self, node, visited_children):
        return H.StructPat(self._id(), self._span(node), visited_children[0])

    def visit_path_pat(self, node, visited_children):
        path = [visited_children[0]] + [entry[3] for entry in _many(visited_children[1])]
        return H.PathPat(self._id(), self._span(node), tuple(path))

    def visit_ident_pat(self, node, visited_children):
        by_ref = _present(visited_children[0])
        mutable = _present(visited_children[1])
        name = visited_children[2]
        sub = _opt(visited_children[3])
        span = self._span(node)
        # Capitalised bare names are unit structs / variants (`None`).
        if not (by_ref or mutable or sub) and name[0].isupper():
            return H.PathPat(self._id(), span, (name,))
        return H.BindingPat(self._id(), span, name, mutable=mutable, by_ref=by_ref,
                            subpat=sub[3] if sub else None)

    def visit_arm_pat(self, node, visited_children):
        pats = [visited_children[1]] + [entry[3] for entry in _many(visited_children[2])]
        if len(pats) == 1:
            return pats[0]
        return H.OrPat(self._id(), self._span(node), tuple(pats))

    # ─────────────────────────────────────────────────────────────
    # Blocks and statements
    # ─────────────────────────────────────────────────────────────

    def visit_block_expr(self, node, visited_children):
        stmts = list(_flatten(entry[0] for entry in _many(visited_children[2])))
        tail_entry = _opt(visited_children[3])
        tail = tail_entry[0] if tail_entry else None
        if tail is None and stmts and isinstance(stmts[-1], H.ExprStmt) and not stmts[-1].semi:
            tail = stmts.pop().expr
        return H.Block(self._id(), self._span(node), tuple(stmts), tail)

    def visit_unsafe_block(self, node, visited_children):
        return dataclasses.replace(visited_children[2], span=self._span(node), unsafe=True)

    def visit_stmt(self, node, visited_children):
        return visited_children[0]

    def visit_local_stmt(self, node, visited_children):
        ty = _opt(visited_children[3])
        init = _opt(visited_children[4])
        els = _opt(visited_children[5])
        return H.Local(
            self._id(), self._span(node),
            pat=visited_children[2],
            ty=ty[3] if ty else None,
            init=init[3] if init else None,
            els=els[3] if els else None,
        )

    def visit_item_stmt(self, node, visited_children):
        kind = visited_children[1]
        items = kind if isinstance(kind, list) else [kind]
        return [H.ItemStmt(self._id(), item.span, item) for item in items]

    def visit_block_like_stmt(self, node, visited_children):
        return H.ExprStmt(self._id(), self._span(node.children[0]), visited_children[0], semi=False)

    def visit_block_like(self, node, visited_children):
        return visited_children[0]

    def visit_semi_stmt(self, node, visited_children):
        return H.ExprStmt(self._id(), self._span(node), visited_children[0], semi=True)

    def visit_empty_stmt(self, node, visited_children):
        return None

    # ─────────────────────────────────────────────────────────────
    # Operators
    # ─────────────────────────────────────────────────────────────

    def visit_expr(self, node, visited_children):
        lhs, rest = visited_children
        assign = _opt(rest)
        if not assign:
            return lhs
        op_text = assign[1].text
        op = H.BinOp(op_text[:-1]) if op_text != "=" else None
        return H.Assign(self._id(), self._span(node), lhs, assign[3], op)

    def visit_range_expr(self, node, visited_children):
        alt = visited_children[0]
        if isinstance(alt, H.Expr):
            return alt
        if len(alt) == 4:
            start, op_node, end = alt[0], alt[2], _opt(alt[3])
        else:
            start, op_node, end = None, alt[0], _opt(alt[1])
        return H.Range(self._id(), self._span(node), start, end[1] if end else None,
                       inclusive=op_node.text == "..=")

    def visit_binary_expr(self, node, visited_children):
        first, rest = visited_children
        entries = _many(rest)
        if not entries:
            return first
        first_node = node.children[0]
        operands = [(first, (first_node.start, first_node.end))]
        ops: List[H.BinOp] = []
        for entry, raw in zip(entries, node.children[1].children):
            operand_node = raw.children[3]
            ops.append(H.BinOp(entry[1].text))
            operands.append((entry[3], (operand_node.start, operand_node.end)))
        return self._fold_binary(operands, ops)

    def _fold_binary(self, operands, ops):
        """Shunting-yard fold of ``e0 op0 e1 op1 ...``; all operators left-associative."""
        out = [operands[0]]
        stack: List[H.BinOp] = []

        def reduce() -> None:
            op = stack.pop()
            rhs, (_, hi) = out.pop()
            lhs, (lo, _) = out.pop()
            out.append((H.Binary(self._id(), Span(lo, hi), op, lhs, rhs), (lo, hi)))

        for op, operand in zip(ops, operands[1:]):
            while stack and stack[-1].precedence >= op.precedence:
                reduce()
            stack.append(op)
            out.append(operand)
        while stack:
            reduce()
        return out[0][0]

    def visit_cast_expr(self, node, visited_children):
        expr, casts = visited_children
        for entry, raw in zip(_many(casts), node.children[1].children):
            expr = H.Cast(self._id(), Span(node.start, raw.end), expr, entry[3])
        return expr

    def visit_unary_expr(self, node, visited_children):
        alt = visited_children[0]
        if isinstance(alt, H.Expr):
            return alt
        op_text = re.sub(r"\s+", "", alt[0].text)
        operand = alt[2]
        span = self._span(node)
        if op_text.startswith("&"):
            return H.AddrOf(self._id(), span, op_text == "&mut", operand)
        return H.Unary(self._id(), span, H.UnOp(op_text), operand)

    # ─────────────────────────────────────────────────────────────
    # Postfix chains
    # ─────────────────────────────────────────────────────────────

    def visit_postfix_expr(self, node, visited_children):
        expr, ops = visited_children
        lo = node.start
        for entry in _many(ops):
            op = entry[1]
            kind = op[0]
            if kind == "method":
                _, name, name_span, generic_args, args, end = op
                expr = H.MethodCall(self._id(), Span(lo, end), expr, name, args,
                                    name_span, generic_args)
            elif kind == "field":
                expr = H.Field(self._id(), Span(lo, op[2]), expr, op[1])
            elif kind == "call":
                expr = H.Call(self._id(), Span(lo, op[2]), expr, op[1])
            elif kind == "index":
                expr = H.Index(self._id(), Span(lo, op[2]), expr, op[1])
            else:
                expr = H.Try(self._id(), Span(lo, op[1]), expr)
        return expr

    def visit_postfix_op(self, node, visited_children):
        return visited_children[0]

    def visit_method_call(self, node, visited_children):
        name_node = node.children[2]
        turbofish = _opt(visited_children[4])
        args = _opt(visited_children[7])
        return (
            "method",
            visited_children[2],
            self._span(name_node),
            tuple(turbofish[2]) if turbofish else (),
            tuple(args[0]) if args else (),
            node.end,
        )

    def visit_field_access(self, node, visited_children):
        return ("field", node.children[2].text, node.end)

    def visit_call_op(self, node, visited_children):
        args = _opt(visited_children[2])
        return ("call", tuple(args[0]) if args else (), node.end)

    def visit_index_op(self, node, visited_children):
        return ("index", visited_children[2], node.end)

    def visit_try_op(self, node, visited_children):
        return ("try", node.end)

    def visit_expr_list(self, node, visited_children):
        return _comma_list(visited_children)

    # ─────────────────────────────────────────────────────────────
    # Primary expressions
    # ─────────────────────────────────────────────────────────────

    def visit_primary(self, node, visited_children):
        return visited_children[0]

    def visit_closure(self, node, visited_children):
        body, ret = visited_children[3]
        return H.Closure(self._id(), self._span(node), tuple(visited_children[1]), body,
                         ret=ret, is_move=_present(visited_children[0]))

    def visit_closure_head(self, node, visited_children):
        alt = visited_children[0]
        if isinstance(alt, list):
            found = _opt(alt[2])
            return found[0] if found else []
        return []

    def visit_closure_param_list(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_closure_param(self, node, visited_children):
        ty = _opt(visited_children[1])
        return H.Param(self._id(), self._span(node), visited_children[0], ty[3] if ty else None)

    def visit_closure_body(self, node, visited_children):
        alt = visited_children[0]
        if isinstance(alt, list):
            return alt[4], alt[2]
        return alt, None

    def visit_if_expr(self, node, visited_children):
        else_ = _opt(visited_children[5])
        return H.If(self._id(), self._span(node), visited_children[2], visited_children[4],
                    else_[3] if else_ else None)

    def visit_else_branch(self, node, visited_children):
        return visited_children[0]

    def visit_cond(self, node, visited_children):
        return visited_children[0]

    def visit_let_cond(self, node, visited_children):
        return H.LetCond(self._id(), self._span(node), visited_children[2], visited_children[6])

    def visit_while_expr(self, node, visited_children):
        label = _opt(visited_children[0])
        keyword_node = node.children[1]
        cond_node = node.children[3]
        return H.While(
            self._id(), self._span(node),
            cond=visited_children[3],
            body=visited_children[5],
            header_span=Span(keyword_node.start, cond_node.end),
            label=label[0] if label else None,
        )

    def visit_loop_expr(self, node, visited_children):
        label = _opt(visited_children[0])
        return H.Loop(self._id(), self._span(node), visited_children[3],
                      label[0] if label else None)

    def visit_for_expr(self, node, visited_children):
        label = _opt(visited_children[0])
        return H.ForLoop(self._id(), self._span(node), visited_children[3],
                         visited_children[7], visited_children[9],
                         label[0] if label else None)

    def visit_label(self, node, visited_children):
        return visited_children[0]

    def visit_lifetime(self, node, visited_children):
        return node.text

    def visit_match_expr(self, node, visited_children):
        arms = tuple(entry[0] for entry in _many(visited_children[6]))
        return H.Match(self._id(), self._span(node), visited_children[2], arms)

    def visit_match_arm(self, node, visited_children):
        guard = _opt(visited_children[2])
        return H.Arm(self._id(), self._span(node), visited_children[0],
                     guard[2] if guard else None, visited_children[5])

    def visit_arm_body(self, node, visited_children):
        return visited_children[0][0]

    def visit_return_expr(self, node, visited_children):
        value = _opt(visited_children[1])
        return H.Return(self._id(), self._span(node), value[1] if value else None)

    def visit_break_expr(self, node, visited_children):
        label = _opt(visited_children[1])
        value = _opt(visited_children[2])
        return H.Break(self._id(), self._span(node), label[1] if label else None,
                       value[1] if value else None)

    def visit_continue_expr(self, node, visited_children):
        label = _opt(visited_children[1])
        return H.Continue(self._id(), self._span(node), label[1] if label else None)

    def visit_struct_lit(self, node, visited_children):
        fields, base = visited_children[4]
        return H.StructLit(self._id(), self._span(node), visited_children[0].segments,
                           tuple(fields), base)

    def visit_struct_lit_body(self, node, visited_children):
        alt = visited_children[0]
        if node.text.startswith(".."):
            return [], alt[2]
        fields = [alt[0]] + [entry[3] for entry in _many(alt[1])]
        base = _opt(alt[2])
        return fields, base[5] if base else None

    def visit_struct_lit_field_full(self, node, visited_children):
        return (visited_children[0], visited_children[4])

    def visit_struct_lit_field(self, node, visited_children):
        name = visited_children[0]
        value = _opt(visited_children[1])
        if value:
            return (name, value[3])
        return (name, H.PathExpr(self._id(), self._span(node), (name,)))

    def visit_macro_call(self, node, visited_children):
        delimiter, args, tokens = visited_children[3]
        return H.MacroCall(self._id(), self._span(node), visited_children[0], args,
                           delimiter, tokens)

    def visit_macro_body(self, node, visited_children):
        alt = visited_children[0]
        delimiter = node.text[0]
        if len(alt) == 4:
            found = _opt(alt[2])
            return delimiter, tuple(found[0]) if found else (), None
        return delimiter, (), node.text[1:-1]

    def visit_macro_args(self, node, visited_children):
        return _comma_list(visited_children)

    def visit_tts(self, node, visited_children):
        return node.text

    def visit_path_expr(self, node, visited_children):
        segments = [visited_children[1]]
        generic_args: List[H.Ty] = []
        for entry in _many(visited_children[2]):
            seg = entry[3]
            if isinstance(seg, str):
                segments.append(seg)
            else:
                generic_args.extend(seg)
        return H.PathExpr(self._id(), self._span(node), tuple(segments), tuple(generic_args))

    def visit_path_expr_seg(self, node, visited_children):
        return visited_children[0]

    def visit_paren_expr(self, node, visited_children):
        found = _opt(visited_children[2])
        elems = found[0] if found else []
        if len(elems) == 1 and not node.text[1:-1].rstrip().endswith(","):
            return elems[0]
        return H.TupleExpr(self._id(), self._span(node), tuple(elems))

    def visit_array_expr(self, node, visited_children):
        alt = visited_children[0]
        span = self._span(node)
        if len(alt) == 9:
            return H.RepeatExpr(self._id(), span, alt[2], alt[6])
        found = _opt(alt[2])
        return H.ArrayExpr(self._id(), span, tuple(found[0]) if found else ())

    # ─────────────────────────────────────────────────────────────
    # Literals and tokens
    # ─────────────────────────────────────────────────────────────

    def visit_literal(self, node, visited_children):
        return visited_children[0]

    def visit_int_lit(self, node, visited_children):
        m = _INT_RE.match(node.text)
        digits = m.group(1).replace("_", "")
        if digits[:2] in ("0x", "0o", "0b"):
            value = int(digits, 0)
        else:
            value = int(digits)
        return H.Lit(self._id(), self._span(node), H.LitKind.INT, value, m.group(2))

    def visit_float_lit(self, node, visited_children):
        text = node.text
        m = _FLOAT_SUFFIX_RE.search(text)
        suffix = m.group(1) if m else ""
        number = text[:len(text) - len(suffix)].replace("_", "")
        return H.Lit(self._id(), self._span(node), H.LitKind.FLOAT, float(number), suffix)

    def visit_string_lit(self, node, visited_children):
        text = node.text
        kind = H.LitKind.BYTE_STR if text.startswith("b") else H.LitKind.STR
        raw = _RAW_STRING_RE.match(text)
        if raw:
            value = raw.group(2)
        else:
            value = _unescape(text[text.index('"') + 1:-1])
        return H.Lit(self._id(), self._span(node), kind, value)

    def visit_char_lit(self, node, visited_children):
        text = node.text
        kind = H.LitKind.BYTE if text.startswith("b") else H.LitKind.CHAR
        return H.Lit(self._id(), self._span(node), kind, _unescape(text[text.index("'") + 1:-1]))

    def visit_bool_lit(self, node, visited_children):
        return H.Lit(self._id(), self._span(node), H.LitKind.BOOL, node.text == "true")

    def visit_identifier(self, node, visited_children):
        return node.text


# ═══════════════════════════════════════════════════════════════════
#  PART 4 — PUBLIC ENTRY POINTS
# ═══════════════════════════════════════════════════════════════════

_RECURSION_LIMIT = 20000


@contextlib.contextmanager
def _deep_recursion() -> Iterator[None]:
    """Parsimonious parses and visits recursively; nested code needs headroom."""
    previous = sys.getrecursionlimit()
    sys.setrecursionlimit(max(previous, _RECURSION_LIMIT))
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


def parse_source(source: SourceFile) -> H.Crate:
    """
    Parse ``source`` into a :class:`hir.Crate`.

    Raises
    ------
    ParseFailure
        If the text is outside the supported grammar.
    """
    with _deep_recursion():
        try:
            tree = RUST_GRAMMAR.parse(source.text)
        except ParseError as exc:
            location = source.location(Span(exc.pos, exc.pos))
            rule = exc.expr.name if exc.expr is not None else ""
            excerpt = source.text[exc.pos:exc.pos + 20].split("\n", 1)[0]
            raise ParseFailure(
                f"cannot parse {source.name}: unexpected input {excerpt!r}",
                location=location,
                rule=rule,
            ) from exc
        try:
            crate = HirBuilder(source).visit(tree)
        except VisitationError as exc:
            raise ParseFailure(
                f"cannot lower {source.name}: {exc.original_class.__name__}",
                location=source.location(Span(0, 0)),
                code=UNSUPPORTED_SYNTAX,
            ) from exc
    logger.debug("parsed %s: %d top-level items", source.name, len(crate.items))
    return crate


def parse_text(text: str, name: str = "<string>") -> Tuple[SourceFile, H.Crate]:
    source = SourceFile(name=name, text=text)
    return source, parse_source(source)


def parse_file(path: Union[str, Path]) -> Tuple[SourceFile, H.Crate]:
    source = SourceFile.from_path(path)
    return source, parse_source(source)


__all__ = [
    "RUST_GRAMMAR",
    "HirBuilder",
    "parse_source",
    "parse_text",
    "parse_file",
]
