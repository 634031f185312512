"""
poplint/resolver.py
═══════════════════

Name and type resolution for a parsed crate.

Lints match on *what a call resolves to*, not on how it is spelled: a
``pop`` on a user type, a ``Vec`` imported under another name and a
``type`` alias of ``Vec`` must each land on the right definition.  This
module computes the side tables that make that possible.

Layers
──────
  1. **RType** — resolved semantic types (ADT by canonical def path,
     references, slices, tuples, primitives, generic parameters).

  2. **ItemTable** — crate-wide item collection: structs, enums, type
     aliases, ``use`` imports, free functions, inherent and trait impls.
     Owns type lowering (``hir.Ty`` → ``RType``) and method lookup
     (autoderef, then inherent → library → trait, per deref step).

  3. **TypeChecker** — forward, flow-insensitive inference over every
     function body with lexical scopes.  Fills a :class:`TypeckResults`.

  4. **TypeckResults** — ``hir_id → CallIdentity``, ``hir_id → RType``
     and ``hir_id → binding hir_id``.  Implements :class:`SymbolResolver`.

Anything that cannot be resolved is left out of the tables; consumers
treat a missing entry as "not a match".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
    runtime_checkable,
)

from poplint import hir as H
from poplint.paths import (
    BOX,
    OPTION,
    RESULT,
    STRING,
    VARIANT_PATHS,
    VEC,
    VEC_DEQUE,
    CallIdentity,
    canonical_type_path,
)
from poplint.visitor import HirVisitor, walk

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — RESOLVED TYPES
# ═════════════════════════════════════════════════════════════════════════

class TyKind(Enum):
    ADT = "adt"
    REF = "ref"
    PTR = "ptr"
    TUPLE = "tuple"
    SLICE = "slice"
    ARRAY = "array"
    PRIM = "prim"
    PARAM = "param"
    NEVER = "never"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RType:
    """
    A resolved type.

    ``path`` is the canonical definition path for ADTs, ``(name,)`` for
    primitives and generic parameters.  ``args`` holds generic arguments,
    the referent of a reference or pointer, tuple elements, or the
    element of a slice/array.
    """
    kind: TyKind
    path: Tuple[str, ...] = ()
    args: Tuple[RType, ...] = ()
    mutable: bool = False

    @classmethod
    def adt(cls, path: Tuple[str, ...], *args: RType) -> RType:
        return cls(TyKind.ADT, tuple(path), tuple(args))

    @classmethod
    def ref(cls, inner: RType, mutable: bool = False) -> RType:
        return cls(TyKind.REF, (), (inner,), mutable)

    @classmethod
    def prim(cls, name: str) -> RType:
        return cls(TyKind.PRIM, (name,))

    @classmethod
    def param(cls, name: str) -> RType:
        return cls(TyKind.PARAM, (name,))

    @classmethod
    def tuple_of(cls, elems: Sequence[RType]) -> RType:
        return cls(TyKind.TUPLE, (), tuple(elems))

    @classmethod
    def slice_of(cls, elem: RType) -> RType:
        return cls(TyKind.SLICE, (), (elem,))

    @classmethod
    def array_of(cls, elem: RType) -> RType:
        return cls(TyKind.ARRAY, (), (elem,))

    @property
    def inner(self) -> RType:
        return self.args[0] if self.args else UNKNOWN

    @property
    def is_known(self) -> bool:
        return self.kind is not TyKind.UNKNOWN

    def is_adt(self, path: Tuple[str, ...]) -> bool:
        return self.kind is TyKind.ADT and self.path == tuple(path)

    def peel_refs(self) -> RType:
        ty = self
        while ty.kind is TyKind.REF:
            ty = ty.inner
        return ty

    def __str__(self) -> str:
        if self.kind is TyKind.ADT:
            name = self.path[-1]
            if self.args:
                return f"{name}<{', '.join(str(a) for a in self.args)}>"
            return name
        if self.kind is TyKind.REF:
            return f"&{'mut ' if self.mutable else ''}{self.inner}"
        if self.kind is TyKind.PTR:
            return f"*{'mut' if self.mutable else 'const'} {self.inner}"
        if self.kind is TyKind.TUPLE:
            return f"({', '.join(str(a) for a in self.args)})"
        if self.kind is TyKind.SLICE:
            return f"[{self.inner}]"
        if self.kind is TyKind.ARRAY:
            return f"[{self.inner}; _]"
        if self.kind in (TyKind.PRIM, TyKind.PARAM):
            return self.path[0]
        if self.kind is TyKind.NEVER:
            return "!"
        return "?"


UNKNOWN = RType(TyKind.UNKNOWN)
UNIT = RType.tuple_of(())
NEVER = RType(TyKind.NEVER)
BOOL = RType.prim("bool")
USIZE = RType.prim("usize")
CHAR = RType.prim("char")
INTEGER = RType.prim("{integer}")
FLOAT = RType.prim("{float}")
STR = RType.prim("str")

PRIMITIVES = frozenset({
    "bool", "char", "str",
    "i8", "i16", "i32", "i64", "i128", "isize",
    "u8", "u16", "u32", "u64", "u128", "usize",
    "f32", "f64",
})

# Library paths used only as result types.
SLICE_IMPL = ("core", "slice", "<impl [T]>")
SLICE_ITER = ("core", "slice", "iter", "Iter")
SLICE_ITER_MUT = ("core", "slice", "iter", "IterMut")
VEC_INTO_ITER = ("alloc", "vec", "into_iter", "IntoIter")
VEC_DRAIN = ("alloc", "vec", "drain", "Drain")
RANGE = ("core", "ops", "range", "Range")
ITERATOR = ("core", "iter", "traits", "iterator", "Iterator")
CLONE_CLONE = ("core", "clone", "Clone", "clone")
ITERATOR_TYPES = frozenset({SLICE_ITER, SLICE_ITER_MUT, VEC_INTO_ITER, VEC_DRAIN, RANGE})


def _elem(ty: RType) -> RType:
    return ty.args[0] if ty.args else UNKNOWN


def _option(ty: RType) -> RType:
    return RType.adt(OPTION, ty)


def _const(ty: RType) -> Callable[[RType], RType]:
    return lambda _recv: ty


MethodTable = Dict[str, Callable[[RType], RType]]

# Receiver → return type, for the library methods the inference follows.
_VEC_METHODS: MethodTable = {
    "pop": lambda t: _option(_elem(t)),
    "push": _const(UNIT),
    "is_empty": _const(BOOL),
    "len": _const(USIZE),
    "capacity": _const(USIZE),
    "clear": _const(UNIT),
    "insert": _const(UNIT),
    "remove": _elem,
    "swap_remove": _elem,
    "truncate": _const(UNIT),
    "reserve": _const(UNIT),
    "retain": _const(UNIT),
    "dedup": _const(UNIT),
    "append": _const(UNIT),
    "extend": _const(UNIT),
    "extend_from_slice": _const(UNIT),
    "split_off": lambda t: t,
    "drain": lambda t: RType.adt(VEC_DRAIN, _elem(t)),
    "into_iter": lambda t: RType.adt(VEC_INTO_ITER, _elem(t)),
    "as_slice": lambda t: RType.ref(RType.slice_of(_elem(t))),
    "as_mut_slice": lambda t: RType.ref(RType.slice_of(_elem(t)), True),
}

_VEC_DEQUE_METHODS: MethodTable = {
    "pop_back": lambda t: _option(_elem(t)),
    "pop_front": lambda t: _option(_elem(t)),
    "push_back": _const(UNIT),
    "push_front": _const(UNIT),
    "is_empty": _const(BOOL),
    "len": _const(USIZE),
    "clear": _const(UNIT),
    "front": lambda t: _option(RType.ref(_elem(t))),
    "back": lambda t: _option(RType.ref(_elem(t))),
}

_OPTION_METHODS: MethodTable = {
    "unwrap": _elem,
    "expect": _elem,
    "unwrap_or": _elem,
    "unwrap_or_default": _elem,
    "unwrap_or_else": _elem,
    "unwrap_unchecked": _elem,
    "is_some": _const(BOOL),
    "is_none": _const(BOOL),
    "take": lambda t: t,
    "as_ref": lambda t: _option(RType.ref(_elem(t))),
    "as_mut": lambda t: _option(RType.ref(_elem(t), True)),
    "cloned": lambda t: _option(_elem(t).peel_refs()),
    "copied": lambda t: _option(_elem(t).peel_refs()),
    "ok_or": lambda t: RType.adt(RESULT, _elem(t), UNKNOWN),
}

_RESULT_METHODS: MethodTable = {
    "unwrap": _elem,
    "expect": _elem,
    "unwrap_or": _elem,
    "unwrap_or_default": _elem,
    "unwrap_err": lambda t: t.args[1] if len(t.args) > 1 else UNKNOWN,
    "is_ok": _const(BOOL),
    "is_err": _const(BOOL),
    "ok": lambda t: _option(_elem(t)),
    "err": lambda t: _option(t.args[1] if len(t.args) > 1 else UNKNOWN),
}

_STRING_METHODS: MethodTable = {
    "pop": _const(_option(CHAR)),
    "push": _const(UNIT),
    "push_str": _const(UNIT),
    "is_empty": _const(BOOL),
    "len": _const(USIZE),
    "clear": _const(UNIT),
    "as_str": _const(RType.ref(STR)),
}

_SLICE_METHODS: MethodTable = {
    "iter": lambda t: RType.adt(SLICE_ITER, RType.ref(_elem(t))),
    "iter_mut": lambda t: RType.adt(SLICE_ITER_MUT, RType.ref(_elem(t), True)),
    "first": lambda t: _option(RType.ref(_elem(t))),
    "last": lambda t: _option(RType.ref(_elem(t))),
    "get": lambda t: _option(RType.ref(_elem(t))),
    "first_mut": lambda t: _option(RType.ref(_elem(t), True)),
    "last_mut": lambda t: _option(RType.ref(_elem(t), True)),
    "get_mut": lambda t: _option(RType.ref(_elem(t), True)),
    "is_empty": _const(BOOL),
    "len": _const(USIZE),
    "contains": _const(BOOL),
    "sort": _const(UNIT),
    "sort_unstable": _const(UNIT),
    "reverse": _const(UNIT),
    "swap": _const(UNIT),
    "to_vec": lambda t: RType.adt(VEC, _elem(t)),
}

_ITERATOR_METHODS: MethodTable = {
    "next": lambda t: _option(_elem(t)),
    "rev": lambda t: t,
    "count": _const(USIZE),
}

_LIBRARY_METHODS: Dict[Tuple[str, ...], MethodTable] = {
    VEC: _VEC_METHODS,
    VEC_DEQUE: _VEC_DEQUE_METHODS,
    OPTION: _OPTION_METHODS,
    RESULT: _RESULT_METHODS,
    STRING: _STRING_METHODS,
}

_EXTERN_ROOTS = frozenset({"std", "core", "alloc"})
_PATH_PREFIXES = frozenset({"crate", "self", "super"})


def _type_params(generics: Sequence[str]) -> List[str]:
    return [g for g in generics if not g.startswith("'")]


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SYMBOL RESOLVER PROTOCOL AND RESULTS
# ═════════════════════════════════════════════════════════════════════════

@runtime_checkable
class SymbolResolver(Protocol):
    """What the matchers need from name resolution."""

    def resolve(self, expr: H.Expr) -> Optional[CallIdentity]:
        """Canonical path of the function ``expr`` calls, if known."""
        ...

    def binding_of(self, expr: H.PathExpr) -> Optional[int]:
        """``hir_id`` of the local binding ``expr`` refers to, if any."""
        ...


@dataclass
class TypeckResults:
    """Side tables produced by :class:`TypeChecker`."""
    call_identities: Dict[int, CallIdentity] = field(default_factory=dict)
    expr_types: Dict[int, RType] = field(default_factory=dict)
    path_bindings: Dict[int, int] = field(default_factory=dict)

    def resolve(self, expr: H.Expr) -> Optional[CallIdentity]:
        return self.call_identities.get(expr.hir_id)

    def binding_of(self, expr: H.PathExpr) -> Optional[int]:
        return self.path_bindings.get(expr.hir_id)

    def type_of(self, expr: H.Expr) -> RType:
        return self.expr_types.get(expr.hir_id, UNKNOWN)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — ITEM TABLE (names, type lowering, method lookup)
# ═════════════════════════════════════════════════════════════════════════

MethodEntry = Tuple[H.ImplBlock, H.FnDef]


class ItemTable:
    """
    Crate-wide item collection.

    Items are collected from the crate root, inline modules and blocks.
    Modules share one namespace: ``foo::Bar`` and ``Bar`` name the same
    struct when the crate defines a single ``Bar``.
    """

    _MAX_ALIAS_DEPTH = 16

    def __init__(self, crate: H.Crate) -> None:
        self.structs: Dict[str, H.StructDef] = {}
        self.enums: Set[str] = set()
        self.traits: Dict[str, H.TraitDef] = {}
        self.aliases: Dict[str, H.TypeAlias] = {}
        self.uses: Dict[str, Tuple[str, ...]] = {}
        self.fns: Dict[str, H.FnDef] = {}
        self.consts: Dict[str, H.ConstItem] = {}
        self.inherent: Dict[Tuple[str, ...], Dict[str, MethodEntry]] = {}
        self.trait_impls: Dict[Tuple[str, ...], Dict[str, Tuple[H.ImplBlock, H.FnDef, str]]] = {}
        self._impls: List[H.ImplBlock] = []
        self._collect(crate)
        for impl in self._impls:
            self._register_impl(impl)

    # ── collection ───────────────────────────────────────────────────

    def _collect(self, crate: H.Crate) -> None:
        pending: List[H.Item] = list(crate.items)
        pending.extend(node.item for node in walk(crate) if isinstance(node, H.ItemStmt))
        while pending:
            item = pending.pop()
            if isinstance(item, H.StructDef):
                self.structs[item.name] = item
            elif isinstance(item, H.EnumDef):
                self.enums.add(item.name)
            elif isinstance(item, H.TraitDef):
                self.traits[item.name] = item
            elif isinstance(item, H.TypeAlias):
                self.aliases[item.name] = item
            elif isinstance(item, H.UseDecl):
                if not item.glob and item.local_name not in ("", "_"):
                    self.uses[item.local_name] = item.path
            elif isinstance(item, H.FnDef):
                self.fns[item.name] = item
            elif isinstance(item, H.ConstItem):
                self.consts[item.name] = item
            elif isinstance(item, H.ImplBlock):
                self._impls.append(item)
            elif isinstance(item, H.ModDef):
                pending.extend(item.items)

    def _register_impl(self, impl: H.ImplBlock) -> None:
        env = {g: RType.param(g) for g in _type_params(impl.generics)}
        key = self.impl_key(self.lower_ty(impl.self_ty, env))
        if key is None:
            logger.debug("impl for unresolved type at %s skipped", impl.span)
            return
        for item in impl.items:
            if not isinstance(item, H.FnDef):
                continue
            if impl.trait_ref is None:
                self.inherent.setdefault(key, {})[item.name] = (impl, item)
            else:
                trait_name = getattr(impl.trait_ref, "name", "")
                self.trait_impls.setdefault(key, {})[item.name] = (impl, item, trait_name)

    @staticmethod
    def impl_key(ty: RType) -> Optional[Tuple[str, ...]]:
        if ty.kind is TyKind.ADT:
            return ty.path
        if ty.kind is TyKind.PRIM:
            return ("prim",) + ty.path
        if ty.kind in (TyKind.SLICE, TyKind.ARRAY):
            return ("slice",)
        return None

    # ── path expansion ───────────────────────────────────────────────

    def expand_path(self, segments: Sequence[str]) -> Tuple[str, ...]:
        """Apply ``use`` imports and drop ``crate``/``self``/``super`` prefixes."""
        segs = tuple(segments)
        for _ in range(self._MAX_ALIAS_DEPTH):
            while len(segs) > 1 and segs[0] in _PATH_PREFIXES:
                segs = segs[1:]
            head = self.uses.get(segs[0]) if segs else None
            if head is None or head == segs[:1]:
                break
            segs = head + segs[1:]
        return segs

    # ── type lowering ────────────────────────────────────────────────

    def lower_ty(
        self,
        ty: Optional[H.Ty],
        env: Optional[Dict[str, RType]] = None,
        depth: int = 0,
    ) -> RType:
        """Lower a syntactic type in the generic environment ``env``."""
        env = env or {}
        if ty is None:
            return UNKNOWN
        if isinstance(ty, H.RefTy):
            return RType.ref(self.lower_ty(ty.inner, env, depth), ty.mutable)
        if isinstance(ty, H.PtrTy):
            return RType(TyKind.PTR, (), (self.lower_ty(ty.inner, env, depth),), ty.mutable)
        if isinstance(ty, H.TupleTy):
            return RType.tuple_of([self.lower_ty(t, env, depth) for t in ty.elems])
        if isinstance(ty, H.SliceTy):
            elem = self.lower_ty(ty.inner, env, depth)
            return RType.slice_of(elem) if ty.length is None else RType.array_of(elem)
        if isinstance(ty, H.NeverTy):
            return NEVER
        if isinstance(ty, H.PathTy):
            segs = ty.segments
            if len(segs) == 1 and segs[0] in env:
                return env[segs[0]]
            if len(segs) == 1 and segs[0] in PRIMITIVES:
                return RType.prim(segs[0])
            args = tuple(self.lower_ty(a, env, depth) for a in ty.args)
            return self.resolve_type_name(segs, args, depth)
        return UNKNOWN

    def resolve_type_name(
        self,
        segments: Sequence[str],
        args: Tuple[RType, ...] = (),
        depth: int = 0,
    ) -> RType:
        """Resolve a type path (already stripped of generic params) to an RType."""
        if depth > self._MAX_ALIAS_DEPTH:
            logger.debug("type alias chain too deep at %s", "::".join(segments))
            return UNKNOWN
        segs = self.expand_path(segments)
        if not segs:
            return UNKNOWN
        name = segs[-1]
        local = len(segs) == 1 or segs[0] not in _EXTERN_ROOTS
        if local and name in self.aliases:
            alias = self.aliases[name]
            env = dict(zip(_type_params(alias.generics), args))
            return self.lower_ty(alias.ty, env, depth + 1)
        if local and (name in self.structs or name in self.enums):
            return RType.adt(("crate", name), *args)
        lib = canonical_type_path(segs)
        if lib is not None:
            return RType.adt(lib, *args)
        if len(segs) == 1 and name in PRIMITIVES:
            return RType.prim(name)
        if len(segs) > 1:
            return RType.adt(("extern",) + segs, *args)
        return UNKNOWN

    # ── autoderef and method lookup ──────────────────────────────────

    @staticmethod
    def autoderef(ty: RType) -> Iterator[RType]:
        """``ty``, then each type reachable by one more implicit deref."""
        for _ in range(8):
            if not ty.is_known:
                return
            yield ty
            if ty.kind is TyKind.REF:
                ty = ty.inner
            elif ty.is_adt(BOX):
                ty = _elem(ty)
            elif ty.is_adt(VEC):
                ty = RType.slice_of(_elem(ty))
            elif ty.is_adt(STRING):
                ty = STR
            else:
                return

    def lookup_method(self, recv: RType, name: str) -> Optional[Tuple[CallIdentity, RType]]:
        """Resolve ``recv.name(..)``: per deref step, inherent → library → trait."""
        for step in self.autoderef(recv):
            found = self._method_on(step, name)
            if found is not None:
                return found
        return None

    def _method_on(self, ty: RType, name: str) -> Optional[Tuple[CallIdentity, RType]]:
        if ty.kind is TyKind.ADT:
            entry = self.inherent.get(ty.path, {}).get(name)
            if entry is not None:
                impl, fn = entry
                return ty.path + (name,), self.method_return(impl, fn, ty)
            table = _LIBRARY_METHODS.get(ty.path)
            if table is not None and name in table:
                return ty.path + (name,), table[name](ty)
            if ty.path in ITERATOR_TYPES and name in _ITERATOR_METHODS:
                return ITERATOR + (name,), _ITERATOR_METHODS[name](ty)
        elif ty.kind in (TyKind.SLICE, TyKind.ARRAY) and name in _SLICE_METHODS:
            return SLICE_IMPL + (name,), _SLICE_METHODS[name](ty)
        key = self.impl_key(ty)
        if key is not None:
            trait_entry = self.trait_impls.get(key, {}).get(name)
            if trait_entry is not None:
                impl, fn, trait_name = trait_entry
                return ("crate", trait_name, name), self.method_return(impl, fn, ty)
        if name == "clone" and ty.kind is not TyKind.REF:
            return CLONE_CLONE, ty
        return None

    def method_return(self, impl: H.ImplBlock, fn: H.FnDef, self_ty: RType) -> RType:
        """Return type of ``fn`` (declared in ``impl``) called on ``self_ty``."""
        if fn.ret is None:
            return UNIT
        env: Dict[str, RType] = {g: UNKNOWN for g in _type_params(impl.generics)}
        env.update({g: UNKNOWN for g in _type_params(fn.generics)})
        if isinstance(impl.self_ty, H.PathTy):
            for arg, actual in zip(impl.self_ty.args, self_ty.args):
                if isinstance(arg, H.PathTy) and len(arg.segments) == 1 and arg.segments[0] in env:
                    env[arg.segments[0]] = actual
        env["Self"] = self_ty
        return self.lower_ty(fn.ret, env)

    def lookup_assoc(
        self,
        owner: RType,
        name: str,
        arg_tys: Sequence[RType],
    ) -> Optional[Tuple[Optional[CallIdentity], RType]]:
        """Resolve ``Owner::name(args)``: constructors and UFCS method calls."""
        if owner.kind is not TyKind.ADT:
            return None
        entry = self.inherent.get(owner.path, {}).get(name)
        if entry is not None:
            impl, fn = entry
            return owner.path + (name,), self.method_return(impl, fn, owner)
        first = arg_tys[0].peel_refs() if arg_tys else UNKNOWN
        if owner.path == VEC:
            if name in ("new", "with_capacity"):
                return owner.path + (name,), RType.adt(VEC, _elem(owner))
            if name == "from":
                return owner.path + (name,), RType.adt(VEC, _elem(first))
        if owner.path == BOX and name == "new":
            return BOX + (name,), RType.adt(BOX, arg_tys[0] if arg_tys else UNKNOWN)
        if owner.path == STRING and name in ("new", "from", "with_capacity"):
            return STRING + (name,), RType.adt(STRING)
        table = _LIBRARY_METHODS.get(owner.path)
        if table is not None and name in table:
            recv = first if first.is_adt(owner.path) else owner
            return owner.path + (name,), table[name](recv)
        return None

    # ── fields ───────────────────────────────────────────────────────

    def field_type(self, ty: RType, name: str) -> Optional[RType]:
        if ty.kind is TyKind.TUPLE and name.isdigit():
            idx = int(name)
            return ty.args[idx] if idx < len(ty.args) else None
        if ty.kind is TyKind.ADT and ty.path[:1] == ("crate",):
            struct = self.structs.get(ty.path[-1])
            if struct is None:
                return None
            env = dict(zip(_type_params(struct.generics), ty.args))
            for f in struct.fields:
                if f.name == name:
                    return self.lower_ty(f.ty, {g: env.get(g, UNKNOWN) for g in _type_params(struct.generics)})
        return None


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — TYPE CHECKER
# ═════════════════════════════════════════════════════════════════════════

_COMPARISONS = frozenset({
    H.BinOp.EQ, H.BinOp.NE, H.BinOp.LT, H.BinOp.GT, H.BinOp.LE, H.BinOp.GE,
    H.BinOp.AND, H.BinOp.OR,
})

_DIVERGING_MACROS = frozenset({"panic", "unreachable", "todo", "unimplemented"})


def _prefer(declared: RType, inferred: RType) -> RType:
    if not declared.is_known:
        return inferred
    if (declared.kind is TyKind.ADT and inferred.kind is TyKind.ADT
            and declared.path == inferred.path
            and not any(a.is_known for a in declared.args)):
        return inferred
    return declared


def _iter_element(ty: RType) -> RType:
    """Item type of ``for _ in <ty>``."""
    if ty.kind is TyKind.REF:
        inner = ty.inner
        if inner.is_adt(VEC) or inner.kind in (TyKind.SLICE, TyKind.ARRAY):
            return RType.ref(_elem(inner), ty.mutable)
        return UNKNOWN
    if ty.is_adt(VEC) or ty.kind is TyKind.ARRAY:
        return _elem(ty)
    if ty.kind is TyKind.ADT and ty.path in ITERATOR_TYPES:
        return _elem(ty)
    return UNKNOWN


class TypeChecker(HirVisitor):
    """
    Forward type inference over every function body of a crate.

    Usage::

        results = TypeChecker(crate).run()
        results.resolve(method_call_expr)   # -> ("alloc", "vec", "Vec", "pop")
    """

    def __init__(self, crate: H.Crate, items: Optional[ItemTable] = None) -> None:
        self.crate = crate
        self.items = items or ItemTable(crate)
        self.results = TypeckResults()
        self._scopes: List[Dict[str, Tuple[int, RType]]] = []
        self._env: Dict[str, RType] = {}

    def run(self) -> TypeckResults:
        for item in self.crate.items:
            self._check_item(item, {})
        logger.debug(
            "typeck: %d call identities, %d typed expressions",
            len(self.results.call_identities), len(self.results.expr_types),
        )
        return self.results

    # ── items ────────────────────────────────────────────────────────

    def _check_item(self, item: H.Item, env: Dict[str, RType]) -> None:
        if isinstance(item, H.FnDef):
            self._check_fn(item, env)
        elif isinstance(item, H.ImplBlock):
            impl_env = {g: RType.param(g) for g in _type_params(item.generics)}
            impl_env["Self"] = self.items.lower_ty(item.self_ty, impl_env)
            for sub in item.items:
                self._check_item(sub, impl_env)
        elif isinstance(item, H.TraitDef):
            trait_env = {g: RType.param(g) for g in _type_params(item.generics)}
            trait_env["Self"] = RType.param("Self")
            for sub in item.items:
                self._check_item(sub, trait_env)
        elif isinstance(item, H.ModDef):
            for sub in item.items:
                self._check_item(sub, {})
        elif isinstance(item, H.ConstItem) and item.value is not None:
            with self._body(env):
                self._infer(item.value)

    def _check_fn(self, fn: H.FnDef, env: Dict[str, RType]) -> None:
        if fn.body is None:
            return
        fn_env = dict(env)
        fn_env.update({g: RType.param(g) for g in _type_params(fn.generics)})
        with self._body(fn_env):
            for param in fn.params:
                self._bind_pat(param.pat, self._lower(param.ty))
            self._infer(fn.body)

    def _body(self, env: Dict[str, RType]) -> _BodyScope:
        return _BodyScope(self, env)

    # ── scopes ───────────────────────────────────────────────────────

    def _push(self) -> None:
        self._scopes.append({})

    def _pop(self) -> None:
        self._scopes.pop()

    def _declare(self, name: str, binding_id: int, ty: RType) -> None:
        self._scopes[-1][name] = (binding_id, ty)

    def _lookup_local(self, name: str) -> Optional[Tuple[int, RType]]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def _lower(self, ty: Optional[H.Ty]) -> RType:
        return self.items.lower_ty(ty, self._env)

    # ── patterns ─────────────────────────────────────────────────────

    def _bind_pat(self, pat: H.Pat, ty: RType) -> None:
        if isinstance(pat, H.BindingPat):
            bound = RType.ref(ty, pat.mutable) if pat.by_ref else ty
            self._declare(pat.name, pat.hir_id, bound)
            if pat.subpat is not None:
                self._bind_pat(pat.subpat, ty)
        elif isinstance(pat, H.RefPat):
            self._bind_pat(pat.inner, ty.inner if ty.kind is TyKind.REF else UNKNOWN)
        elif isinstance(pat, H.TuplePat):
            base, wrap = self._binding_mode(ty)
            elems = base.args if base.kind is TyKind.TUPLE else ()
            for idx, sub in enumerate(pat.elems):
                self._bind_pat(sub, wrap(elems[idx]) if idx < len(elems) else UNKNOWN)
        elif isinstance(pat, H.TupleStructPat):
            base, wrap = self._binding_mode(ty)
            payload = self._variant_payload(pat.path, base)
            for idx, sub in enumerate(pat.elems):
                self._bind_pat(sub, wrap(payload) if idx == 0 else UNKNOWN)
        elif isinstance(pat, H.SlicePat):
            base, wrap = self._binding_mode(ty)
            elem = _elem(base) if (base.is_adt(VEC) or base.kind in (TyKind.SLICE, TyKind.ARRAY)) else UNKNOWN
            for sub in pat.elems:
                self._bind_pat(sub, wrap(elem) if elem.is_known else UNKNOWN)
        elif isinstance(pat, H.OrPat):
            for alt in pat.alts:
                self._bind_pat(alt, ty)

    @staticmethod
    def _binding_mode(ty: RType) -> Tuple[RType, Callable[[RType], RType]]:
        """Peel references off a scrutinee; bindings inside become references."""
        if ty.kind is not TyKind.REF:
            return ty, lambda t: t
        mutable = ty.mutable
        return ty.peel_refs(), lambda t: RType.ref(t, mutable)

    def _variant_payload(self, path: Tuple[str, ...], ty: RType) -> RType:
        variant = VARIANT_PATHS.get(self.items.expand_path(path)[-1:])
        if variant is None:
            return UNKNOWN
        if variant[:-1] == OPTION and ty.is_adt(OPTION):
            return _elem(ty)
        if variant[:-1] == RESULT and ty.is_adt(RESULT):
            if variant[-1] == "Ok":
                return _elem(ty)
            return ty.args[1] if len(ty.args) > 1 else UNKNOWN
        return UNKNOWN

    # ── statements ───────────────────────────────────────────────────

    def _check_stmt(self, stmt: H.Stmt) -> None:
        if isinstance(stmt, H.Local):
            init_ty = self._infer(stmt.init) if stmt.init is not None else UNKNOWN
            declared = self._lower(stmt.ty) if stmt.ty is not None else UNKNOWN
            if stmt.els is not None:
                self._infer(stmt.els)
            self._bind_pat(stmt.pat, _prefer(declared, init_ty))
        elif isinstance(stmt, H.ExprStmt):
            self._infer(stmt.expr)
        elif isinstance(stmt, H.ItemStmt):
            self._check_item(stmt.item, {})

    def _infer_cond(self, cond: H.Expr) -> None:
        """Infer a condition; ``let`` conditions bind into the current scope."""
        if isinstance(cond, H.LetCond):
            init_ty = self._infer(cond.init)
            self.results.expr_types[cond.hir_id] = BOOL
            self._bind_pat(cond.pat, init_ty)
        else:
            self._infer(cond)

    # ── expressions ──────────────────────────────────────────────────

    def _infer(self, expr: H.Expr) -> RType:
        ty = self.visit(expr)
        if ty is None:
            ty = UNKNOWN
        self.results.expr_types[expr.hir_id] = ty
        return ty

    def generic_visit(self, node: H.Node) -> RType:
        for child in node.children():
            if isinstance(child, H.Expr):
                self._infer(child)
        return UNKNOWN

    def visit_lit(self, expr: H.Lit) -> RType:
        if expr.kind is H.LitKind.INT:
            return RType.prim(expr.suffix) if expr.suffix else INTEGER
        if expr.kind is H.LitKind.FLOAT:
            return RType.prim(expr.suffix) if expr.suffix else FLOAT
        if expr.kind is H.LitKind.STR:
            return RType.ref(STR)
        if expr.kind is H.LitKind.BYTE_STR:
            return RType.ref(RType.slice_of(RType.prim("u8")))
        if expr.kind is H.LitKind.CHAR:
            return CHAR
        if expr.kind is H.LitKind.BYTE:
            return RType.prim("u8")
        return BOOL

    def visit_path_expr(self, expr: H.PathExpr) -> RType:
        if expr.is_single:
            found = self._lookup_local(expr.segments[0])
            if found is not None:
                binding_id, ty = found
                self.results.path_bindings[expr.hir_id] = binding_id
                return ty
            if VARIANT_PATHS.get(expr.segments) == OPTION + ("None",):
                return _option(UNKNOWN)
            const = self.items.consts.get(expr.segments[0])
            if const is not None:
                return self._lower(const.ty)
        return UNKNOWN

    def visit_method_call(self, expr: H.MethodCall) -> RType:
        recv = self._infer(expr.receiver)
        for arg in expr.args:
            self._infer(arg)
        found = self.items.lookup_method(recv, expr.method)
        if found is None:
            return UNKNOWN
        identity, ret = found
        self.results.call_identities[expr.hir_id] = identity
        if expr.method == "collect" and expr.generic_args:
            return self._lower(expr.generic_args[0])
        return ret

    def visit_call(self, expr: H.Call) -> RType:
        arg_tys = [self._infer(arg) for arg in expr.args]
        func = expr.func
        if not isinstance(func, H.PathExpr):
            self._infer(func)
            return UNKNOWN
        found = self._resolve_path_call(func, arg_tys)
        self.results.expr_types[func.hir_id] = UNKNOWN
        if found is None:
            return UNKNOWN
        identity, ret = found
        if identity is not None:
            self.results.call_identities[expr.hir_id] = identity
        return ret

    def _resolve_path_call(
        self, func: H.PathExpr, arg_tys: Sequence[RType],
    ) -> Optional[Tuple[Optional[CallIdentity], RType]]:
        segs = func.segments
        first = arg_tys[0] if arg_tys else UNKNOWN
        if func.is_single:
            name = segs[0]
            local = self._lookup_local(name)
            if local is not None:
                self.results.path_bindings[func.hir_id] = local[0]
                return None
            variant = VARIANT_PATHS.get(segs)
            if variant is not None:
                if variant[:-1] == OPTION:
                    return variant, _option(first)
                if variant[-1] == "Ok":
                    return variant, RType.adt(RESULT, first, UNKNOWN)
                return variant, RType.adt(RESULT, UNKNOWN, first)
            if name in self.items.structs:
                return ("crate", name), RType.adt(("crate", name))
        fn = self.items.fns.get(segs[-1])
        owner = self._owner_type(segs[:-1], func.generic_args) if len(segs) > 1 else UNKNOWN
        if owner.is_known:
            return self.items.lookup_assoc(owner, segs[-1], arg_tys)
        if fn is not None:
            env = {g: UNKNOWN for g in _type_params(fn.generics)}
            return ("crate", fn.name), self.items.lower_ty(fn.ret, env) if fn.ret else UNIT
        return None

    def _owner_type(self, segments: Sequence[str], generic_args: Sequence[H.Ty]) -> RType:
        if tuple(segments) == ("Self",):
            return self._env.get("Self", UNKNOWN)
        args = tuple(self._lower(a) for a in generic_args)
        return self.items.resolve_type_name(segments, args)

    def visit_macro_call(self, expr: H.MacroCall) -> RType:
        arg_tys = [self._infer(arg) for arg in expr.args]
        if expr.name == "vec":
            return RType.adt(VEC, arg_tys[0] if arg_tys else UNKNOWN)
        if expr.name == "format":
            return RType.adt(STRING)
        if expr.name in _DIVERGING_MACROS:
            return NEVER
        return UNKNOWN

    def visit_field(self, expr: H.Field) -> RType:
        base = self._infer(expr.base)
        for step in self.items.autoderef(base):
            found = self.items.field_type(step, expr.name)
            if found is not None:
                return found
        return UNKNOWN

    def visit_index(self, expr: H.Index) -> RType:
        base = self._infer(expr.base)
        index = self._infer(expr.index)
        for step in self.items.autoderef(base):
            if step.is_adt(VEC) or step.kind in (TyKind.SLICE, TyKind.ARRAY):
                if index.is_adt(RANGE):
                    return RType.slice_of(_elem(step))
                return _elem(step)
        return UNKNOWN

    def visit_unary(self, expr: H.Unary) -> RType:
        operand = self._infer(expr.operand)
        if expr.op is H.UnOp.DEREF:
            if operand.kind in (TyKind.REF, TyKind.PTR) or operand.is_adt(BOX):
                return operand.inner
            return UNKNOWN
        return operand

    def visit_addr_of(self, expr: H.AddrOf) -> RType:
        return RType.ref(self._infer(expr.operand), expr.mutable)

    def visit_binary(self, expr: H.Binary) -> RType:
        lhs = self._infer(expr.lhs)
        self._infer(expr.rhs)
        if expr.op in _COMPARISONS:
            return BOOL
        return lhs

    def visit_assign(self, expr: H.Assign) -> RType:
        self._infer(expr.target)
        self._infer(expr.value)
        return UNIT

    def visit_cast(self, expr: H.Cast) -> RType:
        self._infer(expr.expr)
        return self._lower(expr.ty)

    def visit_try(self, expr: H.Try) -> RType:
        inner = self._infer(expr.expr)
        if inner.is_adt(OPTION) or inner.is_adt(RESULT):
            return _elem(inner)
        return UNKNOWN

    def visit_range(self, expr: H.Range) -> RType:
        bound = UNKNOWN
        for part in (expr.start, expr.end):
            if part is not None:
                ty = self._infer(part)
                bound = bound if bound.is_known else ty
        return RType.adt(RANGE, bound)

    def visit_tuple_expr(self, expr: H.TupleExpr) -> RType:
        return RType.tuple_of([self._infer(e) for e in expr.elems])

    def visit_array_expr(self, expr: H.ArrayExpr) -> RType:
        elems = [self._infer(e) for e in expr.elems]
        return RType.array_of(elems[0] if elems else UNKNOWN)

    def visit_repeat_expr(self, expr: H.RepeatExpr) -> RType:
        elem = self._infer(expr.elem)
        self._infer(expr.count)
        return RType.array_of(elem)

    def visit_struct_lit(self, expr: H.StructLit) -> RType:
        for _, value in expr.fields:
            self._infer(value)
        if expr.base is not None:
            self._infer(expr.base)
        if expr.path == ("Self",):
            return self._env.get("Self", UNKNOWN)
        return self.items.resolve_type_name(expr.path)

    def visit_block(self, expr: H.Block) -> RType:
        self._push()
        try:
            for stmt in expr.stmts:
                self._check_stmt(stmt)
            return self._infer(expr.expr) if expr.expr is not None else UNIT
        finally:
            self._pop()

    def visit_let_cond(self, expr: H.LetCond) -> RType:
        self._infer(expr.init)
        return BOOL

    def visit_if(self, expr: H.If) -> RType:
        self._push()
        try:
            self._infer_cond(expr.cond)
            then_ty = self._infer(expr.then)
        finally:
            self._pop()
        if expr.else_ is not None:
            else_ty = self._infer(expr.else_)
            if then_ty == NEVER:
                return else_ty
        return then_ty

    def visit_while(self, expr: H.While) -> RType:
        self._push()
        try:
            self._infer_cond(expr.cond)
            self._infer(expr.body)
        finally:
            self._pop()
        return UNIT

    def visit_loop(self, expr: H.Loop) -> RType:
        self._infer(expr.body)
        return UNKNOWN

    def visit_for_loop(self, expr: H.ForLoop) -> RType:
        iter_ty = self._infer(expr.iter)
        self._push()
        try:
            self._bind_pat(expr.pat, _iter_element(iter_ty))
            self._infer(expr.body)
        finally:
            self._pop()
        return UNIT

    def visit_match(self, expr: H.Match) -> RType:
        scrutinee = self._infer(expr.scrutinee)
        result = UNKNOWN
        for arm in expr.arms:
            self._push()
            try:
                self._bind_pat(arm.pat, scrutinee)
                if arm.guard is not None:
                    self._infer(arm.guard)
                arm_ty = self._infer(arm.body)
            finally:
                self._pop()
            if not result.is_known and arm_ty != NEVER:
                result = arm_ty
        return result

    def visit_closure(self, expr: H.Closure) -> RType:
        self._push()
        try:
            for param in expr.params:
                self._bind_pat(param.pat, self._lower(param.ty))
            self._infer(expr.body)
        finally:
            self._pop()
        return UNKNOWN

    def visit_break(self, expr: H.Break) -> RType:
        if expr.expr is not None:
            self._infer(expr.expr)
        return NEVER

    def visit_continue(self, expr: H.Continue) -> RType:
        return NEVER

    def visit_return(self, expr: H.Return) -> RType:
        if expr.expr is not None:
            self._infer(expr.expr)
        return NEVER


class _BodyScope:
    """Fresh scope stack and generic environment for one body."""

    def __init__(self, checker: TypeChecker, env: Dict[str, RType]) -> None:
        self.checker = checker
        self.env = env
        self._saved: Tuple[List[Dict[str, Tuple[int, RType]]], Dict[str, RType]] = ([], {})

    def __enter__(self) -> _BodyScope:
        self._saved = (self.checker._scopes, self.checker._env)
        self.checker._scopes = [{}]
        self.checker._env = self.env
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.checker._scopes, self.checker._env = self._saved


def typeck(crate: H.Crate) -> TypeckResults:
    """Run type inference over ``crate`` and return the side tables."""
    return TypeChecker(crate).run()


__all__ = [
    "TyKind",
    "RType",
    "UNKNOWN",
    "SymbolResolver",
    "TypeckResults",
    "ItemTable",
    "TypeChecker",
    "typeck",
]
