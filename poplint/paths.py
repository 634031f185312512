"""
poplint/paths.py
════════════════

Canonical definition paths of the library items the lints care about.

A :data:`CallIdentity` is the fully-qualified path of the function a call
resolves to, independent of how the call was spelled at the use site.
``v.pop()`` on a ``Vec<u8>``, ``s.pop()`` on an ``s: Stack`` (with
``type Stack = Vec<u8>``) and ``b.pop()`` on a ``Box<Vec<u8>>`` all resolve
to :data:`VEC_POP`.  The matchers only consult the identities of method
calls, so a path call such as ``Vec::pop(&mut v)`` never matches.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

CallIdentity = Tuple[str, ...]

# ── library definitions ──────────────────────────────────────────────

VEC = ("alloc", "vec", "Vec")
VEC_DEQUE = ("alloc", "collections", "vec_deque", "VecDeque")
OPTION = ("core", "option", "Option")
RESULT = ("core", "result", "Result")
BOX = ("alloc", "boxed", "Box")
STRING = ("alloc", "string", "String")

VEC_POP: CallIdentity = VEC + ("pop",)
VEC_IS_EMPTY: CallIdentity = VEC + ("is_empty",)
OPTION_UNWRAP: CallIdentity = OPTION + ("unwrap",)
OPTION_EXPECT: CallIdentity = OPTION + ("expect",)

# Prelude names and the fully-qualified spellings that name the same item.
TYPE_PATHS = {
    ("Vec",): VEC,
    ("std", "vec", "Vec"): VEC,
    ("alloc", "vec", "Vec"): VEC,
    ("Option",): OPTION,
    ("std", "option", "Option"): OPTION,
    ("core", "option", "Option"): OPTION,
    ("Result",): RESULT,
    ("std", "result", "Result"): RESULT,
    ("core", "result", "Result"): RESULT,
    ("Box",): BOX,
    ("std", "boxed", "Box"): BOX,
    ("alloc", "boxed", "Box"): BOX,
    ("String",): STRING,
    ("std", "string", "String"): STRING,
    ("alloc", "string", "String"): STRING,
    ("std", "collections", "VecDeque"): VEC_DEQUE,
    ("std", "collections", "vec_deque", "VecDeque"): VEC_DEQUE,
    ("alloc", "collections", "VecDeque"): VEC_DEQUE,
    ("alloc", "collections", "vec_deque", "VecDeque"): VEC_DEQUE,
}

# Enum variants brought in by the prelude.
VARIANT_PATHS = {
    ("Some",): OPTION + ("Some",),
    ("None",): OPTION + ("None",),
    ("Ok",): RESULT + ("Ok",),
    ("Err",): RESULT + ("Err",),
}


def canonical_type_path(segments: Tuple[str, ...]) -> Optional[Tuple[str, ...]]:
    """Canonical definition of a library type path, or ``None`` if unknown."""
    return TYPE_PATHS.get(tuple(segments))


def match_def_path(identity: Optional[CallIdentity], path: Iterable[str]) -> bool:
    """True if ``identity`` is exactly the definition ``path``."""
    return identity is not None and tuple(identity) == tuple(path)


def def_path_str(identity: CallIdentity) -> str:
    return "::".join(identity)


__all__ = [
    "CallIdentity",
    "VEC", "VEC_DEQUE", "OPTION", "RESULT", "BOX", "STRING",
    "VEC_POP", "VEC_IS_EMPTY", "OPTION_UNWRAP", "OPTION_EXPECT",
    "canonical_type_path", "match_def_path", "def_path_str",
]
