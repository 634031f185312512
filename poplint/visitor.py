"""
poplint/visitor.py
==================

Visitor infrastructure for HIR traversal.

Provides:
- ``HirVisitor`` — dispatches ``visit(node)`` to ``visit_<snake_name>``
  (``visit_method_call`` for :class:`hir.MethodCall`), falling back to
  ``generic_visit``
- ``DepthFirstVisitor`` — visits every descendant, with ``enter`` /
  ``leave`` hooks
- ``walk`` — pre-order generator over a subtree
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterator, Optional, Type

from poplint import hir as H

__all__ = [
    "HirVisitor",
    "DepthFirstVisitor",
    "walk",
]

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _method_name(cls: Type[H.Node]) -> str:
    return "visit_" + _CAMEL_RE.sub("_", cls.__name__).lower()


class HirVisitor:
    """Base class for HIR visitors.

    Subclasses define ``visit_<node>`` for the node types they care about;
    every other node goes to ``generic_visit``, which does nothing.
    """

    def visit(self, node: H.Node) -> Any:
        # One cache per concrete visitor class.
        cache: Dict[Type[H.Node], Optional[str]] = type(self).__dict__.get("_dispatch_cache")
        if cache is None:
            cache = {}
            type(self)._dispatch_cache = cache
        name = cache.get(type(node), "")
        if name == "":
            name = self._lookup(type(node))
            cache[type(node)] = name
        if name is None:
            return self.generic_visit(node)
        method: Callable[[H.Node], Any] = getattr(self, name)
        return method(node)

    def _lookup(self, cls: Type[H.Node]) -> Optional[str]:
        # Most derived class first: a handler for ``Expr`` sees every expression.
        for klass in cls.__mro__:
            if not (isinstance(klass, type) and issubclass(klass, H.Node)):
                continue
            name = _method_name(klass)
            if hasattr(self, name):
                return name
        return None

    def generic_visit(self, node: H.Node) -> Any:
        return None


class DepthFirstVisitor(HirVisitor):
    """Visitor that traverses all children in depth-first order.

    Override ``enter`` / ``leave`` for pre/post-order processing, or
    ``visit_X`` for a node type (call ``self.generic_visit(node)`` from
    it to keep descending).
    """

    def generic_visit(self, node: H.Node) -> Any:
        self.enter(node)
        for child in node.children():
            self.visit(child)
        self.leave(node)
        return None

    def enter(self, node: H.Node) -> None:
        pass

    def leave(self, node: H.Node) -> None:
        pass


def walk(node: H.Node) -> Iterator[H.Node]:
    """Yield ``node`` and every descendant in pre-order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(current.children())))
