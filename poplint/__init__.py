"""
poplint — a linter for hand-rolled ``Vec`` draining loops in Rust
=================================================================

poplint finds loops of the shape::

    while !stack.is_empty() {
        let top = stack.pop().unwrap();
        ...
    }

and suggests the idiomatic ``while let Some(top) = stack.pop() { ... }``.

Core modules
------------
source
    Spans, line/column mapping and snippets.
hir / parser
    A parsimonious grammar for a practical subset of Rust, lowered to
    immutable HIR dataclasses.
resolver
    Local type inference and method resolution (the ``SymbolResolver``).
spanless
    Position-insensitive structural equality of HIR fragments.
matchers / while_pop_unwrap / suggestion
    The lint itself and its machine-applicable fix.
checkers / plus_reporter
    Checker framework, suppressions, and Rust-style / SARIF reporting.

Quick start
-----------
>>> from poplint import CheckerRunner
>>> results = CheckerRunner().run_text(
...     "fn f(mut v: Vec<i32>) { while !v.is_empty() { let x = v.pop().unwrap(); } }")
>>> results.diagnostics[0].error_id
'whilePopUnwrap'
"""

from __future__ import annotations

import logging
from typing import List

__version__ = "0.1.0"
__author__ = "poplint contributors"
__license__ = "MIT"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from poplint.checkers import (  # noqa: E402
    CheckerRegistry,
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
    SuppressionManager,
    WhilePopUnwrapChecker,
)
from poplint.config import LintConfig  # noqa: E402
from poplint.errors import (  # noqa: E402
    ConfigError,
    OverlappingEditsError,
    ParseFailure,
    PoplintError,
)
from poplint.parser import parse_file, parse_source, parse_text  # noqa: E402
from poplint.source import SourceFile, SourceLocation, Span  # noqa: E402
from poplint.suggestion import MultiSpanSuggestion, apply_edits, build_suggestion  # noqa: E402
from poplint.while_pop_unwrap import Finding, check, check_while  # noqa: E402

__all__: List[str] = [
    "__version__",
    "CheckerRegistry",
    "CheckerRunner",
    "CheckerRunResults",
    "Diagnostic",
    "DiagnosticSeverity",
    "SuppressionManager",
    "WhilePopUnwrapChecker",
    "LintConfig",
    "PoplintError",
    "ParseFailure",
    "OverlappingEditsError",
    "ConfigError",
    "parse_file",
    "parse_source",
    "parse_text",
    "SourceFile",
    "SourceLocation",
    "Span",
    "MultiSpanSuggestion",
    "apply_edits",
    "build_suggestion",
    "Finding",
    "check",
    "check_while",
]
