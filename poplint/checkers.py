"""
poplint/checkers.py
═══════════════════

Checker framework: turns lint findings on a parsed, type-checked crate
into suppressible, serialisable diagnostics.

Architecture
────────────

  ┌─────────────────────────────────────────────────────────┐
  │                   CheckerRunner                         │
  │   SourceFile ──► parse_source ──► Crate ──► typeck      │
  │                                                │        │
  │  ┌─────────────────────────────────────────────▼─────┐  │
  │  │  WhilePopUnwrapChecker (one instance per file)    │  │
  │  │  walk() every `while` ──► check_while ──► Finding │  │
  │  └──────────────────────────┬────────────────────────┘  │
  │                             │                           │
  │  ┌──────────────────────────▼────────────────────────┐  │
  │  │           SuppressionManager                      │  │
  │  │  // poplint-suppress │ #[allow(..)] │ file/global │  │
  │  └──────────────────────────┬────────────────────────┘  │
  │                             │                           │
  │  ┌──────────────────────────▼────────────────────────┐  │
  │  │     Diagnostic (JSON / GCC / plus_reporter)       │  │
  │  └───────────────────────────────────────────────────┘  │
  └─────────────────────────────────────────────────────────┘

Each Checker follows a four-phase lifecycle:

  1. **configure()**        — read options
  2. **collect_evidence()** — walk the crate, gather findings
  3. **diagnose()**         — turn findings into diagnostics
  4. **report()**           — emit Diagnostics (filtered by suppressions)
"""

from __future__ import annotations

import fnmatch
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
    Union,
)

from poplint import hir as H
from poplint.errors import ParseFailure
from poplint.matchers import LintContext
from poplint.parser import parse_source
from poplint.resolver import TypeckResults, typeck
from poplint.source import SourceFile, SourceLocation, Span
from poplint.suggestion import Applicability, MultiSpanSuggestion, build_suggestion
from poplint.visitor import walk
from poplint.while_pop_unwrap import LINT_NAME, MESSAGE, Finding, check_while

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    """Diagnostic severity levels; rustc lint levels map onto these."""
    ERROR = "error"
    WARNING = "warning"
    STYLE = "style"
    PERFORMANCE = "performance"
    PORTABILITY = "portability"
    INFORMATION = "information"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single diagnostic finding.

    Attributes
    ----------
    error_id     : Unique identifier (e.g., "whilePopUnwrap")
    message      : Human-readable description
    severity     : DiagnosticSeverity
    location     : Primary source location (start of ``span``)
    span         : Primary span, if the diagnostic points at code
    suggestion   : Machine-applicable fix, if any
    checker_name : Name of the checker that produced this
    lint         : Lint name, as used in ``#[allow(..)]``
    secondary    : Related spans with a label each
    """
    error_id: str
    message: str
    severity: DiagnosticSeverity
    location: SourceLocation
    span: Optional[Span] = None
    suggestion: Optional[MultiSpanSuggestion] = None
    checker_name: str = ""
    lint: str = ""
    addon: str = "poplint"
    secondary: Tuple[Tuple[Span, str], ...] = ()

    def to_json_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON-lines output format."""
        result: Dict[str, Any] = {
            "file": self.location.file,
            "linenr": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "message": self.message,
            "addon": self.addon,
            "errorId": self.error_id,
        }
        if self.lint:
            result["lint"] = self.lint
        if self.span is not None:
            result["span"] = {"lo": self.span.lo, "hi": self.span.hi}
        if self.suggestion is not None:
            result["suggestion"] = self.suggestion.to_json_dict()
        return result

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_json_dict())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message."""
        sev = self.severity.value
        return f"{self.location}: {sev}: {self.message} [{self.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

_INLINE_SUPPRESS_RE = re.compile(r"//\s*poplint-suppress\s+([\w*][\w*,\s]*)")
_LINT_ATTR_RE = re.compile(r"^(allow|expect)\s*\((.*)\)$", re.DOTALL)
_LINT_TOOLS = ("clippy", "poplint")

# lint name → every name an ``#[allow(..)]`` may use for it (renames, groups)
LINT_ALIASES: Dict[str, FrozenSet[str]] = {
    LINT_NAME: frozenset({LINT_NAME, "manual_while_let_some", "style", "all"}),
}


def allowed_lints(attr: H.Attribute) -> FrozenSet[str]:
    """
    Tool-qualified lint names allowed by ``attr``, tool prefix stripped.

    ``#[allow(clippy::while_pop_unwrap, dead_code)]`` → ``{"while_pop_unwrap"}``
    """
    try:
        body = attr.body
    except ValueError:
        return frozenset()
    m = _LINT_ATTR_RE.match(body)
    if not m:
        return frozenset()
    names: Set[str] = set()
    for raw in m.group(2).split(","):
        tool, sep, name = raw.strip().partition("::")
        if sep and tool in _LINT_TOOLS and name:
            names.add(name.strip())
    return frozenset(names)


class SuppressionManager:
    """
    Manages diagnostic suppressions from multiple sources.

    Sources:
      1. Inline comments:  ``// poplint-suppress errorId`` on the same
         line as the diagnostic or the line before it
      2. Lint attributes:  ``#[allow(clippy::while_pop_unwrap)]`` on an
         enclosing item, ``#![allow(..)]`` for the whole file
      3. File-level suppressions (passed programmatically)
      4. Global suppressions (command-line or config)

    Usage
    -----
    >>> sm = SuppressionManager()
    >>> sm.load_inline_suppressions(source)
    >>> sm.load_attribute_suppressions(source, crate)
    >>> sm.add_global_suppression("whilePopUnwrap")
    >>> kept = sm.filter_diagnostics(diagnostics)
    """

    def __init__(self) -> None:
        # {(file, line)} → set of error_ids suppressed at that location
        self._inline: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # file → [(item span, allowed lint names)]
        self._allow_regions: Dict[str, List[Tuple[Span, FrozenSet[str]]]] = defaultdict(list)
        # file → lint names allowed by inner attributes
        self._allow_file: Dict[str, Set[str]] = defaultdict(set)
        # file pattern → set of error_ids
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        # globally suppressed error_ids
        self._global: Set[str] = set()

    def load_inline_suppressions(self, source: SourceFile) -> None:
        """Scan the raw text for ``// poplint-suppress`` comments."""
        for lineno in range(1, source.line_count + 1):
            m = _INLINE_SUPPRESS_RE.search(source.line_text(lineno))
            if m is None:
                continue
            ids = {tok for tok in re.split(r"[\s,]+", m.group(1)) if tok}
            self._inline[(source.name, lineno)].update(ids)
            logger.debug("%s:%d: inline suppression of %s", source.name, lineno, sorted(ids))

    def load_attribute_suppressions(self, source: SourceFile, crate: H.Crate) -> None:
        """Record ``#[allow(..)]`` / ``#[expect(..)]`` lint attributes."""
        for attr in crate.attrs:
            self._allow_file[source.name].update(allowed_lints(attr))
        for node in walk(crate):
            attrs = getattr(node, "attrs", ())
            if not isinstance(node, H.Item) or not attrs:
                continue
            names: Set[str] = set()
            for attr in attrs:
                names.update(allowed_lints(attr))
            if names:
                self._allow_regions[source.name].append((node.span, frozenset(names)))

    def add_file_suppression(self, error_id: str, file_pattern: str) -> None:
        """Suppress ``error_id`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(error_id)

    def add_global_suppression(self, error_id: str) -> None:
        """Globally suppress ``error_id``."""
        self._global.add(error_id)

    def _lint_allowed(self, lint: str, names: Iterable[str]) -> bool:
        aliases = LINT_ALIASES.get(lint, frozenset({lint}))
        return any(name in aliases for name in names)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        """Check whether a diagnostic should be suppressed."""
        eid = diag.error_id

        # Global
        if eid in self._global or "*" in self._global:
            return True

        loc = diag.location

        # Inline (exact line match, or line-1 for preceding-line suppress)
        for line_offset in (0, 1):
            key = (loc.file, loc.line - line_offset)
            suppressed_ids = self._inline.get(key, set())
            if eid in suppressed_ids or "*" in suppressed_ids:
                return True

        # Lint attributes
        if diag.lint:
            if self._lint_allowed(diag.lint, self._allow_file.get(loc.file, ())):
                return True
            if diag.span is not None:
                for region, names in self._allow_regions.get(loc.file, ()):
                    if region.contains(diag.span) and self._lint_allowed(diag.lint, names):
                        return True

        # File-level
        for pattern, ids in self._file_level.items():
            if eid in ids or "*" in ids:
                if pattern == loc.file or loc.file.endswith(pattern):
                    return True
                if fnmatch.fnmatch(loc.file, pattern):
                    return True

        return False

    def filter_diagnostics(
        self, diagnostics: Iterable[Diagnostic]
    ) -> List[Diagnostic]:
        """Return only non-suppressed diagnostics."""
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CHECKER BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

class Checker(ABC):
    """
    Abstract base class for all checkers.

    Lifecycle
    ─────────
      1. ``configure(ctx)``        — receive context, read options
      2. ``collect_evidence(ctx)``  — walk the crate, store findings
      3. ``diagnose(ctx)``          — turn findings into diagnostics
      4. ``report(ctx)``            — yield final diagnostics

    Subclass Contract
    ─────────────────
      - Override ``name``, ``description``, ``error_ids``, ``lint``
      - Implement ``collect_evidence()`` and ``diagnose()``
      - Optionally override ``configure()`` for custom setup
    """

    # ── Metadata (override in subclasses) ────────────────────────────

    name: ClassVar[str] = "base-checker"
    description: ClassVar[str] = ""
    error_ids: ClassVar[FrozenSet[str]] = frozenset()
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.WARNING
    lint: ClassVar[str] = ""

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []
        self._enabled: bool = True
        self._config: Dict[str, Any] = {}

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    def configure(self, ctx: CheckerContext) -> None:
        """
        Called before evidence collection.

        Override to read options.  Default implementation does nothing.
        """
        pass

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        """Walk the crate and store intermediate findings."""
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        """
        Turn findings into Diagnostic objects.

        Append diagnostics to ``self._diagnostics``.
        """
        ...

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        """
        Return final diagnostics, filtered by suppressions.

        Normally you don't need to override this.
        """
        return ctx.suppressions.filter_diagnostics(self._diagnostics)

    def _emit(
        self,
        ctx: CheckerContext,
        error_id: str,
        message: str,
        span: Span,
        severity: Optional[DiagnosticSeverity] = None,
        suggestion: Optional[MultiSpanSuggestion] = None,
        secondary: Tuple[Tuple[Span, str], ...] = (),
    ) -> None:
        """Helper to create and store a diagnostic."""
        self._diagnostics.append(Diagnostic(
            error_id=error_id,
            message=message,
            severity=severity or self.default_severity,
            location=ctx.source.location(span),
            span=span,
            suggestion=suggestion,
            checker_name=self.name,
            lint=self.lint,
            secondary=secondary,
        ))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.name}'>"


@dataclass
class CheckerContext:
    """
    Shared context passed to every checker during execution.

    Attributes
    ----------
    source       : the file being checked
    crate        : its parsed HIR
    suppressions : SuppressionManager
    analyses     : dict of pre-computed analysis results (keyed by name)
    options      : user-provided options dict
    stats        : mutable dict for timing / counting statistics
    """
    source: SourceFile
    crate: H.Crate
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    analyses: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    def get_analysis(self, name: str) -> Any:
        """Retrieve a pre-computed analysis result by name."""
        return self.analyses.get(name)

    def set_analysis(self, name: str, result: Any) -> None:
        """Store an analysis result for sharing between checkers."""
        self.analyses[name] = result

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    @property
    def typeck_results(self) -> TypeckResults:
        """Type-check the crate on first use; later checkers share the tables."""
        results = self.get_analysis("typeck")
        if results is None:
            t0 = time.monotonic()
            results = typeck(self.crate)
            self.stats["typeck_elapsed_ms"] = (time.monotonic() - t0) * 1000.0
            self.set_analysis("typeck", results)
        return results

    def lint_context(self) -> LintContext:
        return LintContext(resolver=self.typeck_results, source=self.source)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — CHECKER REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class CheckerRegistry:
    """
    Registry of available checkers with discovery and filtering.

    Usage
    -----
    >>> registry = CheckerRegistry()
    >>> registry.register(WhilePopUnwrapChecker)
    >>> registry.disable("while-pop-unwrap")
    """

    def __init__(self) -> None:
        self._checkers: Dict[str, Type[Checker]] = {}
        self._disabled: Set[str] = set()

    def register(self, checker_cls: Type[Checker]) -> Type[Checker]:
        """Register a checker class (usable as a decorator)."""
        if checker_cls.name in self._checkers:
            logger.warning("checker %r registered twice; keeping the latest", checker_cls.name)
        self._checkers[checker_cls.name] = checker_cls
        return checker_cls

    def unregister(self, name: str) -> None:
        self._checkers.pop(name, None)
        self._disabled.discard(name)

    def disable(self, name: str) -> None:
        """Disable a checker without unregistering it."""
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        """Re-enable a disabled checker."""
        self._disabled.discard(name)

    def get_all(self) -> List[Type[Checker]]:
        """Return all registered checker classes."""
        return list(self._checkers.values())

    def get_enabled(self) -> List[Type[Checker]]:
        """Return only enabled checker classes."""
        return [
            cls for name, cls in self._checkers.items()
            if name not in self._disabled
        ]

    def get_by_name(self, name: str) -> Optional[Type[Checker]]:
        return self._checkers.get(name)

    def filter_by_error_id(self, error_id: str) -> List[Type[Checker]]:
        """Return checkers that can produce the given error_id."""
        return [
            cls for cls in self._checkers.values()
            if error_id in cls.error_ids
        ]

    @property
    def names(self) -> List[str]:
        return sorted(self._checkers.keys())


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — WHILE-POP-UNWRAP CHECKER
# ═════════════════════════════════════════════════════════════════════════

class WhilePopUnwrapChecker(Checker):
    """
    Detects ``while !v.is_empty() { let x = v.pop().unwrap(); .. }``.

    Every ``while`` loop in the file is examined, including loops nested
    in other loops and loops inside closures or nested functions.  The
    diagnostic points at the ``pop().unwrap()`` site and carries a
    two-edit suggestion rewriting the loop to ``while let``.

    Options
    -------
    suggestions : bool (default True) — attach the fix suggestion
    """

    name: ClassVar[str] = "while-pop-unwrap"
    description: ClassVar[str] = "Vec drained by `pop().unwrap()` under `!is_empty()`"
    error_ids: ClassVar[FrozenSet[str]] = frozenset({"whilePopUnwrap"})
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.STYLE
    lint: ClassVar[str] = LINT_NAME

    def __init__(self) -> None:
        super().__init__()
        self._findings: List[Finding] = []
        self._loops_seen = 0

    def configure(self, ctx: CheckerContext) -> None:
        self._config["suggestions"] = bool(ctx.get_option("suggestions", True))

    def collect_evidence(self, ctx: CheckerContext) -> None:
        cx = ctx.lint_context()
        for node in walk(ctx.crate):
            if not isinstance(node, H.While):
                continue
            self._loops_seen += 1
            finding = check_while(cx, node)
            if finding is not None:
                logger.debug("%s: candidate at %s", ctx.source.name,
                             ctx.source.location(finding.pop_span))
                self._findings.append(finding)
        ctx.stats[f"{self.name}_loops"] = self._loops_seen

    def diagnose(self, ctx: CheckerContext) -> None:
        for finding in self._findings:
            suggestion = None
            if self._config.get("suggestions", True):
                suggestion = build_suggestion(finding, ctx.source)
            self._emit(
                ctx,
                "whilePopUnwrap",
                MESSAGE,
                finding.pop_span,
                suggestion=suggestion,
                secondary=((finding.loop_span, "the loop condition checks for emptiness here"),),
            )


# ═════════════════════════════════════════════════════════════════════════
#  PART 6 — CHECKER RUNNER
# ═════════════════════════════════════════════════════════════════════════

# Default registry with all built-in checkers
_DEFAULT_REGISTRY = CheckerRegistry()
_DEFAULT_REGISTRY.register(WhilePopUnwrapChecker)


def default_registry() -> CheckerRegistry:
    return _DEFAULT_REGISTRY


@dataclass
class CheckerRunResults:
    """
    Aggregate results from running a suite of checkers.

    Attributes
    ----------
    diagnostics            : All diagnostics from all checkers
    diagnostics_by_checker : Diagnostics grouped by checker name
    stats                  : Timing and counting statistics
    checker_names          : Names of checkers that were run
    sources                : Checked files by name (for rendering snippets)
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    diagnostics_by_checker: Dict[str, List[Diagnostic]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, Any] = field(default_factory=dict)
    checker_names: List[str] = field(default_factory=list)
    sources: Dict[str, SourceFile] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(
            1 for d in self.diagnostics
            if d.severity == DiagnosticSeverity.ERROR
        )

    @property
    def warning_count(self) -> int:
        return sum(
            1 for d in self.diagnostics
            if d.severity == DiagnosticSeverity.WARNING
        )

    @property
    def finding_count(self) -> int:
        """Diagnostics produced by lints (everything but internal/IO/syntax errors)."""
        return sum(1 for d in self.diagnostics if d.lint)

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def by_severity(self, severity: DiagnosticSeverity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == severity]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def by_error_id(self, error_id: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.error_id == error_id]

    def merge(self, other: CheckerRunResults) -> None:
        """Fold ``other`` into this result (timings accumulate)."""
        self.diagnostics.extend(other.diagnostics)
        for name, diags in other.diagnostics_by_checker.items():
            self.diagnostics_by_checker[name].extend(diags)
        for key, val in other.stats.items():
            if key in self.stats and isinstance(val, (int, float)):
                self.stats[key] += val
            else:
                self.stats[key] = val
        for name in other.checker_names:
            if name not in self.checker_names:
                self.checker_names.append(name)
        self.sources.update(other.sources)

    def to_json_lines(self) -> str:
        """Format all diagnostics as JSON lines."""
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        """Format all diagnostics in GCC-style."""
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Checker run complete: {self.total_count} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings) "
            f"in {len(self.sources)} files",
        ]
        for name in self.checker_names:
            count = len(self.diagnostics_by_checker.get(name, []))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0)
            lines.append(f"  {name}: {count} findings ({elapsed:.1f}ms)")
        return "\n".join(lines)


def iter_source_files(paths: Iterable[Union[str, Path]]) -> Iterator[Path]:
    """Yield ``*.rs`` files: files as given, directories searched recursively."""
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            yield from sorted(p for p in path.rglob("*.rs") if p.is_file())
        else:
            yield path


class CheckerRunner:
    """
    Runs a suite of checkers against Rust source files.

    Usage
    -----
    >>> runner = CheckerRunner()
    >>> results = runner.run(SourceFile("demo.rs", text))
    >>> print(results.summary())

    >>> # Or a tree of files, with selected checkers:
    >>> results = runner.run_paths(["src/"], checkers=["while-pop-unwrap"])

    Parameters for constructor
    ─────────────────────────
    registry    : CheckerRegistry — source of checker classes
    suppressions: SuppressionManager — pre-loaded suppression rules
    options     : dict — per-checker configuration
    """

    def __init__(
        self,
        registry: Optional[CheckerRegistry] = None,
        suppressions: Optional[SuppressionManager] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.registry = registry or _DEFAULT_REGISTRY
        self.suppressions = suppressions or SuppressionManager()
        self.options = options or {}

    def _select(self, checkers: Optional[Sequence[str]]) -> List[Type[Checker]]:
        if checkers is None:
            return self.registry.get_enabled()
        selected: List[Type[Checker]] = []
        for name in checkers:
            cls = self.registry.get_by_name(name)
            if cls is None:
                logger.warning("unknown checker %r ignored", name)
                continue
            selected.append(cls)
        return selected

    def run(
        self,
        source: SourceFile,
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        """
        Run checkers against a single source file.

        A file that does not parse yields one ``syntaxError`` diagnostic.
        """
        results = CheckerRunResults()
        results.sources[source.name] = source

        try:
            crate = parse_source(source)
        except ParseFailure as exc:
            logger.warning("%s", exc)
            results.diagnostics.append(Diagnostic(
                error_id="syntaxError",
                message=exc.message,
                severity=DiagnosticSeverity.ERROR,
                location=exc.location or SourceLocation(file=source.name),
            ))
            return results

        self.suppressions.load_inline_suppressions(source)
        self.suppressions.load_attribute_suppressions(source, crate)

        ctx = CheckerContext(
            source=source,
            crate=crate,
            suppressions=self.suppressions,
            options=self.options,
        )

        # Run each checker through its lifecycle
        for cls in self._select(checkers):
            checker = cls()
            checker_name = cls.name
            results.checker_names.append(checker_name)

            t0 = time.monotonic()
            try:
                checker.configure(ctx)
                checker.collect_evidence(ctx)
                checker.diagnose(ctx)
                diags = checker.report(ctx)
            except Exception as exc:
                # Graceful degradation: report the failure, don't crash
                logger.warning("checker %r failed on %s: %s", checker_name, source.name, exc,
                               exc_info=logger.isEnabledFor(logging.DEBUG))
                diags = [Diagnostic(
                    error_id="checkerInternalError",
                    message=f"Checker '{checker_name}' failed: {exc}",
                    severity=DiagnosticSeverity.INFORMATION,
                    location=SourceLocation(file=source.name),
                    checker_name=checker_name,
                )]
            elapsed_ms = (time.monotonic() - t0) * 1000.0

            results.diagnostics.extend(diags)
            results.diagnostics_by_checker[checker_name].extend(diags)
            results.stats[f"{checker_name}_elapsed_ms"] = elapsed_ms

        results.stats.update(
            (k, v) for k, v in ctx.stats.items() if k not in results.stats
        )
        return results

    def run_text(
        self,
        text: str,
        name: str = "<string>",
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        return self.run(SourceFile(name=name, text=text), checkers=checkers)

    def run_paths(
        self,
        paths: Iterable[Union[str, Path]],
        checkers: Optional[Sequence[str]] = None,
    ) -> CheckerRunResults:
        """
        Run checkers across files and directory trees.

        An unreadable file yields one ``fileReadError`` diagnostic and the
        run continues with the next file.
        """
        combined = CheckerRunResults()
        for path in iter_source_files(paths):
            try:
                source = SourceFile.from_path(path)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("cannot read %s: %s", path, exc)
                combined.diagnostics.append(Diagnostic(
                    error_id="fileReadError",
                    message=f"cannot read file: {exc}",
                    severity=DiagnosticSeverity.ERROR,
                    location=SourceLocation(file=str(path)),
                ))
                continue
            logger.debug("checking %s", path)
            combined.merge(self.run(source, checkers=checkers))
        return combined


# ═════════════════════════════════════════════════════════════════════════
#  PART 7 — PUBLIC API
# ═════════════════════════════════════════════════════════════════════════

__all__ = [
    # Diagnostic model
    "Diagnostic",
    "DiagnosticSeverity",
    "Applicability",
    "SourceLocation",
    # Suppression
    "LINT_ALIASES",
    "allowed_lints",
    "SuppressionManager",
    # Checker framework
    "Checker",
    "CheckerContext",
    "CheckerRegistry",
    # Production checkers
    "WhilePopUnwrapChecker",
    # Runner
    "default_registry",
    "iter_source_files",
    "CheckerRunner",
    "CheckerRunResults",
]
