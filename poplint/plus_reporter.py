#!/usr/bin/env python3
"""
poplint/plus_reporter.py
════════════════════════

Rust-style colourful diagnostic reporter.

Output formats
──────────────
  • Terminal : colourful Rust-style rendering with a suggestion preview
               (``--format text``, the default)
  • GCC      : one ``file:line:col: severity: message [errorId]`` line
               per diagnostic (``--format gcc``)
  • JSON     : one JSON object per line (``--format json``)
  • SARIF    : if ``$POPLINT_SARIF`` (or ``sarif_path``) names a file

Usage
─────
    from poplint.plus_reporter import Reporter

    with Reporter(sources=results.sources) as rep:
        for diag in results.diagnostics:
            rep.report(diag)
"""

from __future__ import annotations

import enum
import itertools
import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    TextIO,
    Tuple,
    Union,
)

from termcolor import colored

from poplint.checkers import CheckerRunResults, Diagnostic
from poplint.config import OUTPUT_FORMATS
from poplint.source import SourceFile, Span
from poplint.suggestion import Edit, MultiSpanSuggestion, apply_edits


# ═════════════════════════════════════════════════════════════════════════
#  SEVERITY ENUM
# ═════════════════════════════════════════════════════════════════════════

class Severity(enum.Enum):
    """
    Rendering attributes of each severity level.

    Each carries:
      • label       — matches ``DiagnosticSeverity.value``
      • color         — termcolor colour name
      • sarif_level   — SARIF 2.1.0 ``level`` string
    """

    ERROR = ("error", "red", "error")
    WARNING = ("warning", "yellow", "warning")
    STYLE = ("style", "cyan", "note")
    PERFORMANCE = ("performance", "magenta", "warning")
    PORTABILITY = ("portability", "blue", "warning")
    INFORMATION = ("information", "white", "note")

    def __init__(self, label: str, color: str, sarif_level: str) -> None:
        self.label = label
        self.color = color
        self.sarif_level = sarif_level

    @classmethod
    def from_string(cls, s: str) -> Severity:
        """Parse a severity from its name (case-insensitive)."""
        s_low = s.strip().lower()
        for member in cls:
            if member.label == s_low:
                return member
        return cls.WARNING

    @classmethod
    def of(cls, diag: Diagnostic) -> Severity:
        return cls.from_string(diag.severity.value)


# ═════════════════════════════════════════════════════════════════════════
#  DATA STRUCTURES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SpanAnnotation:
    """
    An underlined span of source text with an optional label.

    Coordinates are 1-based.  ``end_col`` is exclusive (points one
    past the last highlighted character).  A span running over several
    lines is underlined on its first line only.
    """
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    label: str = ""
    style: str = "^"  # '^' for primary, '-' for secondary

    @classmethod
    def from_span(
        cls, source: SourceFile, span: Span, label: str = "", style: str = "^",
    ) -> SpanAnnotation:
        start_line, start_col = source.line_col(span.lo)
        end_line, end_col = source.line_col(span.hi)
        if end_line != start_line:
            end_col = len(source.line_text(start_line)) + 1
        return cls(start_line, start_col, end_line, end_col, label, style)


@dataclass
class ReporterStats:
    """Aggregate counts per severity."""
    error: int = 0
    warning: int = 0
    style: int = 0
    performance: int = 0
    portability: int = 0
    information: int = 0

    def record(self, severity: Severity) -> None:
        """Increment the counter that corresponds to *severity*."""
        attr = severity.label
        setattr(self, attr, getattr(self, attr) + 1)

    @property
    def total(self) -> int:
        return (
            self.error
            + self.warning
            + self.style
            + self.performance
            + self.portability
            + self.information
        )

    def summary_line(self) -> str:
        parts: List[str] = []
        if self.error:
            parts.append(f"{self.error} error{'s' if self.error != 1 else ''}")
        if self.warning:
            parts.append(f"{self.warning} warning{'s' if self.warning != 1 else ''}")
        if self.style:
            parts.append(f"{self.style} style")
        if self.performance:
            parts.append(f"{self.performance} performance")
        if self.portability:
            parts.append(f"{self.portability} portability")
        if self.information:
            parts.append(f"{self.information} info")
        if not parts:
            return "no diagnostics emitted"
        return "; ".join(parts) + f" ({self.total} total)"


def suggestion_preview(
    source: SourceFile, suggestion: MultiSpanSuggestion,
) -> List[Tuple[int, str]]:
    """
    The lines touched by ``suggestion`` as they read once it is applied.

    Returns ``(line number, text)`` pairs numbered from the first
    affected line of the original file.
    """
    if not suggestion.edits:
        return []
    lo = min(e.span.lo for e in suggestion.edits)
    hi = max(e.span.hi for e in suggestion.edits)
    region = source.lines_covering(Span(lo, hi))
    shifted = [
        Edit(Span(e.span.lo - region.lo, e.span.hi - region.lo), e.replacement)
        for e in suggestion.edits
    ]
    patched = apply_edits(source.text[region.lo:region.hi], shifted)
    first_line, _ = source.line_col(region.lo)
    return [(first_line + i, text) for i, text in enumerate(patched.split("\n"))]


# ═════════════════════════════════════════════════════════════════════════
#  TERMINAL RENDERER  (Rust-style colourful output)
# ═════════════════════════════════════════════════════════════════════════

class _TerminalRenderer:
    """Render diagnostics Rust-style, optionally with colours."""

    def __init__(self, stream: TextIO = sys.stdout, colour: bool = True) -> None:
        self._stream = stream
        self._colour = colour

    def _paint(self, text: str, color: Optional[str] = None,
               attrs: Optional[List[str]] = None) -> str:
        if not self._colour:
            return text
        return colored(text, color, attrs=attrs, force_color=True)

    # ── public API ───────────────────────────────────────────────────

    def render(self, diag: Diagnostic, source: Optional[SourceFile]) -> None:
        severity = Severity.of(diag)
        lines: List[str] = []

        # ── header: severity[errorId]: message ───────────────────────
        sev_str = self._paint(
            f"{severity.label}[{diag.error_id}]",
            severity.color,
            attrs=["bold"],
        )
        lines.append(f"{sev_str}: {self._paint(diag.message, attrs=['bold'])}")

        # ── primary location ─────────────────────────────────────────
        arrow = self._paint("-->", "blue", attrs=["bold"])
        lines.append(f"  {arrow} {diag.location}")

        # ── span annotations ─────────────────────────────────────────
        spans: List[SpanAnnotation] = []
        if source is not None and diag.span is not None:
            spans.append(SpanAnnotation.from_span(source, diag.span))
            for span, label in diag.secondary:
                spans.append(SpanAnnotation.from_span(source, span, label, style="-"))
            lines.extend(self._render_spans(source, spans, severity))

        # ── help + preview ───────────────────────────────────────────
        if diag.suggestion is not None:
            prefix = self._paint("help", "green", attrs=["bold"])
            lines.append(f"  = {prefix}: {diag.suggestion.message}")
            if source is not None:
                lines.extend(self._render_preview(source, diag.suggestion))

        if diag.lint:
            note = self._paint("note", "cyan", attrs=["bold"])
            lines.append(f"  = {note}: `#[allow(clippy::{diag.lint})]` silences this lint")

        lines.append("")  # blank separator
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()

    # ── span rendering helpers ───────────────────────────────────────

    def _gutter_width(self, line_numbers: Sequence[int]) -> int:
        return max(len(str(n)) for n in line_numbers) + 1

    def _render_spans(
        self,
        source: SourceFile,
        spans: List[SpanAnnotation],
        severity: Severity,
    ) -> List[str]:
        """Build the annotated source view: each source line once, then one
        marker row per span starting on it, left to right."""
        result: List[str] = []
        gutter_w = self._gutter_width([s.start_line for s in spans])
        pipe = self._paint("|", "blue", attrs=["bold"])
        blank_gutter = " " * gutter_w

        ordered = sorted(spans, key=lambda s: (s.start_line, s.start_col))
        for line, group in itertools.groupby(ordered, key=lambda s: s.start_line):
            line_prefix = self._paint(str(line).rjust(gutter_w), "blue", attrs=["bold"])
            result.append(f" {line_prefix} {pipe} {source.line_text(line)}")
            for sp in group:
                result.append(f" {blank_gutter} {pipe} {self._marker(sp, severity)}")

        return result

    def _marker(self, sp: SpanAnnotation, severity: Severity) -> str:
        pad = " " * (sp.start_col - 1) if sp.start_col > 0 else ""
        span_len = max(sp.end_col - sp.start_col, 1)
        marker = (sp.style or "^") * span_len
        label_str = f" {sp.label}" if sp.label else ""
        color = severity.color if sp.style == "^" else "blue"
        return pad + self._paint(marker + label_str, color, attrs=["bold"])

    def _render_preview(
        self, source: SourceFile, suggestion: MultiSpanSuggestion,
    ) -> List[str]:
        preview = suggestion_preview(source, suggestion)
        if not preview:
            return []
        gutter_w = self._gutter_width([n for n, _ in preview])
        pipe = self._paint("|", "blue", attrs=["bold"])
        result = [f" {' ' * gutter_w} {pipe}"]
        for lineno, text in preview:
            line_prefix = self._paint(str(lineno).rjust(gutter_w), "blue", attrs=["bold"])
            tilde = self._paint("~", "green", attrs=["bold"])
            result.append(f" {line_prefix} {tilde} {self._paint(text, 'green')}")
        return result


# ═════════════════════════════════════════════════════════════════════════
#  PLAIN / JSON RENDERERS  (for log files, pipes and tooling)
# ═════════════════════════════════════════════════════════════════════════

class _PlainRenderer:
    """Non-coloured renderer: one GCC-compatible line per diagnostic."""

    def __init__(self, stream: TextIO = sys.stdout) -> None:
        self._stream = stream

    def render(self, diag: Diagnostic, source: Optional[SourceFile]) -> None:
        self._stream.write(diag.to_gcc_format() + "\n")
        self._stream.flush()


class _JsonRenderer:
    """One JSON object per line."""

    def __init__(self, stream: TextIO = sys.stdout) -> None:
        self._stream = stream

    def render(self, diag: Diagnostic, source: Optional[SourceFile]) -> None:
        self._stream.write(diag.to_json_str() + "\n")
        self._stream.flush()


# ═════════════════════════════════════════════════════════════════════════
#  SARIF 2.1.0 BUILDER
# ═════════════════════════════════════════════════════════════════════════

def _sarif_region(source: Optional[SourceFile], diag_span: Optional[Span],
                  line: int, column: int) -> Dict[str, Any]:
    if source is None or diag_span is None:
        region: Dict[str, Any] = {"startLine": max(line, 1)}
        if column:
            region["startColumn"] = column
        return region
    start_line, start_col = source.line_col(diag_span.lo)
    end_line, end_col = source.line_col(diag_span.hi)
    return {
        "startLine": start_line,
        "startColumn": start_col,
        "endLine": end_line,
        "endColumn": end_col,
    }


class _SarifBuilder:
    """Accumulates diagnostics and writes a SARIF 2.1.0 JSON file."""

    SARIF_VERSION = "2.1.0"
    SARIF_SCHEMA = (
        "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
        "Schemata/sarif-schema-2.1.0.json"
    )

    def __init__(self) -> None:
        self._results: List[Dict[str, Any]] = []
        self._rules: Dict[str, Dict[str, Any]] = {}  # errorId → rule obj

    def add(self, diag: Diagnostic, source: Optional[SourceFile] = None) -> None:
        severity = Severity.of(diag)

        # ── rule ─────────────────────────────────────────────────────
        if diag.error_id not in self._rules:
            rule: Dict[str, Any] = {
                "id": diag.error_id,
                "shortDescription": {"text": diag.message},
            }
            if diag.lint:
                rule["name"] = diag.lint
                rule["defaultConfiguration"] = {"level": severity.sarif_level}
            self._rules[diag.error_id] = rule

        # ── result ───────────────────────────────────────────────────
        loc = diag.location
        result: Dict[str, Any] = {
            "ruleId": diag.error_id,
            "level": severity.sarif_level,
            "message": {"text": diag.message},
            "locations": [{
                "physicalLocation": {
                    "artifactLocation": {"uri": loc.file},
                    "region": _sarif_region(source, diag.span, loc.line, loc.column),
                }
            }],
        }

        # ── related locations (secondary spans) ─────────────────────
        related: List[Dict[str, Any]] = []
        for idx, (span, label) in enumerate(diag.secondary):
            related.append({
                "id": idx,
                "message": {"text": label},
                "physicalLocation": {
                    "artifactLocation": {"uri": loc.file},
                    "region": _sarif_region(source, span, loc.line, 0),
                },
            })
        if related:
            result["relatedLocations"] = related

        # ── fixes ───────────────────────────────────────────────────
        if diag.suggestion is not None and source is not None:
            replacements = [
                {
                    "deletedRegion": _sarif_region(source, edit.span, loc.line, 0),
                    "insertedContent": {"text": edit.replacement},
                }
                for edit in diag.suggestion.edits
            ]
            result["fixes"] = [{
                "description": {"text": diag.suggestion.message},
                "artifactChanges": [{
                    "artifactLocation": {"uri": loc.file},
                    "replacements": replacements,
                }],
            }]
            result["properties"] = {"applicability": diag.suggestion.applicability.value}

        self._results.append(result)

    def to_json(self, tool_name: str = "poplint", version: str = "0.0.0") -> str:
        sarif: Dict[str, Any] = {
            "$schema": self.SARIF_SCHEMA,
            "version": self.SARIF_VERSION,
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": tool_name,
                            "version": version,
                            "rules": list(self._rules.values()),
                        }
                    },
                    "results": self._results,
                }
            ],
        }
        return json.dumps(sarif, indent=2)

    def write(self, path: str, tool_name: str = "poplint", version: str = "0.0.0") -> None:
        content = self.to_json(tool_name, version)
        Path(path).write_text(content, encoding="utf-8")


# ═════════════════════════════════════════════════════════════════════════
#  REPORTER  (main entry point)
# ═════════════════════════════════════════════════════════════════════════

_Renderer = Union[_TerminalRenderer, _PlainRenderer, _JsonRenderer]


class Reporter:
    """
    Central diagnostic dispatcher.

    Use as a context manager::

        with Reporter(sources=results.sources) as rep:
            rep.report_all(results)
        # finish() is called automatically

    Parameters
    ----------
    stream        : where diagnostics are written
    colour        : force colour on/off (None = only when ``stream`` is a TTY)
    output_format : "text", "gcc" or "json"
    sarif_path    : SARIF file to write on finish (default ``$POPLINT_SARIF``)
    sources       : file name → SourceFile, used to show code
    """

    def __init__(
        self,
        stream: TextIO = sys.stdout,
        colour: Optional[bool] = None,
        output_format: str = "text",
        sarif_path: Optional[str] = None,
        sources: Optional[Mapping[str, SourceFile]] = None,
        tool_name: str = "poplint",
        tool_version: str = "0.0.0",
        summary_stream: Optional[TextIO] = None,
    ) -> None:
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"unknown output format {output_format!r}")
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.stats = ReporterStats()
        self.sources: Dict[str, SourceFile] = dict(sources or {})
        self._diagnostics: List[Diagnostic] = []
        self._output_format = output_format
        self._summary_stream = summary_stream if summary_stream is not None else sys.stderr

        # ── choose renderer ──────────────────────────────────────────
        use_colour = colour if colour is not None else hasattr(stream, "isatty") and stream.isatty()
        self._use_colour = bool(use_colour)
        if output_format == "json":
            self._renderer: _Renderer = _JsonRenderer(stream)
        elif output_format == "gcc":
            self._renderer = _PlainRenderer(stream)
        else:
            self._renderer = _TerminalRenderer(stream, colour=self._use_colour)

        # ── optional SARIF writer ────────────────────────────────────
        self._sarif: Optional[_SarifBuilder] = None
        self._sarif_path = sarif_path if sarif_path is not None \
            else os.environ.get("POPLINT_SARIF", "")
        if self._sarif_path:
            self._sarif = _SarifBuilder()

    # ── context manager ──────────────────────────────────────────────

    def __enter__(self) -> Reporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.finish()

    # ── accepting diagnostics ────────────────────────────────────────

    def report(self, diag: Diagnostic) -> None:
        """Route ``diag`` to all active outputs and count it."""
        self.stats.record(Severity.of(diag))

        source = self.sources.get(diag.location.file)
        self._diagnostics.append(diag)
        self._renderer.render(diag, source)

        if self._sarif is not None:
            self._sarif.add(diag, source)

    def report_all(self, results: CheckerRunResults) -> None:
        self.sources.update(results.sources)
        for diag in results.diagnostics:
            self.report(diag)

    # ── finalisation ─────────────────────────────────────────────────

    def finish(self) -> ReporterStats:
        """
        Print the summary line (text format only) and write SARIF if configured.

        Returns the final :class:`ReporterStats`.
        """
        if self._output_format == "text":
            summary = f"  ╰─ {self.stats.summary_line()}"
            if self._use_colour:
                if self.stats.error:
                    color = "red"
                elif self.stats.total:
                    color = "yellow"
                else:
                    color = "green"
                summary = colored(summary, color, attrs=["bold"], force_color=True)
            print(summary, file=self._summary_stream)

        if self._sarif is not None:
            try:
                self._sarif.write(
                    self._sarif_path,
                    tool_name=self.tool_name,
                    version=self.tool_version,
                )
            except OSError as exc:
                print(f"poplint: failed to write SARIF: {exc}", file=sys.stderr)

        return self.stats


# ═════════════════════════════════════════════════════════════════════════
#  PUBLIC API
# ═════════════════════════════════════════════════════════════════════════

__all__ = [
    "Severity",
    "SpanAnnotation",
    "ReporterStats",
    "suggestion_preview",
    "Reporter",
]
