#!/usr/bin/env python3
"""
poplint/__main__.py
===================

Command-line entry point.

Usage
-----
    poplint <command> [options]
    python -m poplint <command> [options]

Commands
--------
    check          Lint Rust files and directory trees
    dump-hir       Parse a file and print its HIR
    list-checkers  Show the available checkers

Exit codes
----------
    0  no findings
    1  findings (or unparsable files) reported
    2  usage, configuration or I/O error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence

from poplint import __version__
from poplint import hir as H
from poplint.checkers import (
    CheckerRunner,
    CheckerRunResults,
    SuppressionManager,
    default_registry,
)
from poplint.config import COLOUR_MODES, LOG_LEVELS, OUTPUT_FORMATS, LintConfig
from poplint.errors import ConfigError, ParseFailure
from poplint.parser import parse_source
from poplint.plus_reporter import Reporter
from poplint.source import SourceFile

_log = logging.getLogger("poplint")

EXIT_OK: int = 0
EXIT_FINDINGS: int = 1
EXIT_INFRA: int = 2

__description__ = "poplint — find `while !v.is_empty() { v.pop().unwrap() }` loops"


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════

def _configure_logging(level: int) -> None:
    """Attach a stderr handler to the ``poplint`` logger."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("poplint")
    root.setLevel(level)
    for existing in list(root.handlers):
        if not isinstance(existing, logging.NullHandler):
            root.removeHandler(existing)
    root.addHandler(handler)


def _comma_list(value: str) -> List[str]:
    """``a,b`` on the command line becomes ``["a", "b"]``."""
    return [part.strip() for part in value.split(",") if part.strip()]


def _error(message: str) -> None:
    sys.stderr.write(f"poplint: error: {message}\n")


def _load_config(args: argparse.Namespace) -> LintConfig:
    """Environment first, then command-line options."""
    log_level = args.log_level
    if log_level is None and args.verbose:
        log_level = "DEBUG" if args.verbose >= 2 else "INFO"
    colour = "never" if getattr(args, "no_color", False) else getattr(args, "color", None)
    return LintConfig.from_env().with_overrides(
        output_format=getattr(args, "format", None),
        colour=colour,
        sarif_path=getattr(args, "sarif", None),
        log_level=log_level,
        suppress=getattr(args, "suppress", None),
        checkers=getattr(args, "checkers", None),
        fail_on_findings=False if getattr(args, "no_fail", False) else None,
        suggestions=False if getattr(args, "no_suggestions", False) else None,
    )


def _exit_code(results: CheckerRunResults, config: LintConfig) -> int:
    if results.by_error_id("fileReadError"):
        return EXIT_INFRA
    failing = results.finding_count if config.fail_on_findings else 0
    if failing or results.by_error_id("syntaxError"):
        return EXIT_FINDINGS
    return EXIT_OK


# ═══════════════════════════════════════════════════════════════════════════
# COMMANDS
# ═══════════════════════════════════════════════════════════════════════════

def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    config: LintConfig = args.config

    registry = default_registry()
    if config.checkers is not None:
        unknown = [name for name in config.checkers if registry.get_by_name(name) is None]
        if unknown:
            _error(f"unknown checker(s): {', '.join(unknown)} "
                   f"(available: {', '.join(registry.names)})")
            return EXIT_INFRA

    missing = [p for p in args.paths if p != "-" and not Path(p).exists()]
    if missing:
        for path in missing:
            _error(f"no such file or directory: {path}")
        return EXIT_INFRA

    suppressions = SuppressionManager()
    for error_id in config.suppress:
        suppressions.add_global_suppression(error_id)

    runner = CheckerRunner(
        registry=registry,
        suppressions=suppressions,
        options=config.runner_options(),
    )
    results = CheckerRunResults()
    file_paths: List[str] = []
    for path in args.paths:
        if path == "-":
            results.merge(runner.run(SourceFile("<stdin>", sys.stdin.read()),
                                     checkers=config.checkers))
        else:
            file_paths.append(path)
    if file_paths:
        results.merge(runner.run_paths(file_paths, checkers=config.checkers))
    _log.info("%s", results.summary())

    stream = sys.stdout
    colour = config.use_colour(hasattr(stream, "isatty") and stream.isatty())
    with Reporter(
        stream=stream,
        colour=colour,
        output_format=config.output_format,
        sarif_path=config.sarif_path or "",
        sources=results.sources,
        tool_version=__version__,
    ) as reporter:
        reporter.report_all(results)

    return _exit_code(results, config)


def cmd_dump_hir(args: argparse.Namespace) -> int:
    """Handle the 'dump-hir' command."""
    try:
        if args.input == "-":
            source = SourceFile("<stdin>", sys.stdin.read())
        else:
            source = SourceFile.from_path(args.input)
    except (OSError, UnicodeDecodeError) as exc:
        _error(str(exc))
        return EXIT_INFRA

    try:
        crate = parse_source(source)
    except ParseFailure as exc:
        sys.stderr.write(exc.format() + "\n")
        if exc.rule:
            sys.stderr.write(f"  (while matching grammar rule '{exc.rule}')\n")
        return EXIT_FINDINGS

    sys.stdout.write(H.dump(crate) + "\n")
    return EXIT_OK


def cmd_list_checkers(args: argparse.Namespace) -> int:
    """Handle the 'list-checkers' command."""
    registry = default_registry()
    for name in registry.names:
        cls = registry.get_by_name(name)
        if cls is None:
            continue
        ids = ", ".join(sorted(cls.error_ids))
        print(f"  {name:25s} {cls.description}")
        print(f"  {'':25s} IDs: {ids}")
        print(f"  {'':25s} lint: {cls.lint or '-'}   severity: {cls.default_severity.value}")
        print()
    return EXIT_OK


# ═══════════════════════════════════════════════════════════════════════════
# ARGUMENT PARSER
# ═══════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the poplint CLI."""

    parser = argparse.ArgumentParser(
        prog="poplint",
        description=__description__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              %(prog)s check src/
              %(prog)s check main.rs --format json
              %(prog)s check . --suppress whilePopUnwrap --sarif out.sarif
              %(prog)s dump-hir main.rs
              %(prog)s list-checkers
        """),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Set the log level explicitly (overrides -v and $POPLINT_LOG_LEVEL)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="available commands",
        metavar="<command>",
    )

    # ── check ────────────────────────────────────────────────────────────

    p_check = subparsers.add_parser(
        "check",
        help="Lint Rust source files",
        description=(
            "Lint Rust source files. Directories are searched recursively "
            "for *.rs files; '-' reads one file from stdin."
        ),
    )
    p_check.add_argument("paths", nargs="+", help="Files or directories to lint")
    p_check.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default=None,
        help="Output format (default: $POPLINT_FORMAT or text)",
    )
    p_check.add_argument(
        "--color",
        choices=COLOUR_MODES,
        default=None,
        help="Colourise text output (default: auto)",
    )
    p_check.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Same as --color never",
    )
    p_check.add_argument(
        "--suppress",
        action="extend",
        type=_comma_list,
        default=None,
        metavar="ID[,ID...]",
        help="Error ids to suppress everywhere (repeatable)",
    )
    p_check.add_argument(
        "--checkers",
        action="extend",
        type=_comma_list,
        default=None,
        metavar="NAME[,NAME...]",
        help="Checker names to run (repeatable; default: all)",
    )
    p_check.add_argument(
        "--sarif",
        default=None,
        metavar="PATH",
        help="Also write a SARIF 2.1.0 report to PATH",
    )
    p_check.add_argument(
        "--no-fail",
        action="store_true",
        default=False,
        help="Exit with status 0 even when lints fire",
    )
    p_check.add_argument(
        "--no-suggestions",
        action="store_true",
        default=False,
        help="Do not attach fix suggestions",
    )
    p_check.set_defaults(func=cmd_check)

    # ── dump-hir ─────────────────────────────────────────────────────────

    p_dump = subparsers.add_parser(
        "dump-hir",
        help="Parse a file and print its HIR",
    )
    p_dump.add_argument("input", help="Rust source file (use '-' for stdin)")
    p_dump.set_defaults(func=cmd_dump_hir)

    # ── list-checkers ────────────────────────────────────────────────────

    p_list = subparsers.add_parser(
        "list-checkers",
        help="List available checkers",
    )
    p_list.set_defaults(func=cmd_list_checkers)

    return parser


# ═══════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the poplint CLI.

    Parameters
    ----------
    argv : sequence of str, optional
        Command-line arguments. Defaults to sys.argv[1:].

    Returns
    -------
    int
        Exit code (0 = clean, 1 = findings, 2 = usage/config/I/O error).
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    try:
        args.config = _load_config(args)
    except ConfigError as exc:
        _error(exc.message)
        return EXIT_INFRA
    _configure_logging(args.config.log_level_value)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted.\n")
        return 130
    except BrokenPipeError:
        # Handle piping to head, etc.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
