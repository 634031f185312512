# poplint/errors.py
"""
poplint Error Types

Error Hierarchy:
────────────────
┌──────────────────────────────────────────────────────────────────┐
│  PoplintError (base)                                             │
│  ├── ParseFailure          - source text outside the grammar     │
│  ├── OverlappingEditsError - suggestion edits that collide       │
│  └── ConfigError           - invalid configuration values        │
└──────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error has a unique code following the pattern POP-XXXX:
  - 1000-1999: Syntax errors (1001: grammar, 1002: unsupported construct)
  - 3000-3999: Suggestion errors
  - 4000-4999: Configuration errors

Matching never raises.  An expression that cannot be resolved or does
not have the expected shape is simply "not a match"; these exceptions
cover the frontend, the edit model and the configuration layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from poplint.source import SourceLocation


@dataclass(frozen=True)
class ErrorCode:
    """A stable, documented error code."""
    code: str
    title: str

    def __str__(self) -> str:
        return self.code


SYNTAX_ERROR = ErrorCode("POP-1001", "syntax error")
UNSUPPORTED_SYNTAX = ErrorCode("POP-1002", "unsupported syntax")
OVERLAPPING_EDITS = ErrorCode("POP-3001", "overlapping suggestion edits")
INVALID_OPTION = ErrorCode("POP-4001", "invalid configuration value")


class PoplintError(Exception):
    """Base class for all poplint errors."""

    default_code: ErrorCode = SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        location: Optional[SourceLocation] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.location = location
        super().__init__(self.format())

    def format(self) -> str:
        prefix = f"{self.location}: " if self.location else ""
        return f"{prefix}error[{self.code}]: {self.message}"


class ParseFailure(PoplintError):
    """Raised when a source file cannot be parsed."""

    default_code = SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        rule: str = "",
        code: Optional[ErrorCode] = None,
    ) -> None:
        self.rule = rule
        super().__init__(message, code=code, location=location)


class OverlappingEditsError(PoplintError):
    """Two edits of one suggestion touch the same source range."""

    default_code = OVERLAPPING_EDITS


class ConfigError(PoplintError):
    default_code = INVALID_OPTION
