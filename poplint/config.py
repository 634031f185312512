"""
poplint/config.py
═════════════════

Run configuration.

A :class:`LintConfig` is assembled in two layers: environment variables
(:meth:`LintConfig.from_env`) and then command-line options
(:meth:`LintConfig.with_overrides`).  Every value is validated when the
config is built; a bad value raises :class:`~poplint.errors.ConfigError`.

Environment
───────────
  POPLINT_FORMAT     text | gcc | json
  POPLINT_COLOUR     auto | always | never   (``NO_COLOR`` implies never)
  POPLINT_SARIF      path of a SARIF file to write
  POPLINT_LOG_LEVEL  DEBUG | INFO | WARNING | ERROR
  POPLINT_SUPPRESS   comma-separated error ids to suppress everywhere
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from poplint.errors import ConfigError

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "gcc", "json")
COLOUR_MODES = ("auto", "always", "never")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_FORMAT = "POPLINT_FORMAT"
ENV_COLOUR = "POPLINT_COLOUR"
ENV_SARIF = "POPLINT_SARIF"
ENV_LOG_LEVEL = "POPLINT_LOG_LEVEL"
ENV_SUPPRESS = "POPLINT_SUPPRESS"


def _split_ids(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class LintConfig:
    """
    Attributes
    ----------
    checkers         : checker names to run (None = every enabled checker)
    suppress         : error ids suppressed globally
    output_format    : "text", "gcc" or "json"
    colour           : "auto", "always" or "never"
    sarif_path       : SARIF output file, or None
    log_level        : logging level name
    fail_on_findings : exit with status 1 when a lint fires
    suggestions      : attach fix suggestions to diagnostics
    """
    checkers: Optional[Tuple[str, ...]] = None
    suppress: Tuple[str, ...] = ()
    output_format: str = "text"
    colour: str = "auto"
    sarif_path: Optional[str] = None
    log_level: str = "WARNING"
    fail_on_findings: bool = True
    suggestions: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"invalid output format {self.output_format!r} "
                f"(expected one of {', '.join(OUTPUT_FORMATS)})"
            )
        if self.colour not in COLOUR_MODES:
            raise ConfigError(
                f"invalid colour mode {self.colour!r} "
                f"(expected one of {', '.join(COLOUR_MODES)})"
            )
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"invalid log level {self.log_level!r}")
        object.__setattr__(self, "log_level", self.log_level.upper())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> LintConfig:
        """Build a config from ``environ`` (default: ``os.environ``)."""
        env = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}
        if env.get(ENV_FORMAT):
            kwargs["output_format"] = env[ENV_FORMAT].strip().lower()
        if env.get(ENV_COLOUR):
            kwargs["colour"] = env[ENV_COLOUR].strip().lower()
        elif env.get("NO_COLOR"):
            kwargs["colour"] = "never"
        if env.get(ENV_SARIF):
            kwargs["sarif_path"] = env[ENV_SARIF]
        if env.get(ENV_LOG_LEVEL):
            kwargs["log_level"] = env[ENV_LOG_LEVEL].strip()
        if env.get(ENV_SUPPRESS):
            kwargs["suppress"] = _split_ids(env[ENV_SUPPRESS])
        config = cls(**kwargs)
        logger.debug("configuration from environment: %s", config)
        return config

    def with_overrides(self, **overrides: Any) -> LintConfig:
        """
        Return a copy with every non-None override applied.

        ``suppress`` overrides extend the existing list instead of
        replacing it.
        """
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "suppress" in changes:
            changes["suppress"] = self.suppress + tuple(changes["suppress"])
        if "checkers" in changes:
            changes["checkers"] = tuple(changes["checkers"])
        return replace(self, **changes)

    def use_colour(self, isatty: bool) -> bool:
        if self.colour == "always":
            return True
        if self.colour == "never":
            return False
        return isatty

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)

    def runner_options(self) -> Dict[str, Any]:
        """Options handed to every checker through ``CheckerContext.options``."""
        options = dict(self.extra)
        options["suggestions"] = self.suggestions
        return options


__all__ = [
    "OUTPUT_FORMATS",
    "COLOUR_MODES",
    "LOG_LEVELS",
    "LintConfig",
]
