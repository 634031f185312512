"""
Tests for LintConfig: environment layer, overrides and validation.
"""

import logging

import pytest

from poplint.config import LintConfig
from poplint.errors import ConfigError


class TestFromEnv:

    def test_defaults(self):
        config = LintConfig.from_env({})
        assert config.output_format == "text"
        assert config.colour == "auto"
        assert config.sarif_path is None
        assert config.log_level == "WARNING"
        assert config.suppress == ()
        assert config.checkers is None
        assert config.fail_on_findings

    def test_all_variables(self):
        config = LintConfig.from_env({
            "POPLINT_FORMAT": " JSON ",
            "POPLINT_COLOUR": "always",
            "POPLINT_SARIF": "out.sarif",
            "POPLINT_LOG_LEVEL": "debug",
            "POPLINT_SUPPRESS": "whilePopUnwrap, syntaxError,,",
        })
        assert config.output_format == "json"
        assert config.colour == "always"
        assert config.sarif_path == "out.sarif"
        assert config.log_level == "DEBUG"
        assert config.log_level_value == logging.DEBUG
        assert config.suppress == ("whilePopUnwrap", "syntaxError")

    def test_no_color(self):
        assert LintConfig.from_env({"NO_COLOR": "1"}).colour == "never"

    def test_explicit_colour_beats_no_color(self):
        env = {"NO_COLOR": "1", "POPLINT_COLOUR": "always"}
        assert LintConfig.from_env(env).colour == "always"

    def test_empty_values_are_ignored(self):
        assert LintConfig.from_env({"POPLINT_FORMAT": ""}).output_format == "text"

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("POPLINT_FORMAT", "gcc")
        assert LintConfig.from_env().output_format == "gcc"

    @pytest.mark.parametrize("env", [
        {"POPLINT_FORMAT": "yaml"},
        {"POPLINT_COLOUR": "sometimes"},
        {"POPLINT_LOG_LEVEL": "LOUD"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ConfigError) as excinfo:
            LintConfig.from_env(env)
        assert excinfo.value.code.code == "POP-4001"


class TestOverrides:

    def test_none_keeps_value(self):
        base = LintConfig(output_format="gcc")
        assert base.with_overrides(output_format=None).output_format == "gcc"

    def test_override_replaces(self):
        base = LintConfig(output_format="gcc")
        assert base.with_overrides(output_format="json").output_format == "json"

    def test_suppress_extends(self):
        base = LintConfig(suppress=("a",))
        assert base.with_overrides(suppress=["b", "c"]).suppress == ("a", "b", "c")

    def test_checkers_become_tuple(self):
        config = LintConfig().with_overrides(checkers=["while-pop-unwrap"])
        assert config.checkers == ("while-pop-unwrap",)

    def test_overrides_are_validated(self):
        with pytest.raises(ConfigError):
            LintConfig().with_overrides(colour="rainbow")

    def test_original_is_unchanged(self):
        base = LintConfig()
        base.with_overrides(fail_on_findings=False)
        assert base.fail_on_findings


class TestHelpers:

    @pytest.mark.parametrize("mode, isatty, expected", [
        ("always", False, True),
        ("never", True, False),
        ("auto", True, True),
        ("auto", False, False),
    ])
    def test_use_colour(self, mode, isatty, expected):
        assert LintConfig(colour=mode).use_colour(isatty) is expected

    def test_runner_options(self):
        config = LintConfig(suggestions=False, extra={"custom": 1})
        assert config.runner_options() == {"custom": 1, "suggestions": False}
