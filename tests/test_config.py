"""Config module tests.

Parsing of the PROX_* environment variables.
"""

from __future__ import annotations

import os
from unittest import mock

import pytest

from prox.config import Config, get_config, load_config, reload_config

PROX_VARS = (
    "PROX_VERBOSE",
    "PROX_NO_COLOR",
    "NO_COLOR",
    "PROX_ENV",
    "PROX_PROCFILE",
    "PROX_TERM_TIMEOUT",
    "PROX_SIGINT_DOUBLE_TAP_WINDOW",
)


def clean_environ(**values: str) -> dict[str, str]:
    env = {k: v for k, v in os.environ.items() if k not in PROX_VARS}
    env.update(values)
    return env


class TestDefaults:
    """No PROX_* variables set."""

    def test_defaults(self):
        with mock.patch.dict(os.environ, clean_environ(), clear=True):
            config = load_config()

        assert config == Config()
        assert config.verbose is False
        assert config.color is True
        assert config.env_file == ".env"
        assert config.procfile == ""
        assert config.term_timeout == 5.0
        assert config.sigint_double_tap_window == 1.0


class TestParseBool:
    """Boolean parsing."""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "Yes", "on"])
    def test_truthy_values(self, value: str):
        with mock.patch.dict(os.environ, clean_environ(PROX_VERBOSE=value), clear=True):
            assert load_config().verbose is True

    @pytest.mark.parametrize("value", ["false", "False", "0", "no", "off", ""])
    def test_falsy_values(self, value: str):
        with mock.patch.dict(os.environ, clean_environ(PROX_VERBOSE=value), clear=True):
            assert load_config().verbose is False


class TestColor:
    """NO_COLOR and PROX_NO_COLOR."""

    def test_no_color_any_value(self):
        with mock.patch.dict(os.environ, clean_environ(NO_COLOR="anything"), clear=True):
            assert load_config().color is False

    def test_empty_no_color_is_ignored(self):
        with mock.patch.dict(os.environ, clean_environ(NO_COLOR=""), clear=True):
            assert load_config().color is True

    def test_prox_no_color(self):
        with mock.patch.dict(os.environ, clean_environ(PROX_NO_COLOR="1"), clear=True):
            assert load_config().color is False
        with mock.patch.dict(os.environ, clean_environ(PROX_NO_COLOR="false"), clear=True):
            assert load_config().color is True


class TestPaths:
    """Env file and process file paths."""

    def test_paths(self):
        env = clean_environ(PROX_ENV="config/dev.env", PROX_PROCFILE="Procfile.dev")
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config()
        assert config.env_file == "config/dev.env"
        assert config.procfile == "Procfile.dev"

    def test_empty_env_file_uses_default(self):
        with mock.patch.dict(os.environ, clean_environ(PROX_ENV=""), clear=True):
            assert load_config().env_file == ".env"


class TestDurations:
    """Timeouts are parsed as seconds and clamped."""

    @pytest.mark.parametrize(
        "value,expected",
        [("2.5", 2.5), ("0", 0.1), ("1000", 60.0), ("abc", 5.0), ("", 5.0)],
    )
    def test_term_timeout(self, value: str, expected: float):
        with mock.patch.dict(os.environ, clean_environ(PROX_TERM_TIMEOUT=value), clear=True):
            assert load_config().term_timeout == expected

    @pytest.mark.parametrize("value,expected", [("0.5", 0.5), ("0.01", 0.1), ("30", 10.0)])
    def test_double_tap_window(self, value: str, expected: float):
        env = clean_environ(PROX_SIGINT_DOUBLE_TAP_WINDOW=value)
        with mock.patch.dict(os.environ, env, clear=True):
            assert load_config().sigint_double_tap_window == expected


class TestGlobalConfig:
    """get_config / reload_config."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reload_config(self):
        with mock.patch.dict(os.environ, clean_environ(PROX_VERBOSE="1"), clear=True):
            assert reload_config().verbose is True
            assert get_config().verbose is True
        reload_config()

    def test_repr(self):
        text = repr(Config(procfile=""))
        assert "procfile=auto" in text
        assert "term_timeout=5.0" in text
