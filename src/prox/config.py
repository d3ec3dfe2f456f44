"""prox environment variable configuration.

Environment variables:
    PROX_VERBOSE: Debug logging
        - true/1/yes/on = enabled
        - false/0/no = disabled (default)

    PROX_NO_COLOR / NO_COLOR: Disable ANSI colors in process output
        - any non-empty NO_COLOR disables colors (https://no-color.org)
        - PROX_NO_COLOR accepts the boolean values above

    PROX_ENV: Path of the env file
        - default ".env"

    PROX_PROCFILE: Path of the Proxfile or Procfile
        - default "" (look for Proxfile, then Procfile)

    PROX_TERM_TIMEOUT: Seconds between SIGTERM and SIGKILL when a process is
        interrupted
        - default 5.0, clamped to 0.1-60

    PROX_SIGINT_DOUBLE_TAP_WINDOW: A second Ctrl+C within this many seconds
        exits immediately
        - default 1.0, clamped to 0.1-10

Command line flags take precedence over these values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_ENV_FILE = ".env"
DEFAULT_TERM_TIMEOUT = 5.0
DEFAULT_DOUBLE_TAP_WINDOW = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_seconds(value: str | None, default: float, low: float, high: float) -> float:
    """Parse a duration in seconds, clamped to [low, high]."""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(low, min(seconds, high))


@dataclass
class Config:
    """prox configuration.

    Attributes:
        verbose: Debug logging
        color: Render ANSI colors
        env_file: Path of the env file
        procfile: Path of the process file, empty to auto-discover
        term_timeout: Seconds between SIGTERM and SIGKILL
        sigint_double_tap_window: Second SIGINT within this window forces exit
    """

    verbose: bool = False
    color: bool = True
    env_file: str = DEFAULT_ENV_FILE
    procfile: str = ""
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    sigint_double_tap_window: float = DEFAULT_DOUBLE_TAP_WINDOW

    def __repr__(self) -> str:
        return (
            f"Config(verbose={self.verbose}, "
            f"color={self.color}, "
            f"env_file={self.env_file}, "
            f"procfile={self.procfile or 'auto'}, "
            f"term_timeout={self.term_timeout}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def load_config() -> Config:
    """Load configuration from environment variables."""
    no_color = bool(os.environ.get("NO_COLOR")) or _parse_bool(os.environ.get("PROX_NO_COLOR"))

    return Config(
        verbose=_parse_bool(os.environ.get("PROX_VERBOSE"), default=False),
        color=not no_color,
        env_file=os.environ.get("PROX_ENV") or DEFAULT_ENV_FILE,
        procfile=os.environ.get("PROX_PROCFILE", ""),
        term_timeout=_parse_seconds(
            os.environ.get("PROX_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 0.1, 60.0
        ),
        sigint_double_tap_window=_parse_seconds(
            os.environ.get("PROX_SIGINT_DOUBLE_TAP_WINDOW"), DEFAULT_DOUBLE_TAP_WINDOW, 0.1, 10.0
        ),
    )


# Global config instance (lazy)
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
