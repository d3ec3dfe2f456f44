"""Process environment handling.

An Environment is an insertion-ordered set of variables. prox builds one base
environment per invocation (system environment plus the env file) and
derives each process's environment from it.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

from dotenv import dotenv_values

from .errors import EnvFileError

__all__ = ["Environment", "system_env"]

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\$(?:\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)\}|(?P<plain>[A-Za-z_][A-Za-z0-9_]*))")


class Environment:
    """Ordered mapping of environment variables."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(values or {})

    @classmethod
    def from_list(cls, entries: Iterable[str]) -> "Environment":
        env = cls()
        env.set_all(entries)
        return env

    def copy(self) -> "Environment":
        return Environment(self._values)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        if not key:
            raise ValueError("environment variable name must not be empty")
        self._values[key] = value

    def set_all(self, entries: Iterable[str]) -> None:
        """Set variables from ``KEY=VALUE`` strings.

        Raises:
            ValueError: If an entry has no ``=``
        """
        for entry in entries:
            key, sep, value = entry.partition("=")
            if not sep:
                raise ValueError(f"invalid environment entry {entry!r}, expected KEY=VALUE")
            self.set(key.strip(), value)

    def parse_env_file(self, path: str | Path) -> None:
        """Merge the variables of a dotenv file into this environment.

        Values may reference variables defined earlier in the file or in
        this environment.

        Raises:
            EnvFileError: If the file cannot be read
        """
        path = Path(path)
        try:
            with path.open(encoding="utf-8") as f:
                # interpolate=False: expansion happens below, against self
                values = dotenv_values(stream=f, interpolate=False)
        except OSError as e:
            raise EnvFileError(f"failed to read env file {path}: {e}") from e

        for key, value in values.items():
            self.set(key, self.expand(value or ""))
        logger.debug(f"Loaded env file path={path} variables={len(values)}")

    def expand(self, text: str) -> str:
        """Substitute ``$VAR`` and ``${VAR}``; unknown variables become empty."""
        def substitute(m: re.Match[str]) -> str:
            name = m.group("braced") or m.group("plain")
            return self._values.get(name, "")

        return _VARIABLE.sub(substitute, text)

    def to_list(self) -> list[str]:
        """Variables as ``KEY=VALUE`` strings."""
        return [f"{k}={v}" for k, v in self._values.items()]

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Environment):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Environment({len(self._values)} variables)"


def system_env() -> Environment:
    """Snapshot of the current process environment."""
    return Environment(os.environ)
