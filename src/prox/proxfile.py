"""Process file parsing.

Two formats are supported:

Procfile, one process per line:

    web: python -m http.server $PORT
    worker: celery -A app worker

Proxfile, YAML with optional structured output settings per process:

    processes:
      web: python -m http.server $PORT     # shorthand, only the script
      api:
        script: ./api --log-format=json
        env: ["PORT=8080"]
        format: json
        fields:
          message: message
          level: severity
        tags:
          slow:
            color: yellow
            condition:
              field: duration
              value: /^[0-9]{4,}ms$/

Every process starts with DEFAULT_STRUCTURED_OUTPUT; ``format`` and
``fields`` override it and ``tags`` are merged into it when the process
uses the json format. A tag with the name of a default tag ("error",
"fatal") replaces the default rule.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path
from typing import Any, Literal, TextIO

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .environment import Environment
from .errors import ConfigError, ProcfileError, ProxfileError
from .output.classifier import compile_pattern
from .output.colors import is_known_color
from .process import (
    DEFAULT_STRUCTURED_OUTPUT,
    OutputFormat,
    ProcessDefinition,
    StructuredOutputConfig,
    TaggingRule,
)

__all__ = [
    "Proxfile",
    "ProxfileProcess",
    "parse_proxfile",
    "parse_procfile",
    "load_processes",
]

logger = logging.getLogger(__name__)

_PROCFILE_LINE = re.compile(r"^(?P<name>[A-Za-z0-9_.-]+)\s*:\s*(?P<command>.+)$")


class TagCondition(BaseModel):
    """Field/value pair a tag is assigned on."""

    model_config = ConfigDict(extra="forbid")

    field: str = ""
    value: str

    @field_validator("value")
    @classmethod
    def _valid_pattern(cls, value: str) -> str:
        try:
            compile_pattern(value)
        except (re.error, ValueError) as e:
            raise ValueError(f"invalid pattern {value!r}: {e}") from e
        return value


class TagDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    color: str = ""
    condition: TagCondition

    @field_validator("color")
    @classmethod
    def _known_color(cls, value: str) -> str:
        if value and not is_known_color(value):
            raise ValueError(f"unknown color {value!r}")
        return value


class FieldNames(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str = ""
    level: str = ""


class ProxfileProcess(BaseModel):
    """One entry of the ``processes`` mapping.

    An entry is either a bare string (the script) or a record. Decoding tries
    the string form first and falls back to the record form.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    script: str
    env: list[str] = Field(default_factory=list)
    format: Literal["", "auto", "json", "plain"] = ""
    field_names: FieldNames = Field(default_factory=FieldNames, alias="fields")
    tags: dict[str, TagDefinition] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _script_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"script": data}
        return data

    @field_validator("env", mode="before")
    @classmethod
    def _env_entries(cls, value: Any) -> Any:
        # YAML mappings are accepted as well as KEY=VALUE lists
        if isinstance(value, dict):
            return [f"{k}={'' if v is None else v}" for k, v in value.items()]
        return value

    def structured_output(self) -> StructuredOutputConfig:
        """Default structured output with this entry's overrides applied."""
        config = DEFAULT_STRUCTURED_OUTPUT
        if self.format:
            config = replace(config, format=OutputFormat(self.format))
        if self.field_names.message:
            config = replace(config, message_field=self.field_names.message)
        if self.field_names.level:
            config = replace(config, level_field=self.field_names.level)

        if config.format is OutputFormat.JSON:
            for tag, definition in self.tags.items():
                rule = TaggingRule(
                    tag=tag,
                    field=definition.condition.field or config.level_field,
                    value=definition.condition.value,
                )
                config = config.with_rule(rule, color=definition.color or None)
        elif self.tags:
            logger.warning(f"Ignoring tags of process with format={config.format.value}, tags need format json")

        return config


class Proxfile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    processes: dict[str, ProxfileProcess]


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        location = ".".join(str(p) for p in err["loc"])
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def parse_proxfile(stream: TextIO | str, env: Environment) -> list[ProcessDefinition]:
    """Parse a Proxfile into process definitions.

    Args:
        stream: YAML document or open file
        env: Base environment, copied for every process

    Returns:
        Definitions in file order

    Raises:
        ProxfileError: If the document is invalid
    """
    try:
        data = yaml.safe_load(stream)
    except yaml.YAMLError as e:
        raise ProxfileError(f"failed to decode Proxfile as YAML: {e}") from e

    try:
        proxfile = Proxfile.model_validate(data if data is not None else {})
    except ValidationError as e:
        raise ProxfileError(f"invalid Proxfile: {_format_validation_error(e)}") from e

    processes = []
    for raw_name, entry in proxfile.processes.items():
        name = raw_name.strip()
        if not name:
            raise ProxfileError("invalid Proxfile: process name must not be empty")

        process_env = env.copy()
        try:
            process_env.set_all(entry.env)
        except ValueError as e:
            raise ProxfileError(f"invalid Proxfile: processes.{name}.env: {e}") from e

        processes.append(
            ProcessDefinition(
                name=name,
                command_line=entry.script.strip(),
                env=process_env.as_dict(),
                structured_output=entry.structured_output(),
            )
        )

    return processes


def parse_procfile(stream: TextIO | str | Iterable[str], env: Environment) -> list[ProcessDefinition]:
    """Parse a Procfile into process definitions.

    Blank lines and lines starting with ``#`` are skipped.

    Raises:
        ProcfileError: If a line is not ``name: command``
    """
    lines = stream.splitlines() if isinstance(stream, str) else stream

    processes = []
    for number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        m = _PROCFILE_LINE.match(line)
        if not m:
            raise ProcfileError(number, f"expected 'name: command', got {line!r}")

        processes.append(
            ProcessDefinition(
                name=m.group("name"),
                command_line=m.group("command").strip(),
                env=env.as_dict(),
                structured_output=DEFAULT_STRUCTURED_OUTPUT,
            )
        )

    return processes


def load_processes(
    env: Environment,
    path: str | Path = "",
    cwd: str | Path | None = None,
) -> list[ProcessDefinition]:
    """Find and parse the process file.

    Without ``path``, ``Proxfile`` is preferred over ``Procfile`` in ``cwd``.
    An explicit path whose file name starts with "Procfile" is parsed as a
    Procfile, anything else as a Proxfile.

    Raises:
        ConfigError: If no file was found or it cannot be opened
        ProxfileError, ProcfileError: If the file is invalid
    """
    base = Path(cwd) if cwd is not None else Path.cwd()

    if path:
        file = base / path
        is_procfile = file.name.startswith("Procfile")
        logger.debug(f"Reading processes from file specified via --procfile path={file}")
    elif (base / "Proxfile").exists():
        file, is_procfile = base / "Proxfile", False
        logger.debug("Reading processes from Proxfile")
    elif (base / "Procfile").exists():
        file, is_procfile = base / "Procfile", True
        logger.debug("Reading processes from Procfile")
    else:
        raise ConfigError("no Proxfile or Procfile found. Please specify a path with --procfile")

    try:
        with file.open(encoding="utf-8") as f:
            if is_procfile:
                return parse_procfile(f, env)
            return parse_proxfile(f, env)
    except OSError as e:
        raise ConfigError(f"failed to open process file: {e}") from e
