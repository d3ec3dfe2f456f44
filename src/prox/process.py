"""Process definitions and structured output configuration.

A ProcessDefinition is produced by the configuration layer (see
prox.proxfile) and only read by the executor. Everything in this module is
immutable so a definition can be shared by concurrent tasks without locking.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .context import RunContext
    from .output.multiplexer import LineWriter

__all__ = [
    "OutputFormat",
    "TaggingRule",
    "StructuredOutputConfig",
    "DEFAULT_STRUCTURED_OUTPUT",
    "ProcessDefinition",
    "Runnable",
]


class OutputFormat(str, Enum):
    """How process output lines are interpreted.

    - AUTO: JSON objects are decoded, everything else is plain text
    - JSON: lines are expected to be JSON objects
    - PLAIN: lines are never decoded
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"


@dataclass(frozen=True)
class TaggingRule:
    """Assigns ``tag`` to a line whose ``field`` matches ``value``.

    Attributes:
        tag: Tag name, e.g. "error"
        field: JSON field the pattern is tested against (ignored for plain lines)
        value: Regular expression, optionally written as ``/pattern/i``
    """

    tag: str
    field: str
    value: str


@dataclass(frozen=True)
class StructuredOutputConfig:
    """Per-process output classification settings.

    Attributes:
        format: Output format
        message_field: JSON field holding the human readable message
        level_field: JSON field holding the log level
        tag_colors: Tag name -> color name
        tagging_rules: Rules in evaluation order, first match wins
    """

    format: OutputFormat = OutputFormat.AUTO
    message_field: str = "msg"
    level_field: str = "level"
    tag_colors: Mapping[str, str] = field(default_factory=dict)
    tagging_rules: tuple[TaggingRule, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.format, str) and not isinstance(self.format, OutputFormat):
            object.__setattr__(self, "format", OutputFormat(self.format))
        object.__setattr__(self, "tag_colors", MappingProxyType(dict(self.tag_colors)))
        object.__setattr__(self, "tagging_rules", tuple(self.tagging_rules))

    def with_rule(self, rule: TaggingRule, color: str | None = None) -> "StructuredOutputConfig":
        """Return a copy with ``rule`` added.

        A rule whose tag already exists replaces the existing rule at the
        same position. The color map is only touched when ``color`` is given.
        """
        rules = list(self.tagging_rules)
        for i, existing in enumerate(rules):
            if existing.tag == rule.tag:
                rules[i] = rule
                break
        else:
            rules.append(rule)

        colors = dict(self.tag_colors)
        if color:
            colors[rule.tag] = color

        return replace(self, tag_colors=colors, tagging_rules=tuple(rules))

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format.value,
            "message_field": self.message_field,
            "level_field": self.level_field,
            "tag_colors": dict(self.tag_colors),
            "tagging_rules": [
                {"tag": r.tag, "field": r.field, "value": r.value}
                for r in self.tagging_rules
            ],
        }


DEFAULT_STRUCTURED_OUTPUT = StructuredOutputConfig(
    format=OutputFormat.AUTO,
    message_field="msg",
    level_field="level",
    tag_colors={
        "error": "red",
        "fatal": "red",
    },
    tagging_rules=(
        TaggingRule(tag="error", field="level", value="/(ERR(O|OR)?)|(WARN(ING)?)/i"),
        TaggingRule(tag="fatal", field="level", value="/FATAL?|PANIC/i"),
    ),
)


@dataclass(frozen=True)
class ProcessDefinition:
    """Static description of one supervised process.

    Attributes:
        name: Display name, non-empty
        command_line: Shell script to run, opaque to the executor
        env: Environment of the process (insertion ordered)
        structured_output: Output classification settings
    """

    name: str
    command_line: str
    env: Mapping[str, str] = field(default_factory=dict)
    structured_output: StructuredOutputConfig = DEFAULT_STRUCTURED_OUTPUT

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("process name must not be empty")
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    def to_dict(self) -> dict[str, Any]:
        """Plain representation used by ``prox show --verbose``."""
        return {
            "name": self.name,
            "script": self.command_line,
            "env": dict(self.env),
            "structured_output": self.structured_output.to_dict(),
        }


@runtime_checkable
class Runnable(Protocol):
    """Something the executor can run to completion.

    ``run`` must block until the process exited or ``ctx`` was cancelled.
    It returns normally on success, raises ProcessInterrupted when it stopped
    because of cancellation, and raises any other exception on failure.
    """

    @property
    def name(self) -> str: ...

    @property
    def command_line(self) -> str: ...

    async def run(
        self,
        ctx: "RunContext",
        output: "LineWriter",
        logger: logging.Logger,
    ) -> None: ...
