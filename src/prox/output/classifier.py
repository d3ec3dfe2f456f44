"""Structured output classification.

Turns one raw output line into a ClassifiedLine by evaluating the owning
process's tagging rules. Plain lines are matched as a whole; JSON lines are
decoded and each rule is tested against the field it names.

Patterns use the ``/pattern/flags`` notation known from log shippers:
``/WARN(ING)?/i`` is case-insensitive, a pattern without slashes is used as
is. Matching is a search, not a full match.

All functions here are pure. Compiled patterns are cached, which does not
affect results.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from ..process import OutputFormat, StructuredOutputConfig, TaggingRule

__all__ = [
    "ClassifiedLine",
    "classify_line",
    "compile_pattern",
    "decode_json_line",
    "match_rules",
]

_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}

_SLASHED = re.compile(r"^/(?P<pattern>.*)/(?P<flags>[a-z]*)$", re.DOTALL)


@dataclass(frozen=True)
class ClassifiedLine:
    """One line of process output after classification.

    Attributes:
        text: Message to display
        tag: Tag of the first matching rule, None if no rule matched
        color: Color name configured for ``tag``, None if uncolored
        prefix: Padded process name (filled in by the multiplexer)
    """

    text: str
    tag: str | None = None
    color: str | None = None
    prefix: str = ""


@lru_cache(maxsize=256)
def compile_pattern(value: str) -> re.Pattern[str]:
    """Compile a tagging rule pattern.

    Args:
        value: ``/pattern/flags`` or a bare regular expression

    Returns:
        Compiled pattern

    Raises:
        ValueError: If the flags are unknown
        re.error: If the expression is invalid
    """
    m = _SLASHED.match(value)
    if not m:
        return re.compile(value)

    flags = 0
    for flag in m.group("flags"):
        if flag not in _FLAGS:
            raise ValueError(f"unsupported regex flag {flag!r} in {value!r}")
        flags |= _FLAGS[flag]
    return re.compile(m.group("pattern"), flags)


def decode_json_line(line: str) -> dict[str, Any] | None:
    """Decode ``line`` as a single JSON object, None if it is not one."""
    stripped = line.strip()
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _field_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def match_rules(
    rules: tuple[TaggingRule, ...],
    line: str,
    fields: dict[str, Any] | None = None,
) -> str | None:
    """Return the tag of the first rule that matches.

    Args:
        rules: Rules in evaluation order
        line: Raw line, used when ``fields`` is None
        fields: Decoded JSON object, rules naming absent fields are skipped
    """
    for rule in rules:
        if fields is None:
            subject = line
        elif rule.field in fields:
            subject = _field_text(fields[rule.field])
        else:
            continue

        if compile_pattern(rule.value).search(subject):
            return rule.tag
    return None


def classify_line(line: str, config: StructuredOutputConfig) -> ClassifiedLine:
    """Classify one line of process output.

    Args:
        line: Raw line, a trailing newline is ignored
        config: Structured output settings of the owning process

    Returns:
        ClassifiedLine without prefix
    """
    line = line.rstrip("\r\n")

    fields = None
    if config.format is not OutputFormat.PLAIN:
        fields = decode_json_line(line)

    if fields is None:
        text = line
    elif config.message_field in fields:
        text = _field_text(fields[config.message_field])
    else:
        text = line

    tag = match_rules(config.tagging_rules, line, fields)
    color = config.tag_colors.get(tag) if tag is not None else None
    return ClassifiedLine(text=text, tag=tag, color=color or None)
