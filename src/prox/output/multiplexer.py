"""Output multiplexer.

Every supervised process writes into its own LineWriter. Writers classify
their lines independently and hand finished lines to the shared Output,
which writes each line to the console under a lock so lines of different
processes never interleave.
"""

from __future__ import annotations

import itertools
import logging
import sys
import threading
from collections.abc import Iterable
from dataclasses import replace
from typing import TextIO

from ..process import DEFAULT_STRUCTURED_OUTPUT, StructuredOutputConfig
from .classifier import ClassifiedLine, classify_line
from .colors import NAME_PALETTE, colorize

__all__ = [
    "Output",
    "LineWriter",
    "longest_name",
    "SEPARATOR",
]

logger = logging.getLogger(__name__)

SEPARATOR = " │ "


def longest_name(names: Iterable[str]) -> int:
    """Padding width for a batch of process names."""
    return max((len(n) for n in names), default=0)


class Output:
    """Shared console sink for all processes of a run.

    Attributes:
        color: Whether ANSI colors are rendered
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        color: bool = True,
        log: logging.Logger | None = None,
    ) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()
        self._palette = itertools.cycle(NAME_PALETTE)
        self._log = log or logger
        self.color = color

    def next(
        self,
        name: str,
        padding: int,
        structured_output: StructuredOutputConfig = DEFAULT_STRUCTURED_OUTPUT,
    ) -> "LineWriter":
        """Allocate the writer for one process.

        Args:
            name: Process name shown in the prefix column
            padding: Width of the prefix column, shared by the whole run
            structured_output: Classification settings of the process

        Returns:
            A new LineWriter with the next name color
        """
        with self._lock:
            name_color = next(self._palette)
        self._log.debug(f"Allocated output name={name} padding={padding} color={name_color}")
        return LineWriter(self, name, padding, structured_output, name_color)

    def render(self, line: ClassifiedLine, name_color: str | None) -> str:
        """Render ``line`` as ``prefix │ text``.

        A tagged line with a color shows the prefix and the text in the tag
        color. Untagged lines keep the process's name color on the prefix.
        """
        prefix = colorize(line.prefix, line.color or name_color, self.color)
        text = colorize(line.text, line.color, self.color)
        return f"{prefix}{SEPARATOR}{text}\n"

    def emit(self, rendered: str) -> None:
        """Write one rendered line atomically."""
        with self._lock:
            self._stream.write(rendered)
            self._stream.flush()


class LineWriter:
    """Writer handed to a single process runner.

    Data may arrive in arbitrary chunks; only complete lines are emitted.
    ``flush`` emits a pending partial line. A runner that reads several
    streams uses ``fork`` to get one buffer per stream.
    """

    def __init__(
        self,
        output: Output,
        name: str,
        padding: int,
        structured_output: StructuredOutputConfig,
        name_color: str | None = None,
    ) -> None:
        self.name = name
        self.prefix = name.ljust(padding)
        self.structured_output = structured_output
        self.name_color = name_color
        self._output = output
        self._pending: list[str] = []
        self._buffer_lock = threading.Lock()

    def fork(self) -> "LineWriter":
        """Writer with the same prefix and color but its own line buffer."""
        return LineWriter(
            self._output,
            self.name,
            len(self.prefix),
            self.structured_output,
            self.name_color,
        )

    def classify(self, line: str) -> ClassifiedLine:
        """Classify ``line`` and attach this writer's prefix."""
        return replace(classify_line(line, self.structured_output), prefix=self.prefix)

    def writeline(self, line: str) -> None:
        classified = self.classify(line)
        self._output.emit(self._output.render(classified, self.name_color))

    def write(self, data: str) -> int:
        with self._buffer_lock:
            if "\n" not in data:
                # partial line, joined once its newline arrives
                if data:
                    self._pending.append(data)
                return len(data)

            head, *lines, tail = data.split("\n")
            lines.insert(0, "".join(self._pending) + head)
            self._pending = [tail] if tail else []

        for line in lines:
            self.writeline(line)
        return len(data)

    def flush(self) -> None:
        with self._buffer_lock:
            pending = "".join(self._pending)
            self._pending = []

        if pending:
            self.writeline(pending)
